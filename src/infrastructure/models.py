"""
SQLAlchemy ORM models.

Tables
------
* ``users``          -- passengers, drivers and admins
* ``drivers``        -- 1:1 extension of a driver user (vehicle, approval, position)
* ``ride_requests``  -- passenger requests with their fare estimate
* ``rides``          -- 1:1 with an accepted request
* ``payments``       -- 1:1 with a completed ride
* ``reviews``        -- one per (ride, reviewer)

Constraints
-----------
Unique ``rides.request_id`` and ``payments.ride_id`` back the "at most
one" invariants; unique ``(reviews.ride_id, reviews.reviewer_id)`` backs
the one-review-per-ride rule.  **B-Tree** indexes on status and foreign
key columns serve the lifecycle look-ups and the NTSA report scan.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from .database import Base
from src.domain.enums import (
    PaymentMethod,
    PaymentStatus,
    RideRequestStatus,
    RideStatus,
    UserType,
)


def _enum(enum_cls):
    # persist the lowercase wire values, not the member names
    return Enum(
        enum_cls,
        name=enum_cls.__name__.lower(),
        values_callable=lambda members: [m.value for m in members],
    )


class UserModel(Base):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_type = Column(_enum(UserType), nullable=False)
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone_number = Column(String(20), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    email_verification_token = Column(String(64), unique=True, nullable=True)
    email_verification_expiry = Column(DateTime(timezone=True), nullable=True)
    rating = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class DriverModel(Base):
    __tablename__ = "drivers"
    __mapper_args__ = {"eager_defaults": True}

    driver_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    vehicle_make = Column(String(60), nullable=True)
    vehicle_model = Column(String(60), nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    license_plate = Column(String(20), unique=True, nullable=False)
    driver_license_number = Column(String(40), unique=True, nullable=False)
    insurance_details = Column(Text, nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)
    last_location_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_drivers_available", "is_available", "is_approved"),
    )


class RideRequestModel(Base):
    __tablename__ = "ride_requests"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    pickup_latitude = Column(Float, nullable=False)
    pickup_longitude = Column(Float, nullable=False)
    dropoff_latitude = Column(Float, nullable=False)
    dropoff_longitude = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=True)
    dropoff_address = Column(String(255), nullable=True)

    status = Column(
        _enum(RideRequestStatus), default=RideRequestStatus.PENDING, nullable=False
    )
    estimated_fare = Column(Float, nullable=False)
    estimated_distance_km = Column(Float, nullable=False)
    estimated_duration_minutes = Column(Integer, nullable=False)

    requested_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_ride_requests_status", "status"),
        Index("idx_ride_requests_passenger", "passenger_id"),
    )


class RideModel(Base):
    __tablename__ = "rides"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(
        Integer, ForeignKey("ride_requests.id"), unique=True, nullable=False
    )
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    status = Column(_enum(RideStatus), default=RideStatus.IN_PROGRESS, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    actual_fare = Column(Float, nullable=True)
    actual_distance_km = Column(Float, nullable=True)
    actual_duration_minutes = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_status_end", "status", "end_time"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_passenger", "passenger_id"),
    )


class PaymentModel(Base):
    __tablename__ = "payments"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), unique=True, nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="KES", nullable=False)
    payment_method = Column(
        _enum(PaymentMethod), default=PaymentMethod.MPESA, nullable=False
    )
    transaction_id = Column(String(64), unique=True, nullable=True)
    payment_status = Column(
        _enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    payment_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ReviewModel(Base):
    __tablename__ = "reviews"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewed_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Float, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("ride_id", "reviewer_id", name="uq_reviews_ride_reviewer"),
        CheckConstraint("rating >= 1.0 AND rating <= 5.0", name="ck_reviews_rating"),
        Index("idx_reviews_reviewed", "reviewed_id"),
    )
