"""Domain enumerations and state-transition rules."""

import enum


class UserType(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"


class RideRequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RideStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, enum.Enum):
    MPESA = "mpesa"
    CARD = "card"
    CASH = "cash"


# State machines: maps current status -> set of valid next statuses
REQUEST_TRANSITIONS: dict[RideRequestStatus, set[RideRequestStatus]] = {
    RideRequestStatus.PENDING: {
        RideRequestStatus.ACCEPTED,
        RideRequestStatus.REJECTED,
        RideRequestStatus.CANCELLED,
    },
    RideRequestStatus.ACCEPTED: {RideRequestStatus.COMPLETED},
    RideRequestStatus.REJECTED: set(),
    RideRequestStatus.CANCELLED: set(),
    RideRequestStatus.COMPLETED: set(),
}

RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    # a failed push may be re-initiated
    PaymentStatus.FAILED: {PaymentStatus.PENDING},
    PaymentStatus.COMPLETED: set(),
}
