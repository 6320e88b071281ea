"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 1 admin (admin@kenyanrideshare.com / admin12345)
  - 4 passengers
  - 4 drivers parked around Nairobi CBD (3 approved, 1 awaiting approval)
  - 1 pending ride request from Westlands to the CBD

Every seeded account uses the password ``password123``.
"""

import asyncio

from sqlalchemy import func, select

from src.config import settings
from src.domain.enums import RideRequestStatus, UserType
from src.domain.pricing import PricingEngine
from src.infrastructure.database import build_engine, build_session_factory
from src.infrastructure.identity import IdentityProvider
from src.infrastructure.models import DriverModel, RideRequestModel, UserModel

PASSWORD = "password123"

PASSENGERS = [
    ("Wanjiku", "Kamau", "wanjiku@example.co.ke", "254712000001"),
    ("Otieno", "Odhiambo", "otieno@example.co.ke", "254712000002"),
    ("Achieng", "Njeri", "achieng@example.co.ke", "254712000003"),
    ("Kiprop", "Cheruiyot", "kiprop@example.co.ke", "254112000004"),
]

DRIVERS = [
    {
        "name": ("Mwangi", "Kariuki"), "email": "mwangi@example.co.ke",
        "phone": "254722000001", "vehicle": ("Toyota", "Axio", 2017),
        "plate": "KDA123A", "license": "DL-100001", "approved": True,
        "position": (-1.2833, 36.8167),  # CBD
    },
    {
        "name": ("Mutua", "Musyoka"), "email": "mutua@example.co.ke",
        "phone": "254722000002", "vehicle": ("Mazda", "Demio", 2018),
        "plate": "KDB456B", "license": "DL-100002", "approved": True,
        "position": (-1.2676, 36.8108),  # Westlands
    },
    {
        "name": ("Chebet", "Langat"), "email": "chebet@example.co.ke",
        "phone": "254722000003", "vehicle": ("Nissan", "Note", 2016),
        "plate": "KDC789C", "license": "DL-100003", "approved": True,
        "position": (-1.3000, 36.7833),  # Kilimani
    },
    {
        "name": ("Omondi", "Ouma"), "email": "omondi@example.co.ke",
        "phone": "254722000004", "vehicle": ("Honda", "Fit", 2019),
        "plate": "KDD012D", "license": "DL-100004", "approved": False,
        "position": (-1.2921, 36.8219),
    },
]


async def seed(session_factory, identity: IdentityProvider, pricing: PricingEngine):
    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(UserModel))
        if count:
            print("Database already seeded. Skipping.")
            return

        password_hash = identity.hash_password(PASSWORD)

        # ── Admin ─────────────────────────────────────────────────────
        session.add(
            UserModel(
                user_type=UserType.ADMIN,
                first_name="Platform",
                last_name="Admin",
                email="admin@kenyanrideshare.com",
                phone_number="254700000000",
                password_hash=identity.hash_password("admin12345"),
                is_email_verified=True,
            )
        )

        # ── Passengers ────────────────────────────────────────────────
        passengers = []
        for first, last, email, phone in PASSENGERS:
            user = UserModel(
                user_type=UserType.PASSENGER,
                first_name=first,
                last_name=last,
                email=email,
                phone_number=phone,
                password_hash=password_hash,
                is_email_verified=True,
            )
            session.add(user)
            passengers.append(user)
        await session.flush()
        print(f"  Created {len(passengers)} passengers")

        # ── Drivers ───────────────────────────────────────────────────
        for d in DRIVERS:
            user = UserModel(
                user_type=UserType.DRIVER,
                first_name=d["name"][0],
                last_name=d["name"][1],
                email=d["email"],
                phone_number=d["phone"],
                password_hash=password_hash,
                is_email_verified=True,
            )
            session.add(user)
            await session.flush()
            make, model, year = d["vehicle"]
            session.add(
                DriverModel(
                    driver_id=user.id,
                    vehicle_make=make,
                    vehicle_model=model,
                    vehicle_year=year,
                    license_plate=d["plate"],
                    driver_license_number=d["license"],
                    insurance_details="Comprehensive, Jubilee Insurance",
                    is_approved=d["approved"],
                    is_available=True,
                    current_latitude=d["position"][0],
                    current_longitude=d["position"][1],
                    last_location_update=func.now(),
                )
            )
        await session.flush()
        print(f"  Created {len(DRIVERS)} drivers")

        # ── Ride request ──────────────────────────────────────────────
        pickup, dropoff = (-1.2676, 36.8108), (-1.2833, 36.8167)
        quote = pricing.quote(*pickup, *dropoff)
        session.add(
            RideRequestModel(
                passenger_id=passengers[0].id,
                pickup_latitude=pickup[0],
                pickup_longitude=pickup[1],
                dropoff_latitude=dropoff[0],
                dropoff_longitude=dropoff[1],
                pickup_address="Westlands",
                dropoff_address="Nairobi CBD",
                status=RideRequestStatus.PENDING,
                estimated_fare=quote.fare,
                estimated_distance_km=quote.distance_km,
                estimated_duration_minutes=quote.duration_minutes,
            )
        )
        print(f"  Created 1 ride request (KES {quote.fare:.2f})")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    engine = build_engine(settings.database_url)
    try:
        await seed(
            build_session_factory(engine),
            IdentityProvider.from_settings(settings),
            PricingEngine.from_settings(settings),
        )
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
