#!/usr/bin/env python3
"""Insert a small demo data set: a sender, a carrier, two packages, two rides, a match and its payment.

Skips everything when the sample sender already exists.

Usage:
  python scripts/seed_sample_data.py
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ecodeli.models import Match, Package, Payment, Ride, User
from scripts._db_utils import script_session

SENDER_EMAIL = "sender@test.com"
CARRIER_EMAIL = "carrier@test.com"

PARIS = (48.8566, 2.3522)
EIFFEL = (48.8584, 2.2945)


def seed_sample_data(db_url: str) -> bool:
    """Returns False when the sample data is already present."""
    with script_session(db_url) as s:
        if s.query(User.id).filter(User.email == SENDER_EMAIL).first() is not None:
            print("Sample data already present; nothing to do.", flush=True)
            return False

        now = datetime.utcnow()
        sender = User(email=SENDER_EMAIL, name="Test Sender", first_name="Test", last_name="Sender", role="CUSTOMER", is_verified=True, created_at=now, updated_at=now)
        carrier = User(email=CARRIER_EMAIL, name="Test Carrier", first_name="Test", last_name="Carrier", role="CARRIER", is_verified=True, created_at=now, updated_at=now)
        s.add_all([sender, carrier])
        s.flush()

        packages = [
            Package(
                user_id=sender.id,
                title=title,
                description=description,
                weight=weight,
                dimensions=dimensions,
                pickup_address=pickup,
                delivery_address=delivery,
                pickup_lat=PARIS[0],
                pickup_lng=PARIS[1],
                delivery_lat=EIFFEL[0],
                delivery_lng=EIFFEL[1],
                status="PENDING",
                created_at=now,
                updated_at=now,
            )
            for title, description, weight, dimensions, pickup, delivery in (
                ("Test Package 1", "A test package", 2.5, "30x20x10", "123 Pickup St", "456 Delivery Ave"),
                ("Test Package 2", "Another test package", 1.5, "20x15x10", "789 Pickup Rd", "321 Delivery Blvd"),
            )
        ]
        rides = [
            Ride(
                user_id=carrier.id,
                origin=origin,
                destination=destination,
                departure_time=now + timedelta(days=days),
                vehicle_type=vehicle,
                available_space=space,
                max_weight=max_weight,
                price_per_kg=2.5,
                status="AVAILABLE",
                created_at=now,
                updated_at=now,
            )
            for origin, destination, days, vehicle, space, max_weight in (
                ("123 Start St", "456 End Ave", 1, "Car", "MEDIUM", 10.0),
                ("789 Start Rd", "321 End Blvd", 2, "Van", "LARGE", 20.0),
            )
        ]
        s.add_all(packages + rides)
        s.flush()

        match = Match(package_id=packages[0].id, ride_id=rides[0].id, status="PROPOSED", price=25.0, created_at=now, updated_at=now)
        s.add(match)
        s.flush()
        s.add(
            Payment(
                user_id=sender.id,
                match_id=match.id,
                amount=25.0,
                currency="EUR",
                status="PENDING",
                payment_method="card",
                created_at=now,
                updated_at=now,
            )
        )

    print("Sample data added: 2 users, 2 packages, 2 rides, 1 match, 1 payment.", flush=True)
    return True


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///ecodeli.db").strip()
    seed_sample_data(db_url)


if __name__ == "__main__":
    main()
