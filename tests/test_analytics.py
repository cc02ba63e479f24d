from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.auth import _login_attempts
from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.db import session_scope
from app.ecodeli.models import AdminRole, Base, Permission, User
from app.ecodeli.modules.analytics.service import compute_analytics, shift_months, window_start
from app.ecodeli.modules.bookings.models import Booking, Service
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.storage.models import BoxRental, StorageBox

NOW = datetime(2030, 6, 15, 12, 0)


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    _login_attempts.clear()

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        r = AdminRole(key="admin", name="Administrator")
        for key, name in ADMIN_PERMISSIONS:
            r.permissions.append(Permission(key=key, name=name))
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), role="ADMIN", is_active=True, created_at=NOW - timedelta(days=400))
        u.admin_roles.append(r)
        customer = User(email="customer@example.com", role="CUSTOMER", is_active=True, created_at=NOW - timedelta(days=3))
        provider = User(email="provider@example.com", role="PROVIDER", is_active=True, created_at=NOW - timedelta(days=60))
        s.add_all([r, u, customer, provider])
        s.flush()

        cleaning = Service(provider_id=provider.id, name="Cleaning", category="HOME", price=30.0, rating=4.0)
        tutoring = Service(provider_id=provider.id, name="Tutoring", category="EDUCATION", price=20.0, is_active=False)
        s.add_all([cleaning, tutoring])
        s.flush()
        for status, amount in (("COMPLETED", 30.0), ("COMPLETED", 20.0), ("PENDING", 30.0), ("CANCELLED", 20.0)):
            s.add(
                Booking(
                    service_id=cleaning.id,
                    customer_id=customer.id,
                    provider_id=provider.id,
                    scheduled_at=NOW,
                    total_amount=amount,
                    status=status,
                    created_at=NOW - timedelta(days=2),
                )
            )

        s.add_all(
            [
                Package(user_id=customer.id, title="A", pickup_address="x", delivery_address="y", status="DELIVERED"),
                Package(user_id=customer.id, title="B", pickup_address="x", delivery_address="y", status="IN_TRANSIT"),
                Package(user_id=customer.id, title="C", pickup_address="x", delivery_address="y", status="PENDING"),
            ]
        )

        box1 = StorageBox(code="B1", location="Paris", size="SMALL", price_per_day=2.0, is_occupied=True)
        box2 = StorageBox(code="B2", location="Paris", size="SMALL", price_per_day=2.0)
        s.add_all([box1, box2])
        s.flush()
        s.add(BoxRental(box_id=box1.id, user_id=customer.id, start_date=NOW, total_cost=14.0, is_active=True))

        # 100 this 30-day window, 50 in the month before it, one failed payment ignored.
        s.add(Payment(user_id=customer.id, amount=100.0, status="COMPLETED", created_at=NOW - timedelta(days=5)))
        s.add(Payment(user_id=customer.id, amount=50.0, status="COMPLETED", created_at=NOW - timedelta(days=31)))
        s.add(Payment(user_id=customer.id, amount=999.0, status="FAILED", created_at=NOW - timedelta(days=1)))

    return app.test_client()


def _login(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200


def test_shift_months_clamps_day():
    assert shift_months(datetime(2030, 3, 31), -1) == datetime(2030, 2, 28)
    assert shift_months(datetime(2030, 1, 15), -1) == datetime(2029, 12, 15)
    assert shift_months(datetime(2028, 2, 29), -12) == datetime(2027, 2, 28)


def test_window_start():
    assert window_start("7d", NOW) == NOW - timedelta(days=7)
    assert window_start("90d", NOW) == NOW - timedelta(days=90)
    assert window_start("1y", NOW) == datetime(2029, 6, 15, 12, 0)
    assert window_start(None, NOW) == NOW - timedelta(days=30)
    assert window_start("bogus", NOW) == NOW - timedelta(days=30)


def test_compute_analytics(client):
    with session_scope(client.application) as s:
        data = compute_analytics(s, range_key="30d", now=NOW)

    assert data["range"] == "30d"
    assert data["users"]["total"] == 3
    assert data["users"]["by_role"] == {"ADMIN": 1, "CUSTOMER": 1, "PROVIDER": 1}
    assert data["users"]["new_this_period"] == 1

    assert data["services"]["total"] == 2
    assert data["services"]["active"] == 1
    assert data["services"]["by_category"] == {"HOME": 1, "EDUCATION": 1}
    assert data["services"]["average_rating"] == 2.0

    assert data["bookings"]["total"] == 4
    assert data["bookings"]["completed"] == 2
    assert data["bookings"]["pending"] == 1
    assert data["bookings"]["cancelled"] == 1
    assert data["bookings"]["revenue"] == 50.0

    assert data["packages"] == {"total": 3, "delivered": 1, "in_transit": 1, "pending": 1}

    assert data["storage_boxes"]["total"] == 2
    assert data["storage_boxes"]["occupied"] == 1
    assert data["storage_boxes"]["occupancy_rate"] == 50.0
    assert data["storage_boxes"]["revenue"] == 14.0

    assert data["revenue"]["total"] == 150.0
    assert data["revenue"]["this_period"] == 100.0
    assert data["revenue"]["last_period"] == 50.0
    assert data["revenue"]["growth"] == 100.0
    assert data["revenue"]["by_source"]["bookings"] == 50.0
    assert data["revenue"]["by_source"]["storage"] == 14.0


def test_analytics_endpoint_defaults_range(client):
    _login(client)
    r = client.get("/api/analytics", query_string={"range": "weird"})
    assert r.status_code == 200
    assert r.json["range"] == "30d"
    assert set(r.json) == {"range", "users", "services", "bookings", "packages", "storage_boxes", "revenue"}


def test_dashboard_snapshot(client):
    _login(client)
    r = client.get("/api/dashboard")
    assert r.status_code == 200
    assert r.json["counts"]["users"] == 3
    assert r.json["counts"]["packages"] == 3
    assert r.json["counts"]["payments"] == 3
    assert len(r.json["users"]) == 3
