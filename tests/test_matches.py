from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.auth import _login_attempts
from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.db import session_scope
from app.ecodeli.models import AdminRole, Base, Permission, User
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.rides.models import Ride


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
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), role="ADMIN", is_active=True)
        u.admin_roles.append(r)
        sender = User(email="sender@example.com", role="CUSTOMER", is_active=True)
        carrier = User(email="carrier@example.com", role="CARRIER", is_active=True)
        s.add_all([r, u, sender, carrier])
        s.flush()

        ride = Ride(user_id=carrier.id, origin="Paris", destination="Lyon", departure_time=datetime.utcnow() + timedelta(days=1))
        p1 = Package(user_id=sender.id, title="Books", pickup_address="Paris", delivery_address="Lyon")
        p2 = Package(user_id=sender.id, title="Lamp", pickup_address="Paris", delivery_address="Lyon")
        p3 = Package(user_id=sender.id, title="Chair", pickup_address="Paris", delivery_address="Lyon")
        s.add_all([ride, p1, p2, p3])
        s.flush()
        m1 = Match(package_id=p1.id, ride_id=ride.id, status="PENDING", price=10.0)
        m2 = Match(package_id=p2.id, ride_id=ride.id, status="CONFIRMED", price=15.0)
        m3 = Match(package_id=p3.id, ride_id=ride.id, status="DELIVERED", price=12.0)
        s.add_all([m1, m2, m3])
        s.flush()
        s.add(Payment(user_id=sender.id, match_id=m3.id, amount=12.0, status="COMPLETED"))

    return app.test_client()


def _login(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200


def test_matches_list_filters(client):
    _login(client)

    r = client.get("/api/matches")
    assert r.status_code == 200
    assert len(r.json) == 3
    delivered = next(m for m in r.json if m["status"] == "DELIVERED")
    assert delivered["payment"]["status"] == "COMPLETED"
    assert delivered["package"]["title"] == "Chair"
    assert delivered["ride"]["origin"] == "Paris"

    r = client.get("/api/matches", query_string={"status": "PENDING,CONFIRMED"})
    assert {m["status"] for m in r.json} == {"PENDING", "CONFIRMED"}

    r = client.get("/api/matches", query_string={"status": "all", "limit": 1})
    assert len(r.json) == 1


def test_match_update(client):
    _login(client)
    with session_scope(client.application) as s:
        match_id = s.query(Match).filter(Match.status == "PENDING").one().id

    r = client.put("/api/matches", json={"status": "CONFIRMED"})
    assert r.status_code == 400

    r = client.put("/api/matches", json={"id": 9999, "status": "CONFIRMED"})
    assert r.status_code == 404

    r = client.put("/api/matches", json={"id": match_id, "status": "LOST"})
    assert r.status_code == 400

    r = client.put("/api/matches", json={"id": match_id, "price": -1})
    assert r.status_code == 400

    r = client.put("/api/matches", json={"id": match_id, "status": "ACCEPTED_BY_CARRIER", "price": "18.5"})
    assert r.status_code == 200
    assert r.json["status"] == "ACCEPTED_BY_CARRIER"
    assert r.json["price"] == 18.5
