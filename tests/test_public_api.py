from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.db import session_scope
from app.ecodeli.models import Base, User
from app.ecodeli.modules.bookings.models import Booking, Service
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.notifications.models import Notification
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.rides.models import Ride
from app.ecodeli.security import create_access_token


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("JWT_SECRET", raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app.test_client()


@pytest.fixture()
def data(client):
    """Two customers, two carriers, two providers and the deliveries/bookings between them."""
    ids = {}
    with session_scope(client.application) as s:
        pw = generate_password_hash("secret")
        users = {
            "customer": User(email="customer@example.com", password_hash=pw, first_name="Chloé", last_name="Client", role="CUSTOMER"),
            "other": User(email="other@example.com", password_hash=pw, role="CUSTOMER"),
            "nopw": User(email="nopw@example.com", role="CUSTOMER"),
            "carrier": User(email="carrier@example.com", password_hash=pw, first_name="Carl", last_name="Carrier", role="CARRIER"),
            "carrier2": User(email="carrier2@example.com", role="CARRIER"),
            "provider": User(email="provider@example.com", first_name="Paul", last_name="Provider", role="PROVIDER"),
            "provider2": User(email="provider2@example.com", role="SERVICE_PROVIDER"),
        }
        s.add_all(users.values())
        s.flush()
        ids.update({k: u.id for k, u in users.items()})

        ride = Ride(user_id=ids["carrier"], origin="Paris", destination="Lyon", departure_time=datetime.utcnow() + timedelta(days=1))
        p1 = Package(user_id=ids["customer"], title="Books", pickup_address="Paris", delivery_address="Lyon")
        p2 = Package(user_id=ids["customer"], title="Lamp", pickup_address="Paris", delivery_address="Lyon")
        s.add_all([ride, p1, p2])
        s.flush()
        m1 = Match(package_id=p1.id, ride_id=ride.id, status="CONFIRMED", price=25.0)
        m2 = Match(package_id=p2.id, ride_id=ride.id, status="ACCEPTED_BY_CARRIER", price=15.0)
        s.add_all([m1, m2])
        s.flush()
        s.add(Payment(user_id=ids["customer"], match_id=m1.id, amount=25.0, status="PENDING"))
        s.add(Payment(user_id=ids["customer"], amount=12.0, status="COMPLETED"))
        s.add(Notification(user_id=ids["customer"], type="SYSTEM", title="Bienvenue", message="Hello"))
        ids.update({"package1": p1.id, "package2": p2.id, "match1": m1.id, "match2": m2.id})

        sv = Service(provider_id=ids["provider"], name="Ménage", category="HOME", price=40.0)
        s.add(sv)
        s.flush()
        for key, status in (("pending", "PENDING"), ("in_progress", "IN_PROGRESS"), ("confirmed", "CONFIRMED")):
            b = Booking(
                service_id=sv.id,
                customer_id=ids["customer"],
                provider_id=ids["provider"],
                scheduled_at=datetime.utcnow() + timedelta(days=3),
                total_amount=40.0,
                status=status,
            )
            s.add(b)
            s.flush()
            ids[f"booking_{key}"] = b.id
        ids["service"] = sv.id
    return ids


def _token(client, user_id):
    with session_scope(client.application) as s:
        user = s.get(User, user_id)
    with client.application.app_context():
        return create_access_token(user)


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_public_auth(client, data):
    r = client.post("/api/public/auth", json={"email": "customer@example.com"})
    assert r.status_code == 400

    r = client.post("/api/public/auth", json={"email": "ghost@example.com", "password": "secret"})
    assert r.status_code == 404

    r = client.post("/api/public/auth", json={"email": "carrier@example.com", "password": "secret"})
    assert r.status_code == 403

    r = client.post("/api/public/auth", json={"email": "nopw@example.com", "password": "secret"})
    assert r.status_code == 400

    r = client.post("/api/public/auth", json={"email": "customer@example.com", "password": "wrong"})
    assert r.status_code == 401

    r = client.post("/api/public/auth", json={"email": "Customer@Example.com", "password": "secret"})
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["user"]["id"] == data["customer"]
    assert "password_hash" not in r.json["user"]

    r = client.get("/api/public/customer/data", headers=_auth(r.json["token"]))
    assert r.status_code == 200


def test_bearer_token_checks(client, data):
    r = client.get("/api/public/customer/data")
    assert r.status_code == 401

    r = client.get("/api/public/customer/data", headers=_auth("not-a-jwt"))
    assert r.status_code == 401

    r = client.get("/api/public/customer/data", headers=_auth(_token(client, data["carrier"])))
    assert r.status_code == 403

    token = _token(client, data["other"])
    with session_scope(client.application) as s:
        s.get(User, data["other"]).is_active = False
    r = client.get("/api/public/customer/data", headers=_auth(token))
    assert r.status_code == 401

    token = _token(client, data["nopw"])
    with session_scope(client.application) as s:
        s.delete(s.get(User, data["nopw"]))
    r = client.get("/api/public/customer/data", headers=_auth(token))
    assert r.status_code == 404


def test_customer_data(client, data):
    r = client.get("/api/public/customer/data", headers=_auth(_token(client, data["customer"])))
    assert r.status_code == 200
    body = r.json
    assert body["user"]["email"] == "customer@example.com"
    assert {d["title"] for d in body["deliveries"]} == {"Books", "Lamp"}
    assert len(body["services"]) == 3
    assert [n["title"] for n in body["notifications"]] == ["Bienvenue"]

    stats = body["stats"]
    assert stats["total_packages"] == 2
    assert stats["active_packages"] == 2
    assert stats["delivered_packages"] == 0
    assert stats["total_bookings"] == 3
    assert stats["active_bookings"] == 2
    assert stats["total_spent"] == 12.0
    assert stats["today_spent"] == 12.0


def test_validate_delivery(client, data):
    headers = _auth(_token(client, data["customer"]))

    r = client.post("/api/public/customer/validate-delivery", headers=headers, json={"package_id": data["package1"]})
    assert r.status_code == 400

    r = client.post(
        "/api/public/customer/validate-delivery",
        headers=_auth(_token(client, data["other"])),
        json={"package_id": data["package1"], "match_id": data["match1"]},
    )
    assert r.status_code == 403

    r = client.post("/api/public/customer/validate-delivery", headers=headers, json={"package_id": data["package1"], "match_id": data["match2"]})
    assert r.status_code == 404

    r = client.post(
        "/api/public/customer/validate-delivery",
        headers=headers,
        json={"package_id": data["package1"], "match_id": data["match1"], "rating": 5, "review": "Parfait"},
    )
    assert r.status_code == 200
    assert r.json["match"]["status"] == "COMPLETED"
    assert "Customer rating (5/5): Parfait" in r.json["match"]["notes"]

    with session_scope(client.application) as s:
        assert s.get(Package, data["package1"]).status == "DELIVERED"
        payment = s.query(Payment).filter(Payment.match_id == data["match1"]).one()
        assert payment.status == "COMPLETED"
        assert payment.completed_at is not None
        carrier_notes = s.query(Notification).filter(Notification.user_id == data["carrier"]).all()
        assert [n.type for n in carrier_notes] == ["MATCH_UPDATE"]

    r = client.post("/api/public/customer/validate-delivery", headers=headers, json={"package_id": data["package1"], "match_id": data["match1"]})
    assert r.status_code == 400


def test_carrier_match_status(client, data):
    headers = _auth(_token(client, data["carrier"]))
    url = f"/api/public/carrier/matches/{data['match2']}/status"

    r = client.post(url, headers=_auth(_token(client, data["customer"])), json={"status": "IN_TRANSIT"})
    assert r.status_code == 403

    r = client.post(url, headers=_auth(_token(client, data["carrier2"])), json={"status": "IN_TRANSIT"})
    assert r.status_code == 403

    r = client.post(url, headers=headers, json={"status": "TELEPORTED"})
    assert r.status_code == 400

    r = client.post("/api/public/carrier/matches/9999/status", headers=headers, json={"status": "IN_TRANSIT"})
    assert r.status_code == 404

    r = client.post(url, headers=headers, json={"status": "IN_TRANSIT"})
    assert r.status_code == 200
    assert r.json["match"]["status"] == "IN_TRANSIT"
    assert r.json["match"]["started_at"] is not None

    r = client.post(url, headers=headers, json={"status": "DELIVERED"})
    assert r.status_code == 200

    with session_scope(client.application) as s:
        assert s.get(Package, data["package2"]).status == "DELIVERED"
        payment = s.query(Payment).filter(Payment.match_id == data["match2"]).one()
        assert payment.status == "COMPLETED"
        assert payment.amount == 15.0
        assert payment.user_id == data["customer"]
        types = [n.type for n in s.query(Notification).filter(Notification.user_id == data["customer"]).order_by(Notification.id)]
        assert types == ["SYSTEM", "DELIVERY_STARTED", "DELIVERY_COMPLETED"]


def test_provider_manage_booking(client, data):
    headers = _auth(_token(client, data["provider"]))
    url = f"/api/public/provider/bookings/{data['booking_pending']}/manage"

    r = client.post(url, headers=_auth(_token(client, data["provider2"])), json={"action": "ACCEPT"})
    assert r.status_code == 403

    r = client.post(url, headers=headers, json={"action": "MAYBE"})
    assert r.status_code == 400

    r = client.post(url, headers=headers, json={"action": "accept"})
    assert r.status_code == 200
    assert r.json["booking"]["status"] == "CONFIRMED"

    r = client.post(url, headers=headers, json={"action": "REJECT"})
    assert r.status_code == 400

    r = client.post(
        f"/api/public/provider/bookings/{data['booking_confirmed']}/manage", headers=headers, json={"action": "REJECT", "reason": "Indisponible"}
    )
    assert r.status_code == 400

    with session_scope(client.application) as s:
        n = s.query(Notification).filter(Notification.type == "BOOKING_UPDATE").one()
        assert n.user_id == data["customer"]
        assert n.title == "Réservation confirmée"


def test_customer_service_actions(client, data):
    headers = _auth(_token(client, data["customer"]))

    r = client.put("/api/public/customer/service", headers=headers, json={"booking_id": data["booking_pending"]})
    assert r.status_code == 400

    r = client.put("/api/public/customer/service", headers=headers, json={"booking_id": 9999, "action": "cancel"})
    assert r.status_code == 404

    r = client.put(
        "/api/public/customer/service", headers=_auth(_token(client, data["other"])), json={"booking_id": data["booking_pending"], "action": "cancel"}
    )
    assert r.status_code == 403

    r = client.put("/api/public/customer/service", headers=headers, json={"booking_id": data["booking_pending"], "action": "complete"})
    assert r.status_code == 400

    r = client.put("/api/public/customer/service", headers=headers, json={"booking_id": data["booking_in_progress"], "action": "rate", "rating": 4})
    assert r.status_code == 400

    r = client.put("/api/public/customer/service", headers=headers, json={"booking_id": data["booking_in_progress"], "action": "complete"})
    assert r.status_code == 200
    assert r.json["booking"]["status"] == "COMPLETED"

    r = client.put(
        "/api/public/customer/service", headers=headers, json={"booking_id": data["booking_in_progress"], "action": "rate", "rating": 9}
    )
    assert r.status_code == 400

    r = client.put(
        "/api/public/customer/service",
        headers=headers,
        json={"booking_id": data["booking_in_progress"], "action": "rate", "rating": 4, "review": "Très bien"},
    )
    assert r.status_code == 200
    assert r.json["booking"]["rating"] == 4

    r = client.put("/api/public/customer/service", headers=headers, json={"booking_id": data["booking_confirmed"], "action": "cancel"})
    assert r.status_code == 200
    assert r.json["booking"]["status"] == "CANCELLED"

    r = client.put("/api/public/customer/service", headers=headers, json={"booking_id": data["booking_confirmed"], "action": "cancel"})
    assert r.status_code == 400

    with session_scope(client.application) as s:
        assert s.get(Service, data["service"]).rating == 4.0
