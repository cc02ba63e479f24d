import pytest
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.auth import _login_attempts
from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.db import session_scope
from app.ecodeli.models import AdminRole, Base, Permission, User


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
        customer = User(email="customer@example.com", first_name="Chloé", last_name="Client", role="CUSTOMER", is_active=True)
        provider = User(email="provider@example.com", first_name="Paul", last_name="Provider", role="PROVIDER", is_active=True)
        s.add_all([r, u, customer, provider])

    return app.test_client()


def _login(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200


def _user_id(client, email):
    with session_scope(client.application) as s:
        return s.query(User).filter(User.email == email).one().id


def test_services_and_bookings(client):
    _login(client)
    provider_id = _user_id(client, "provider@example.com")
    customer_id = _user_id(client, "customer@example.com")

    r = client.post("/api/services", json={"provider_id": provider_id, "name": "Cleaning"})
    assert r.status_code == 400

    r = client.post("/api/services", json={"provider_id": 9999, "name": "Cleaning", "category": "HOME", "price": 30})
    assert r.status_code == 404

    r = client.post("/api/services", json={"provider_id": provider_id, "name": "Cleaning", "category": "HOME", "price": 30, "duration": 90})
    assert r.status_code == 201
    service = r.json
    assert service["provider"]["email"] == "provider@example.com"

    storage = client.post(
        "/api/services",
        json={"provider_id": provider_id, "name": "Location Box 12", "category": "STORAGE", "price": 5},
    ).json

    r = client.post("/api/bookings", json={"service_id": service["id"], "customer_id": customer_id})
    assert r.status_code == 400

    r = client.post("/api/bookings", json={"service_id": 9999, "customer_id": customer_id, "scheduled_at": "2030-05-01T10:00:00Z"})
    assert r.status_code == 404

    r = client.post(
        "/api/bookings",
        json={"service_id": service["id"], "customer_id": customer_id, "scheduled_at": "2030-05-01T10:00:00Z", "status": "NOPE"},
    )
    assert r.status_code == 400

    r = client.post("/api/bookings", json={"service_id": service["id"], "customer_id": customer_id, "scheduled_at": "2030-05-01T10:00:00Z"})
    assert r.status_code == 201
    booking = r.json
    assert booking["provider_id"] == provider_id
    assert booking["total_amount"] == 30
    assert booking["duration"] == 90
    assert booking["status"] == "PENDING"
    assert booking["status_label"] == "En Attente"

    client.post("/api/bookings", json={"service_id": storage["id"], "customer_id": customer_id, "scheduled_at": "2030-05-02T10:00:00Z"})

    r = client.get("/api/bookings")
    assert r.status_code == 200
    assert [b["id"] for b in r.json] == [booking["id"]]

    r = client.get("/api/services")
    assert {sv["name"] for sv in r.json} == {"Cleaning", "Location Box 12"}


def test_storage_boxes_and_rentals(client):
    _login(client)
    customer_id = _user_id(client, "customer@example.com")

    r = client.post("/api/storage-boxes", json={"code": "BX-1", "location": "Paris 11e"})
    assert r.status_code == 400

    r = client.post("/api/storage-boxes", json={"code": "BX-1", "location": "Paris 11e", "size": "MEDIUM", "price_per_day": 4.5, "owner_id": 9999})
    assert r.status_code == 404

    r = client.post("/api/storage-boxes", json={"code": "BX-1", "location": "Paris 11e", "size": "MEDIUM", "price_per_day": 4.5})
    assert r.status_code == 201
    box = r.json
    assert box["is_occupied"] is False

    r = client.post("/api/storage-boxes", json={"code": "BX-1", "location": "Lyon", "size": "SMALL", "price_per_day": 2})
    assert r.status_code == 409

    r = client.post(
        "/api/box-rentals",
        json={"box_id": box["id"], "user_id": customer_id, "start_date": "2030-01-10", "end_date": "2030-01-01"},
    )
    assert r.status_code == 400

    r = client.post("/api/box-rentals", json={"box_id": box["id"], "user_id": customer_id, "start_date": "2030-01-01"})
    assert r.status_code == 201
    rental = r.json
    assert rental["is_active"] is True
    assert len(rental["access_code"]) == 6
    assert rental["access_code"].isdigit()
    assert rental["payment_status"] == "PENDING"

    r = client.post("/api/box-rentals", json={"box_id": box["id"], "user_id": customer_id, "start_date": "2030-02-01"})
    assert r.status_code == 400
    assert r.json["error"] == "Storage box is already occupied"

    r = client.get("/api/storage-boxes")
    listed = r.json[0]
    assert listed["is_occupied"] is True
    assert listed["rentals"][0]["user"] == {"first_name": "Chloé", "last_name": "Client"}

    r = client.put("/api/box-rentals", json={"is_active": False})
    assert r.status_code == 400

    r = client.put("/api/box-rentals", json={"id": rental["id"], "is_active": True})
    assert r.status_code == 400

    r = client.put("/api/box-rentals", json={"id": rental["id"], "is_active": False})
    assert r.status_code == 200
    assert r.json["is_active"] is False
    assert r.json["end_date"] is not None

    r = client.put("/api/box-rentals", json={"id": rental["id"], "is_active": False})
    assert r.status_code == 400

    r = client.get("/api/storage-boxes")
    assert r.json[0]["is_occupied"] is False
    assert r.json[0]["rentals"] == []

    r = client.get("/api/box-rentals")
    assert len(r.json) == 1
    assert r.json[0]["box"]["code"] == "BX-1"
