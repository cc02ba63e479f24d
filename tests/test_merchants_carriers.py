from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.auth import _login_attempts
from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.db import session_scope
from app.ecodeli.models import AdminRole, AuditEvent, Base, Permission, User
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.merchants.models import Product
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.rides.models import Ride
from app.ecodeli.security import create_access_token


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
        shop = User(email="shop@example.com", first_name="Marc", company_name="Boutique Verte", role="MERCHANT", is_active=True)
        other_shop = User(email="other@example.com", role="MERCHANT", is_active=True)
        carrier = User(email="carrier@example.com", first_name="Carla", last_name="Route", role="CARRIER", is_active=True)
        sender = User(email="sender@example.com", first_name="Sam", role="CUSTOMER", is_active=True)
        s.add_all([r, u, shop, other_shop, carrier, sender])
        s.flush()

        s.add_all(
            [
                Product(merchant_id=shop.id, name="Panier bio", price=24.0, category="Épicerie", stock=5),
                Product(merchant_id=shop.id, name="Savon", price=4.5, category="Hygiène", stock=40),
            ]
        )

        ride = Ride(user_id=carrier.id, origin="Paris", destination="Lyon", departure_time=datetime.utcnow() + timedelta(days=1))
        matched = Package(
            user_id=sender.id,
            title="Vélo",
            pickup_address="Paris",
            delivery_address="Lyon",
            sender_name="Sam Durand",
            recipient_name="Léa",
            tracking_number="ECO-1",
            price=30.0,
            status="IN_TRANSIT",
        )
        waiting = Package(user_id=sender.id, title="Lampe", pickup_address="Lille", delivery_address="Nantes")
        s.add_all([ride, matched, waiting])
        s.flush()
        now = datetime.utcnow()
        s.add_all(
            [
                Match(package_id=matched.id, ride_id=ride.id, status="IN_TRANSIT", created_at=now - timedelta(hours=2)),
                Match(package_id=matched.id, ride_id=ride.id, status="CANCELLED", created_at=now),
            ]
        )

    return app.test_client()


def _login(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200


def _user_id(client, email):
    with session_scope(client.application) as s:
        return s.query(User).filter(User.email == email).one().id


def _token(client, user_id):
    with session_scope(client.application) as s:
        user = s.get(User, user_id)
    with client.application.app_context():
        return create_access_token(user)


def test_merchants_list_and_products(client):
    _login(client)
    shop = _user_id(client, "shop@example.com")

    r = client.get("/api/merchants")
    assert r.status_code == 200
    assert r.json["total"] == 2
    counts = {m["email"]: m["product_count"] for m in r.json["merchants"]}
    assert counts == {"shop@example.com": 2, "other@example.com": 0}

    r = client.get("/api/merchants/products")
    assert r.status_code == 400
    r = client.get("/api/merchants/products", query_string={"merchant_id": "abc"})
    assert r.status_code == 400
    r = client.get("/api/merchants/products", query_string={"merchant_id": _user_id(client, "carrier@example.com")})
    assert r.status_code == 404

    r = client.get("/api/merchants/products", query_string={"merchant_id": shop})
    assert r.status_code == 200
    assert {p["name"] for p in r.json} == {"Panier bio", "Savon"}
    assert r.json[0]["merchant"]["company_name"] == "Boutique Verte"

    product_id = r.json[0]["id"]
    r = client.delete("/api/merchants/products/9999")
    assert r.status_code == 404
    r = client.delete(f"/api/merchants/products/{product_id}")
    assert r.status_code == 200
    with session_scope(client.application) as s:
        assert s.get(Product, product_id) is None


def test_merchant_manages_own_products(client):
    shop = _user_id(client, "shop@example.com")
    headers = {"Authorization": f"Bearer {_token(client, shop)}"}

    r = client.post("/api/public/merchant/products", json={"name": "Miel", "price": 9}, headers=headers)
    assert r.status_code == 400
    r = client.post("/api/public/merchant/products", json={"name": "Miel", "price": -1, "category": "Épicerie"}, headers=headers)
    assert r.status_code == 400
    r = client.post("/api/public/merchant/products", json={"name": "Miel", "price": 9, "category": "Épicerie", "stock": 12}, headers=headers)
    assert r.status_code == 201
    product = r.json["product"]
    assert product["stock"] == 12
    assert product["is_active"] is True

    r = client.put(f"/api/public/merchant/products/{product['id']}", json={"price": 10.5, "category": ""}, headers=headers)
    assert r.status_code == 200
    assert r.json["product"]["price"] == 10.5
    assert r.json["product"]["category"] == "Autre"
    r = client.put(f"/api/public/merchant/products/{product['id']}", json={"name": ""}, headers=headers)
    assert r.status_code == 400

    r = client.get("/api/public/merchant/products", headers=headers)
    assert len(r.json["products"]) == 3

    other = _user_id(client, "other@example.com")
    other_headers = {"Authorization": f"Bearer {_token(client, other)}"}
    r = client.put(f"/api/public/merchant/products/{product['id']}", json={"price": 1}, headers=other_headers)
    assert r.status_code == 403
    r = client.delete(f"/api/public/merchant/products/{product['id']}", headers=other_headers)
    assert r.status_code == 403

    carrier_headers = {"Authorization": f"Bearer {_token(client, _user_id(client, 'carrier@example.com'))}"}
    r = client.get("/api/public/merchant/products", headers=carrier_headers)
    assert r.status_code == 403

    r = client.delete(f"/api/public/merchant/products/{product['id']}", headers=headers)
    assert r.status_code == 200
    r = client.delete(f"/api/public/merchant/products/{product['id']}", headers=headers)
    assert r.status_code == 404


def test_carrier_status(client):
    _login(client)
    carrier = _user_id(client, "carrier@example.com")

    r = client.get("/api/carriers/9999/status")
    assert r.status_code == 404
    assert r.json["success"] is False
    r = client.get(f"/api/carriers/{_user_id(client, 'shop@example.com')}/status")
    assert r.status_code == 404

    r = client.get(f"/api/carriers/{carrier}/status")
    assert r.status_code == 200
    assert r.json["data"]["is_online"] is False
    assert r.json["data"]["rides_count"] == 1
    assert r.json["data"]["last_active_at"] is None

    r = client.post(f"/api/carriers/{carrier}/status", json={})
    assert r.status_code == 400
    r = client.post("/api/carriers/9999/status", json={"is_online": True})
    assert r.status_code == 404

    r = client.post(f"/api/carriers/{carrier}/status", json={"is_online": True})
    assert r.status_code == 200
    assert r.json["message"] == "Carrier is now online"
    assert r.json["data"]["is_online"] is True
    assert r.json["data"]["last_active_at"] is not None

    # Same value again: no new audit row.
    client.post(f"/api/carriers/{carrier}/status", json={"is_online": "true"})
    with session_scope(client.application) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "carrier.status").count() == 1


def test_carrier_sets_own_status(client):
    carrier = _user_id(client, "carrier@example.com")
    headers = {"Authorization": f"Bearer {_token(client, carrier)}"}

    r = client.post("/api/public/carrier/status", json={}, headers=headers)
    assert r.status_code == 400
    r = client.post("/api/public/carrier/status", json={"is_online": True}, headers=headers)
    assert r.status_code == 200
    assert r.json["data"]["is_online"] is True

    with session_scope(client.application) as s:
        assert s.get(User, carrier).is_online is True


def test_deliveries_view(client):
    _login(client)

    r = client.get("/api/deliveries", query_string={"status": "all"})
    assert r.status_code == 200
    assert len(r.json) == 2

    r = client.get("/api/deliveries", query_string={"status": "IN_TRANSIT"})
    assert len(r.json) == 1
    delivery = r.json[0]
    assert delivery["tracking_number"] == "ECO-1"
    assert delivery["price"] == 30.0
    assert delivery["package"]["sender"] == {"first_name": "Sam", "last_name": "Durand"}
    assert delivery["package"]["recipient"] == {"name": "Léa"}
    # The in-transit match wins over the newer cancelled one.
    assert delivery["ride"]["match_status"] == "IN_TRANSIT"
    assert delivery["ride"]["carrier"]["first_name"] == "Carla"
    assert delivery["ride"]["carrier"]["is_online"] is False
    assert delivery["ride"]["start_location"] == "Paris"

    r = client.get("/api/deliveries", query_string={"search": "Lampe"})
    assert len(r.json) == 1
    waiting = r.json[0]
    assert waiting["price"] == 0
    assert waiting["ride"]["carrier"] is None
    assert waiting["ride"]["start_location"] == "Lille"
    assert waiting["ride"]["end_location"] == "Nantes"
