from datetime import datetime, timedelta

import pytest
import stripe
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.auth import _login_attempts
from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.db import session_scope
from app.ecodeli.models import AdminRole, AuditEvent, Base, Permission, User
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.payments.stripe_config import PLACEHOLDER_SECRET, check_stripe_keys, verify_stripe_account
from app.ecodeli.modules.rides.models import Ride


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("STRIPE_SECRET_KEY", "STRIPE_PUBLISHABLE_KEY", "NEXT_PUBLIC_STRIPE_PUBLISHABLE_KEY"):
        monkeypatch.delenv(k, raising=False)
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
        sender = User(email="sender@example.com", first_name="Sam", last_name="Sender", role="CUSTOMER", is_active=True)
        carrier = User(email="carrier@example.com", role="CARRIER", is_active=True)
        s.add_all([r, u, sender, carrier])
        s.flush()

        pkg = Package(user_id=sender.id, title="Vélo", pickup_address="Paris", delivery_address="Lyon")
        ride = Ride(user_id=carrier.id, origin="Paris", destination="Lyon", departure_time=datetime.utcnow() + timedelta(days=1))
        s.add_all([pkg, ride])
        s.flush()
        m = Match(package_id=pkg.id, ride_id=ride.id, status="CONFIRMED", price=40.0)
        s.add(m)
        s.flush()
        s.add(Payment(user_id=sender.id, match_id=m.id, amount=40.0, status="PENDING"))
        s.add(Payment(user_id=sender.id, amount=9.99, status="COMPLETED", completed_at=datetime(2030, 1, 1)))

    return app.test_client()


def _login(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200


def test_payments_list(client):
    _login(client)
    r = client.get("/api/payments")
    assert r.status_code == 200
    assert len(r.json) == 2
    descriptions = {p["description"] for p in r.json}
    assert descriptions == {"Transport Vélo - Paris → Lyon", "Paiement"}

    r = client.get("/api/payments", query_string={"status": "COMPLETED"})
    assert [p["amount"] for p in r.json] == [9.99]

    r = client.get("/api/payments", query_string={"status": "all"})
    assert len(r.json) == 2

    r = client.get("/api/payments", query_string={"user_id": "abc"})
    assert r.status_code == 400


def test_payment_status_update(client):
    _login(client)
    with session_scope(client.application) as s:
        pending_id = s.query(Payment).filter(Payment.status == "PENDING").one().id

    r = client.put("/api/payments", json={"id": pending_id})
    assert r.status_code == 400

    r = client.put("/api/payments", json={"id": 9999, "status": "COMPLETED"})
    assert r.status_code == 404

    r = client.put("/api/payments", json={"id": pending_id, "status": "LOST"})
    assert r.status_code == 400

    r = client.put("/api/payments", json={"id": pending_id, "status": "COMPLETED"})
    assert r.status_code == 200
    assert r.json["status"] == "COMPLETED"
    assert r.json["completed_at"] is not None
    assert r.json["match"]["package"]["title"] == "Vélo"

    with session_scope(client.application) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "payment.status_change").one()
        assert ev.entity_id == str(pending_id)


def test_stripe_config_endpoint_reports_missing_keys(client):
    _login(client)
    r = client.get("/api/payments/stripe-config")
    assert r.status_code == 200
    assert r.json["ok"] is False
    assert r.json["secret_key"] == "missing"
    assert r.json["publishable_key"] == "missing"
    assert r.json["account"] is None


def test_check_stripe_keys():
    report = check_stripe_keys("sk_test_abc", "pk_test_def")
    assert report.ok
    assert report.mode == "test"

    report = check_stripe_keys("sk_live_abc", "pk_live_def")
    assert report.ok
    assert report.mode == "live"

    report = check_stripe_keys("sk_live_abc", "pk_test_def")
    assert not report.ok
    assert report.mode is None
    assert "different modes" in report.errors[0]

    report = check_stripe_keys(PLACEHOLDER_SECRET, "nonsense")
    assert report.secret_key_status == "placeholder"
    assert report.publishable_key_status == "invalid"
    assert len(report.errors) == 2


def test_verify_stripe_account(monkeypatch):
    calls = []

    def fake_retrieve(**kwargs):
        calls.append(("account", kwargs["api_key"]))
        return {"id": "acct_1", "country": "FR", "default_currency": "eur", "settings": {"dashboard": {"display_name": "EcoDeli"}}}

    def fake_list(**kwargs):
        calls.append(("customers", kwargs["api_key"]))
        return {"data": []}

    monkeypatch.setattr(stripe.Account, "retrieve", fake_retrieve)
    monkeypatch.setattr(stripe.Customer, "list", fake_list)

    report = verify_stripe_account("sk_test_abc", check_stripe_keys("sk_test_abc", "pk_test_def"))
    assert report.ok
    assert report.account == {"id": "acct_1", "display_name": "EcoDeli", "country": "FR", "default_currency": "eur"}
    assert calls == [("account", "sk_test_abc"), ("customers", "sk_test_abc")]


def test_verify_stripe_account_records_api_error(monkeypatch):
    def fake_retrieve(**kwargs):
        raise stripe.AuthenticationError("Invalid API Key provided")

    monkeypatch.setattr(stripe.Account, "retrieve", fake_retrieve)

    report = verify_stripe_account("sk_test_bad", check_stripe_keys("sk_test_bad", "pk_test_def"))
    assert not report.ok
    assert report.errors[0].startswith("Stripe API error:")
    assert report.account is None


def test_live_check_skipped_without_usable_key(monkeypatch):
    def boom(**kwargs):
        raise AssertionError("Stripe must not be called")

    monkeypatch.setattr(stripe.Account, "retrieve", boom)
    report = verify_stripe_account("", check_stripe_keys("", ""))
    assert report.account is None
