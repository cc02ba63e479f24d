import pytest
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.auth import _login_attempts
from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.db import session_scope
from app.ecodeli.models import AdminRole, AuditEvent, Base, Permission, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS", "ONESIGNAL_APP_ID", "ONESIGNAL_API_KEY", "STRIPE_SECRET_KEY"):
        monkeypatch.delenv(k, raising=False)
    _login_attempts.clear()

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        admin = AdminRole(key="admin", name="Administrator")
        for key, name in ADMIN_PERMISSIONS:
            admin.permissions.append(Permission(key=key, name=name))
        viewer = AdminRole(key="viewer", name="Viewer")
        viewer.permissions.append(next(p for p in admin.permissions if p.key == "admin.view"))

        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), first_name="Ada", last_name="Admin", role="ADMIN", is_active=True)
        u.admin_roles.append(admin)
        v = User(email="viewer@example.com", password_hash=generate_password_hash("pw"), role="ADMIN", is_active=True)
        v.admin_roles.append(viewer)
        c = User(email="customer@example.com", password_hash=generate_password_hash("pw"), role="CUSTOMER", is_active=True)
        s.add_all([admin, viewer, u, v, c])

    yield app.test_client()
    _login_attempts.clear()


def _login(client, email="admin@example.com", password="pw"):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_login_and_me(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401

    r = _login(client)
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["user"]["email"] == "admin@example.com"
    assert "admin" in r.json["user"]["admin_roles"]
    assert "users.edit" in r.json["user"]["permissions"]

    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["email"] == "admin@example.com"

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    r = client.get("/api/auth/me")
    assert r.status_code == 401


def test_login_rejects_bad_password_and_records_event(client):
    r = _login(client, password="nope")
    assert r.status_code == 401
    assert r.json["error"]

    with session_scope(client.application) as s:
        actions = [e.action for e in s.query(AuditEvent).all()]
    assert "auth.login_failed" in actions


def test_login_requires_admin_role(client):
    r = _login(client, email="customer@example.com")
    assert r.status_code == 401


def test_login_rate_limited(client):
    for _ in range(5):
        r = _login(client, password="nope")
        assert r.status_code == 401
    r = _login(client, password="nope")
    assert r.status_code == 429


def test_api_requires_authentication(client):
    r = client.get("/api/users")
    assert r.status_code == 401
    assert r.json["error"] == "Authentication required"


def test_missing_permission_is_reported(client):
    r = _login(client, email="viewer@example.com")
    assert r.status_code == 200

    r = client.get("/api/users")
    assert r.status_code == 403
    assert r.json["error"] == "Forbidden"
    assert r.json["missing_permission"] == "users.view"

    r = client.get("/api/dashboard")
    assert r.status_code == 200


def test_unknown_api_route_returns_json_404(client):
    _login(client)
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "error" in r.json


def test_db_diagnostics(client):
    _login(client)
    r = client.get("/api/test-db")
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["counts"]["users"] == 3
