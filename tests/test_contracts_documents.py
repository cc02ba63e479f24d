from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.ecodeli import create_app
from app.ecodeli.auth import _login_attempts
from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.db import session_scope
from app.ecodeli.file_storage import LocalStorage, StorageError
from app.ecodeli.models import AdminRole, AuditEvent, Base, Permission, User
from app.ecodeli.modules.contracts.models import Contract
from app.ecodeli.modules.documents.models import Document
from app.ecodeli.modules.documents.pdf import format_eur, render_contract_pdf


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "storage"))
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
        s.add_all(
            [
                r,
                u,
                User(
                    email="shop@example.com",
                    first_name="Marc",
                    last_name="Marchand",
                    company_name="Boutique Verte",
                    address="1 rue de Rivoli, Paris",
                    role="MERCHANT",
                    user_type="PROFESSIONAL",
                ),
                User(email="solo@example.com", role="MERCHANT", user_type="INDIVIDUAL"),
                User(email="truck@example.com", first_name="Carla", role="CARRIER", user_type="PROFESSIONAL"),
            ]
        )

    return app.test_client()


def _login(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200


def _user_id(client, email):
    with session_scope(client.application) as s:
        return s.query(User).filter(User.email == email).one().id


def _contract_payload(**overrides):
    payload = {
        "title": "Livraison locale",
        "content": "EcoDeli assure les livraisons de la boutique.",
        "terms": "Paiement à 30 jours.",
        "value": "1500",
        "start_date": "2030-01-01T00:00:00Z",
        "end_date": "2030-12-31T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def test_create_contract_validation(client):
    _login(client)
    shop = _user_id(client, "shop@example.com")
    truck = _user_id(client, "truck@example.com")
    solo = _user_id(client, "solo@example.com")

    r = client.post("/api/contracts", json=_contract_payload(title="", merchant_id=shop))
    assert r.status_code == 400

    r = client.post("/api/contracts", json=_contract_payload())
    assert r.status_code == 400
    r = client.post("/api/contracts", json=_contract_payload(merchant_id=shop, carrier_id=truck))
    assert r.status_code == 400

    r = client.post("/api/contracts", json=_contract_payload(merchant_id=9999))
    assert r.status_code == 404

    r = client.post("/api/contracts", json=_contract_payload(merchant_id=solo))
    assert r.status_code == 400
    assert "PROFESSIONAL" in r.json["error"]

    # A carrier cannot be the merchant party.
    r = client.post("/api/contracts", json=_contract_payload(merchant_id=truck))
    assert r.status_code == 400

    r = client.post("/api/contracts", json=_contract_payload(merchant_id=shop, end_date="2029-01-01T00:00:00Z"))
    assert r.status_code == 400

    r = client.post("/api/contracts", json=_contract_payload(merchant_id=shop, status="SIGNED"))
    assert r.status_code == 400


def test_contract_lifecycle(client):
    _login(client)
    shop = _user_id(client, "shop@example.com")
    truck = _user_id(client, "truck@example.com")

    r = client.post("/api/contracts", json=_contract_payload(merchant_id=shop))
    assert r.status_code == 201
    contract = r.json
    assert contract["status"] == "PENDING_SIGNATURE"
    assert contract["value"] == 1500.0
    assert contract["currency"] == "EUR"
    assert contract["merchant"]["company_name"] == "Boutique Verte"
    assert contract["carrier"] is None
    assert contract["documents"] == []

    r = client.post("/api/contracts", json=_contract_payload(carrier_id=truck, title="Tournées", status="DRAFT"))
    assert r.status_code == 201
    draft_id = r.json["id"]

    r = client.get("/api/contracts", query_string={"merchant_id": shop})
    assert [c["id"] for c in r.json] == [contract["id"]]
    r = client.get("/api/contracts", query_string={"status": "DRAFT"})
    assert [c["id"] for c in r.json] == [draft_id]
    r = client.get("/api/contracts", query_string={"limit": 1})
    assert len(r.json) == 1

    r = client.put("/api/contracts", json={"status": "SIGNED"})
    assert r.status_code == 400
    r = client.put("/api/contracts", json={"id": 9999, "status": "SIGNED"})
    assert r.status_code == 404
    r = client.put("/api/contracts", json={"id": contract["id"], "status": "BOGUS"})
    assert r.status_code == 400

    r = client.put("/api/contracts", json={"id": contract["id"], "status": "SIGNED", "value": None})
    assert r.status_code == 200
    assert r.json["status"] == "SIGNED"
    assert r.json["signed_at"] is not None
    assert r.json["value"] is None

    r = client.delete(f"/api/contracts/{contract['id']}")
    assert r.status_code == 400
    assert r.json["error"] == "Only DRAFT contracts can be deleted"

    r = client.delete(f"/api/contracts/{draft_id}")
    assert r.status_code == 200
    r = client.delete(f"/api/contracts/{draft_id}")
    assert r.status_code == 404

    with session_scope(client.application) as s:
        actions = {e.action for e in s.query(AuditEvent).all()}
    assert {"contract.create", "contract.edit", "contract.delete"} <= actions


def test_generate_download_and_delete_document(client, tmp_path):
    _login(client)
    shop = _user_id(client, "shop@example.com")
    contract_id = client.post("/api/contracts", json=_contract_payload(merchant_id=shop, status="DRAFT")).json["id"]

    r = client.post("/api/documents", json={})
    assert r.status_code == 400
    r = client.post("/api/documents", json={"contract_id": 9999})
    assert r.status_code == 404
    r = client.post("/api/documents", json={"contract_id": contract_id, "type": "NOPE"})
    assert r.status_code == 400

    r = client.post("/api/documents", json={"contract_id": contract_id})
    assert r.status_code == 201
    doc = r.json
    assert doc["type"] == "CONTRACT"
    assert doc["title"] == "Contrat Livraison locale"
    assert doc["user_id"] == shop
    assert doc["related_entity"] == {"id": contract_id, "title": "Livraison locale", "status": "DRAFT"}
    assert doc["file_size"] > 0

    with session_scope(client.application) as s:
        key = s.get(Document, doc["id"]).storage_key
    stored = tmp_path / "storage" / key
    assert stored.read_bytes().startswith(b"%PDF")

    r = client.get("/api/contracts")
    assert [d["id"] for d in r.json[0]["documents"]] == [doc["id"]]

    r = client.get("/api/documents", query_string={"related_entity_type": "contract"})
    assert [d["id"] for d in r.json] == [doc["id"]]
    r = client.get("/api/documents", query_string={"type": "INVOICE"})
    assert r.json == []

    r = client.get(f"/api/documents/{doc['id']}/download")
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")
    r.close()

    r = client.delete(f"/api/documents/{doc['id']}")
    assert r.status_code == 200
    assert not stored.exists()
    r = client.delete(f"/api/documents/{doc['id']}")
    assert r.status_code == 404


def test_deleting_draft_contract_removes_its_documents(client, tmp_path):
    _login(client)
    shop = _user_id(client, "shop@example.com")
    contract_id = client.post("/api/contracts", json=_contract_payload(merchant_id=shop, status="DRAFT")).json["id"]
    doc_id = client.post("/api/documents", json={"contract_id": contract_id}).json["id"]

    with session_scope(client.application) as s:
        stored = tmp_path / "storage" / s.get(Document, doc_id).storage_key
    assert stored.exists()

    r = client.delete(f"/api/contracts/{contract_id}")
    assert r.status_code == 200
    assert not stored.exists()
    with session_scope(client.application) as s:
        assert s.query(Document).count() == 0


def test_non_professional_party_gets_no_pdf(client):
    _login(client)
    shop = _user_id(client, "shop@example.com")
    contract_id = client.post("/api/contracts", json=_contract_payload(merchant_id=shop)).json["id"]
    client.put(f"/api/users/{shop}", json={"user_type": "INDIVIDUAL"})

    r = client.post("/api/documents", json={"contract_id": contract_id})
    assert r.status_code == 400


def test_force_delete_user_removes_contracts_and_files(client, tmp_path):
    _login(client)
    shop = _user_id(client, "shop@example.com")
    contract_id = client.post("/api/contracts", json=_contract_payload(merchant_id=shop)).json["id"]
    doc_id = client.post("/api/documents", json={"contract_id": contract_id}).json["id"]
    with session_scope(client.application) as s:
        stored = tmp_path / "storage" / s.get(Document, doc_id).storage_key

    r = client.delete(f"/api/users/{shop}")
    assert r.status_code == 400
    assert r.json["details"]["contracts"] == 1

    r = client.delete(f"/api/users/{shop}", query_string={"force": "true"})
    assert r.status_code == 200
    assert not stored.exists()
    with session_scope(client.application) as s:
        assert s.query(Contract).count() == 0
        assert s.query(Document).count() == 0


def test_format_eur():
    assert format_eur(1234.5) == "1 234,50 €"
    assert format_eur(0) == "0,00 €"


def test_render_contract_pdf_for_carrier():
    carrier = User(id=7, email="truck@example.com", first_name="Carla", role="CARRIER", user_type="PROFESSIONAL")
    contract = Contract(
        id=3,
        carrier_id=7,
        title="Tournées",
        content="Ligne 1\nLigne 2 " + "très longue " * 40,
        terms="Aucune",
        value=99.0,
        created_at=datetime(2030, 1, 1),
        start_date=datetime(2030, 1, 1),
    )
    contract.carrier = carrier
    data = render_contract_pdf(contract)
    assert data.startswith(b"%PDF")


def test_local_storage_rejects_keys_outside_root(tmp_path):
    storage = LocalStorage(root=tmp_path / "storage")
    storage.put_bytes("documents/a.pdf", b"%PDF-1.4")
    assert storage.exists("documents/a.pdf")
    with pytest.raises(StorageError):
        storage.put_bytes("../escape.pdf", b"x")
    storage.delete("documents/a.pdf")
    storage.delete("documents/a.pdf")
    with pytest.raises(StorageError):
        storage.open("documents/a.pdf")
