from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.audit import record_event
from app.ecodeli.constants import CONTRACT_STATUSES
from app.ecodeli.models import User
from app.ecodeli.modules.contracts.models import Contract
from app.ecodeli.modules.documents.service import contract_documents, delete_documents_for, document_summary
from app.ecodeli.utils import clean_str, iso, parse_datetime, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.file_storage import Storage

# New contracts may start as a draft or go straight out for signature.
INITIAL_STATUSES = ("DRAFT", "PENDING_SIGNATURE")
PARTY_ROLES = {"merchant_id": "MERCHANT", "carrier_id": "CARRIER"}


def party_to_dict(u: User | None) -> dict[str, Any] | None:
    if u is None:
        return None
    return {
        "id": u.id,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "email": u.email,
        "name": u.name,
        "user_type": u.user_type,
        "company_name": u.company_name,
        "company_first_name": u.company_first_name,
        "company_last_name": u.company_last_name,
        "address": u.address,
        "phone_number": u.phone_number,
    }


def contract_to_dict(c: Contract, documents: list | None = None) -> dict[str, Any]:
    return {
        "id": c.id,
        "merchant_id": c.merchant_id,
        "carrier_id": c.carrier_id,
        "title": c.title,
        "content": c.content,
        "terms": c.terms,
        "value": c.value,
        "currency": c.currency,
        "status": c.status,
        "start_date": iso(c.start_date),
        "end_date": iso(c.end_date),
        "expires_at": iso(c.expires_at),
        "signed_at": iso(c.signed_at),
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
        "merchant": party_to_dict(c.merchant),
        "carrier": party_to_dict(c.carrier),
        "documents": [document_summary(d) for d in (documents or [])],
    }


def list_contracts(
    s: "Session",
    *,
    status: str | None = None,
    merchant_id: int | None = None,
    carrier_id: int | None = None,
    limit: int | None = None,
) -> list[Contract]:
    q = s.query(Contract)
    if status:
        q = q.filter(Contract.status == status)
    if merchant_id:
        q = q.filter(Contract.merchant_id == merchant_id)
    if carrier_id:
        q = q.filter(Contract.carrier_id == carrier_id)
    q = q.order_by(Contract.created_at.desc(), Contract.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def create_contract(s: "Session", payload: dict, actor: User | None) -> Contract:
    """Raises ValueError (bad payload / ineligible party) or LookupError (unknown party)."""
    title = clean_str(payload.get("title"), "title")
    content = clean_str(payload.get("content"), "content")
    terms = clean_str(payload.get("terms"), "terms")
    if not title or not content or not terms:
        raise ValueError("Title, content, and terms are required")

    merchant_id = parse_int(payload.get("merchant_id"), "merchant_id")
    carrier_id = parse_int(payload.get("carrier_id"), "carrier_id")
    if bool(merchant_id) == bool(carrier_id):
        raise ValueError("Either merchant_id or carrier_id is required, but not both")
    party_field = "merchant_id" if merchant_id else "carrier_id"

    party = s.get(User, merchant_id or carrier_id)
    if not party:
        raise LookupError("User not found")
    if party.user_type != "PROFESSIONAL":
        raise ValueError("Contracts can only be created for PROFESSIONAL users")
    expected_role = PARTY_ROLES[party_field]
    if party.role != expected_role:
        raise ValueError(f"{party_field} must reference a {expected_role} user")

    status = payload.get("status") or "PENDING_SIGNATURE"
    if status not in INITIAL_STATUSES:
        raise ValueError(f"Invalid initial status. Must be one of: {', '.join(INITIAL_STATUSES)}")

    now = datetime.utcnow()
    contract = Contract(
        merchant_id=merchant_id,
        carrier_id=carrier_id,
        title=title,
        content=content,
        terms=terms,
        value=parse_float(payload.get("value"), "value"),
        currency=clean_str(payload.get("currency"), "currency") or "EUR",
        status=status,
        start_date=parse_datetime(payload.get("start_date")),
        end_date=parse_datetime(payload.get("end_date")),
        expires_at=parse_datetime(payload.get("expires_at")),
        created_at=now,
        updated_at=now,
    )
    if contract.start_date and contract.end_date and contract.end_date < contract.start_date:
        raise ValueError("end_date must be after start_date")
    s.add(contract)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="contract.create",
        entity_type="Contract",
        entity_id=str(contract.id),
        metadata={party_field: party.id, "status": status},
    )
    return contract


def update_contract(s: "Session", contract: Contract, payload: dict, actor: User | None) -> Contract:
    changes: dict[str, Any] = {}
    status = payload.get("status")
    if status:
        if status not in CONTRACT_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(CONTRACT_STATUSES)}")
        if status != contract.status:
            changes["status"] = {"old": contract.status, "new": status}
            contract.status = status

    signed_at = parse_datetime(payload.get("signed_at"))
    if signed_at is None and contract.status == "SIGNED" and contract.signed_at is None:
        signed_at = datetime.utcnow()
    if signed_at is not None:
        contract.signed_at = signed_at
        changes["signed_at"] = iso(signed_at)

    if "value" in payload:
        new_value = parse_float(payload.get("value"), "value")
        if new_value != contract.value:
            changes["value"] = {"old": contract.value, "new": new_value}
            contract.value = new_value

    expires_at = parse_datetime(payload.get("expires_at"))
    if expires_at is not None:
        contract.expires_at = expires_at
        changes["expires_at"] = iso(expires_at)

    contract.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="contract.edit", entity_type="Contract", entity_id=str(contract.id), metadata={"changes": changes})
    return contract


def delete_contract(s: "Session", storage: "Storage | None", contract: Contract, actor: User | None) -> int:
    """Only drafts can be deleted. Returns the number of linked documents removed."""
    if contract.status != "DRAFT":
        raise ValueError("Only DRAFT contracts can be deleted")
    removed = delete_documents_for(s, storage, contract_documents(s, contract.id))
    record_event(
        s,
        actor=actor,
        action="contract.delete",
        entity_type="Contract",
        entity_id=str(contract.id),
        metadata={"title": contract.title, "documents_removed": removed},
    )
    s.delete(contract)
    s.flush()
    return removed
