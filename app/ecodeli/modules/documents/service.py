from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.audit import record_event
from app.ecodeli.constants import DOCUMENT_TYPES
from app.ecodeli.modules.contracts.models import Contract
from app.ecodeli.modules.documents.models import Document
from app.ecodeli.modules.documents.pdf import render_contract_pdf
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.file_storage import Storage
    from app.ecodeli.models import User

logger = logging.getLogger(__name__)

RELATED_CONTRACT = "contract"


def document_summary(d: Document) -> dict[str, Any]:
    return {
        "id": d.id,
        "type": d.type,
        "title": d.title,
        "file_name": d.file_name,
        "file_size": d.file_size,
        "created_at": iso(d.created_at),
    }


def document_to_dict(d: Document, related_entity: dict[str, Any] | None = None) -> dict[str, Any]:
    u = d.user
    data = document_summary(d)
    data.update(
        {
            "user_id": d.user_id,
            "description": d.description,
            "mime_type": d.mime_type,
            "related_entity_type": d.related_entity_type,
            "related_entity_id": d.related_entity_id,
            "related_entity": related_entity,
            "is_public": d.is_public,
            "updated_at": iso(d.updated_at),
            "user": (
                {
                    "id": u.id,
                    "first_name": u.first_name,
                    "last_name": u.last_name,
                    "email": u.email,
                    "name": u.name,
                    "user_type": u.user_type,
                    "company_name": u.company_name,
                }
                if u
                else None
            ),
        }
    )
    return data


def related_entity(s: "Session", d: Document) -> dict[str, Any] | None:
    if d.related_entity_type != RELATED_CONTRACT or not d.related_entity_id:
        return None
    c = s.get(Contract, d.related_entity_id)
    if c is None:
        return None
    return {"id": c.id, "title": c.title, "status": c.status}


def list_documents(
    s: "Session",
    *,
    user_id: int | None = None,
    doc_type: str | None = None,
    related_entity_type: str | None = None,
) -> list[Document]:
    q = s.query(Document)
    if user_id:
        q = q.filter(Document.user_id == user_id)
    if doc_type:
        q = q.filter(Document.type == doc_type)
    if related_entity_type:
        q = q.filter(Document.related_entity_type == related_entity_type)
    return q.order_by(Document.created_at.desc(), Document.id.desc()).all()


def contract_documents(s: "Session", contract_id: int) -> list[Document]:
    return (
        s.query(Document)
        .filter(Document.related_entity_type == RELATED_CONTRACT, Document.related_entity_id == contract_id)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .all()
    )


def generate_contract_document(
    s: "Session",
    storage: "Storage",
    contract: Contract,
    actor: "User | None",
    *,
    doc_type: str = "CONTRACT",
) -> Document:
    """
    Render the contract to PDF, store it, and record a Document row linked to the contract.
    Raises LookupError (contract has no party) or ValueError (bad type / non-professional party).
    """
    if doc_type not in DOCUMENT_TYPES:
        raise ValueError(f"Invalid type. Must be one of: {', '.join(DOCUMENT_TYPES)}")
    party = contract.party
    if party is None:
        raise LookupError("Contract party not found")
    if party.user_type != "PROFESSIONAL":
        raise ValueError("PDFs can only be generated for PROFESSIONAL users")

    data = render_contract_pdf(contract)
    now = datetime.utcnow()
    file_name = f"contract_{contract.id}_{now.strftime('%Y%m%d%H%M%S%f')}.pdf"
    storage_key = f"documents/{file_name}"
    storage.put_bytes(storage_key, data, content_type="application/pdf")

    doc = Document(
        user_id=party.id,
        type=doc_type,
        title=f"Contrat {contract.title}",
        description=f"PDF généré pour le contrat {contract.title}",
        file_name=file_name,
        storage_key=storage_key,
        file_size=len(data),
        mime_type="application/pdf",
        related_entity_type=RELATED_CONTRACT,
        related_entity_id=contract.id,
        is_public=False,
        created_at=now,
        updated_at=now,
    )
    s.add(doc)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="document.generate",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"contract_id": contract.id, "storage_key": storage_key, "size": len(data)},
    )
    logger.info("Generated contract PDF contract_id=%s bytes=%s", contract.id, len(data))
    return doc


def delete_document(s: "Session", storage: "Storage", doc: Document, actor: "User | None") -> None:
    storage.delete(doc.storage_key)
    record_event(
        s,
        actor=actor,
        action="document.delete",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"file_name": doc.file_name, "related_entity_id": doc.related_entity_id},
    )
    s.delete(doc)
    s.flush()


def delete_documents_for(s: "Session", storage: "Storage | None", docs: list[Document]) -> int:
    """Remove files and rows; used when the owning contract or user goes away."""
    for doc in docs:
        if storage is not None:
            storage.delete(doc.storage_key)
        s.delete(doc)
    s.flush()
    return len(docs)
