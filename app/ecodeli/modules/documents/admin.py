from __future__ import annotations

from flask import Blueprint, abort, current_app, g, jsonify, request, send_file

from app.ecodeli.audit import record_event
from app.ecodeli.db import db_session
from app.ecodeli.file_storage import StorageError, storage_from_config
from app.ecodeli.models import User
from app.ecodeli.modules.contracts.models import Contract
from app.ecodeli.modules.documents.models import Document
from app.ecodeli.modules.documents.service import (
    delete_document,
    document_to_dict,
    generate_contract_document,
    list_documents,
    related_entity,
)
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_int

bp = Blueprint("documents", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/documents")
@require_permission("documents.view")
def documents_list():
    s = db_session()
    try:
        user_id = parse_int(request.args.get("user_id"), "user_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    docs = list_documents(
        s,
        user_id=user_id,
        doc_type=(request.args.get("type") or "").strip() or None,
        related_entity_type=(request.args.get("related_entity_type") or "").strip() or None,
    )
    return jsonify([document_to_dict(d, related_entity(s, d)) for d in docs])


@bp.post("/documents")
@require_permission("documents.edit")
def documents_generate():
    s = db_session()
    payload = json_body()
    try:
        contract_id = parse_int(payload.get("contract_id"), "contract_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not contract_id:
        return jsonify({"error": "Contract ID is required"}), 400
    contract = s.get(Contract, contract_id)
    if not contract:
        return jsonify({"error": "Contract not found"}), 404

    storage = storage_from_config(current_app.config)
    try:
        doc = generate_contract_document(s, storage, contract, _current_user(), doc_type=payload.get("type") or "CONTRACT")
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(document_to_dict(doc, related_entity(s, doc))), 201


@bp.get("/documents/<int:document_id>/download")
@require_permission("documents.view")
def documents_download(document_id: int):
    s = db_session()
    doc = s.get(Document, document_id)
    if not doc:
        abort(404)

    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(doc.storage_key)
    except StorageError as e:
        current_app.logger.warning("Document file missing id=%s: %s", doc.id, e)
        return jsonify({"error": "Document file not found"}), 404

    record_event(
        s,
        actor=_current_user(),
        action="document.download",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"file_name": doc.file_name},
    )
    s.commit()

    return send_file(
        fobj,
        mimetype=doc.mime_type,
        as_attachment=True,
        download_name=doc.file_name,
        max_age=0,
    )


@bp.delete("/documents/<int:document_id>")
@require_permission("documents.edit")
def documents_delete(document_id: int):
    s = db_session()
    doc = s.get(Document, document_id)
    if not doc:
        return jsonify({"error": "Document not found"}), 404
    delete_document(s, storage_from_config(current_app.config), doc, _current_user())
    s.commit()
    return jsonify({"message": "Document deleted successfully"})
