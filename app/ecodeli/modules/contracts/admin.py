from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.ecodeli.db import db_session
from app.ecodeli.file_storage import storage_from_config
from app.ecodeli.models import User
from app.ecodeli.modules.contracts.models import Contract
from app.ecodeli.modules.contracts.service import (
    contract_to_dict,
    create_contract,
    delete_contract,
    list_contracts,
    update_contract,
)
from app.ecodeli.modules.documents.service import contract_documents
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_int

bp = Blueprint("contracts", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/contracts")
@require_permission("contracts.view")
def contracts_list():
    s = db_session()
    try:
        contracts = list_contracts(
            s,
            status=(request.args.get("status") or "").strip() or None,
            merchant_id=parse_int(request.args.get("merchant_id"), "merchant_id"),
            carrier_id=parse_int(request.args.get("carrier_id"), "carrier_id"),
            limit=parse_int(request.args.get("limit"), "limit"),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify([contract_to_dict(c, contract_documents(s, c.id)) for c in contracts])


@bp.post("/contracts")
@require_permission("contracts.edit")
def contracts_create():
    s = db_session()
    try:
        contract = create_contract(s, json_body(), _current_user())
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(contract_to_dict(contract)), 201


@bp.put("/contracts")
@require_permission("contracts.edit")
def contracts_update():
    s = db_session()
    payload = json_body()
    try:
        contract_id = parse_int(payload.get("id"), "id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not contract_id:
        return jsonify({"error": "Contract ID is required"}), 400
    contract = s.get(Contract, contract_id)
    if not contract:
        return jsonify({"error": "Contract not found"}), 404
    try:
        update_contract(s, contract, payload, _current_user())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(contract_to_dict(contract, contract_documents(s, contract.id)))


@bp.delete("/contracts/<int:contract_id>")
@require_permission("contracts.edit")
def contracts_delete(contract_id: int):
    s = db_session()
    contract = s.get(Contract, contract_id)
    if not contract:
        return jsonify({"error": "Contract not found"}), 404
    try:
        delete_contract(s, storage_from_config(current_app.config), contract, _current_user())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"message": "Contract deleted successfully"})
