from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.carriers.service import carrier_status, get_carrier, set_carrier_online
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_bool

bp = Blueprint("carriers", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/carriers/<int:carrier_id>/status")
@require_permission("carriers.view")
def carriers_get_status(carrier_id: int):
    s = db_session()
    try:
        carrier = get_carrier(s, carrier_id)
    except LookupError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    return jsonify({"success": True, "data": carrier_status(s, carrier)})


@bp.post("/carriers/<int:carrier_id>/status")
@require_permission("carriers.edit")
def carriers_set_status(carrier_id: int):
    s = db_session()
    payload = json_body()
    if payload.get("is_online") is None:
        return jsonify({"success": False, "error": "is_online is required"}), 400
    try:
        carrier = get_carrier(s, carrier_id)
    except LookupError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    set_carrier_online(s, carrier, parse_bool(payload["is_online"]), _current_user())
    s.commit()
    state = "online" if carrier.is_online else "offline"
    return jsonify({"success": True, "message": f"Carrier is now {state}", "data": carrier_status(s, carrier)})
