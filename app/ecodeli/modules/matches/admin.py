from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.matches.service import list_matches, match_to_dict, update_match
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_int

bp = Blueprint("matches", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/matches")
@require_permission("matches.view")
def matches_list():
    s = db_session()
    try:
        limit = parse_int(request.args.get("limit"), "limit")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    matches = list_matches(s, status=(request.args.get("status") or "").strip() or None, limit=limit)
    return jsonify([match_to_dict(m) for m in matches])


@bp.put("/matches")
@require_permission("matches.edit")
def matches_update():
    s = db_session()
    payload = json_body()
    try:
        match_id = parse_int(payload.get("id"), "id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not match_id:
        return jsonify({"error": "Match ID is required"}), 400
    match = s.get(Match, match_id)
    if not match:
        abort(404)
    try:
        update_match(s, match, payload, _current_user())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(match_to_dict(match))
