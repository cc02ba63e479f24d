from __future__ import annotations

from flask import Blueprint, abort, g, jsonify

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.storage.models import BoxRental
from app.ecodeli.modules.storage.service import (
    DuplicateBoxCodeError,
    box_to_dict,
    create_box,
    create_rental,
    end_rental,
    list_boxes,
    list_rentals,
    rental_to_dict,
)
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_bool, parse_int

bp = Blueprint("storage", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Storage boxes ----------
@bp.get("/storage-boxes")
@require_permission("storage.view")
def boxes_list():
    s = db_session()
    return jsonify([box_to_dict(b) for b in list_boxes(s)])


@bp.post("/storage-boxes")
@require_permission("storage.edit")
def boxes_create():
    s = db_session()
    try:
        box = create_box(s, json_body(), _current_user())
    except DuplicateBoxCodeError as e:
        return jsonify({"error": str(e)}), 409
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(box_to_dict(box)), 201


# ---------- Box rentals ----------
@bp.get("/box-rentals")
@require_permission("storage.view")
def rentals_list():
    s = db_session()
    return jsonify([rental_to_dict(r) for r in list_rentals(s)])


@bp.post("/box-rentals")
@require_permission("storage.edit")
def rentals_create():
    s = db_session()
    try:
        rental = create_rental(s, json_body(), _current_user())
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(rental_to_dict(rental)), 201


@bp.put("/box-rentals")
@require_permission("storage.edit")
def rentals_update():
    s = db_session()
    payload = json_body()
    try:
        rental_id = parse_int(payload.get("id"), "id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not rental_id:
        return jsonify({"error": "Rental ID is required"}), 400
    rental = s.get(BoxRental, rental_id)
    if not rental:
        abort(404)
    if parse_bool(payload.get("is_active", True)):
        return jsonify({"error": "Only ending a rental (is_active=false) is supported"}), 400
    try:
        end_rental(s, rental, _current_user())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(rental_to_dict(rental))
