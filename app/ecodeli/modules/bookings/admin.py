from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.bookings.service import (
    booking_to_dict,
    create_booking,
    create_service,
    list_service_bookings,
    list_services,
    service_to_dict,
)
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body

bp = Blueprint("bookings", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Services ----------
@bp.get("/services")
@require_permission("bookings.view")
def services_list():
    s = db_session()
    return jsonify([service_to_dict(sv) for sv in list_services(s)])


@bp.post("/services")
@require_permission("bookings.edit")
def services_create():
    s = db_session()
    try:
        sv = create_service(s, json_body(), _current_user())
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(service_to_dict(sv, with_bookings=False)), 201


# ---------- Bookings ----------
@bp.get("/bookings")
@require_permission("bookings.view")
def bookings_list():
    s = db_session()
    return jsonify([booking_to_dict(b) for b in list_service_bookings(s)])


@bp.post("/bookings")
@require_permission("bookings.edit")
def bookings_create():
    s = db_session()
    try:
        b = create_booking(s, json_body(), _current_user())
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(booking_to_dict(b)), 201
