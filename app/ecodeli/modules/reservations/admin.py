from __future__ import annotations

from flask import Blueprint, jsonify

from app.ecodeli.db import db_session
from app.ecodeli.modules.reservations.service import all_reservations
from app.ecodeli.rbac import require_permission

bp = Blueprint("reservations", __name__)


@bp.get("/all-reservations")
@require_permission("bookings.view")
def reservations_list():
    return jsonify(all_reservations(db_session()))
