from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.rides.models import Ride
from app.ecodeli.modules.rides.service import create_ride, list_rides, ride_summary, ride_to_dict, set_ride_status, sync_rides
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_int

bp = Blueprint("rides", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/rides")
@require_permission("rides.view")
def rides_list():
    s = db_session()
    try:
        user_id = parse_int(request.args.get("user_id"), "user_id")
        limit = parse_int(request.args.get("limit"), "limit")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    rides = list_rides(s, status=(request.args.get("status") or "").strip() or None, user_id=user_id, limit=limit)
    return jsonify([ride_to_dict(r) for r in rides])


@bp.post("/rides")
@require_permission("rides.edit")
def rides_create():
    s = db_session()
    try:
        ride = create_ride(s, json_body(), _current_user())
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(ride_to_dict(ride)), 201


@bp.put("/rides")
@require_permission("rides.edit")
def rides_update():
    s = db_session()
    payload = json_body()
    try:
        ride_id = parse_int(payload.get("id"), "id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not ride_id:
        return jsonify({"error": "Ride ID is required"}), 400
    ride = s.get(Ride, ride_id)
    if not ride:
        abort(404)
    try:
        set_ride_status(s, ride, (payload.get("status") or "").strip(), _current_user())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(ride_to_dict(ride))


@bp.post("/sync-rides")
@require_permission("rides.edit")
def rides_sync():
    s = db_session()
    items = json_body().get("rides")
    if not isinstance(items, list):
        return jsonify({"error": "Rides array is required"}), 400
    synced = sync_rides(s, items, _current_user())
    s.commit()
    return jsonify({"message": "Rides synced", "synced_count": len(synced), "rides": [ride_summary(r) for r in synced]})


@bp.get("/sync-rides")
@require_permission("rides.view")
def rides_sync_status():
    s = db_session()
    rides = list_rides(s)
    return jsonify({"count": len(rides), "rides": [ride_summary(r) for r in rides]})
