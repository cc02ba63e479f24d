from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.ecodeli.db import db_session
from app.ecodeli.modules.analytics.service import compute_analytics, dashboard_snapshot
from app.ecodeli.rbac import require_permission

bp = Blueprint("analytics", __name__)


@bp.get("/analytics")
@require_permission("analytics.view")
def analytics():
    s = db_session()
    return jsonify(compute_analytics(s, range_key=(request.args.get("range") or "").strip() or None))


@bp.get("/dashboard")
@require_permission("admin.view")
def dashboard():
    return jsonify(dashboard_snapshot(db_session()))
