from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.packages.service import delivery_to_dict, list_packages, package_to_dict, set_package_status
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body

bp = Blueprint("packages", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/packages")
@require_permission("packages.view")
def packages_list():
    s = db_session()
    packages = list_packages(
        s,
        search=(request.args.get("search") or "").strip() or None,
        status=(request.args.get("status") or "").strip() or None,
    )
    return jsonify([package_to_dict(p) for p in packages])


@bp.put("/packages/<int:package_id>/status")
@require_permission("packages.edit")
def packages_set_status(package_id: int):
    s = db_session()
    package = s.get(Package, package_id)
    if not package:
        abort(404)
    payload = json_body()
    try:
        set_package_status(s, package, (payload.get("status") or "").strip(), _current_user(), reason=payload.get("reason"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(package_to_dict(package))


@bp.get("/deliveries")
@require_permission("packages.view")
def deliveries_list():
    status = (request.args.get("status") or "").strip()
    packages = list_packages(
        db_session(),
        search=(request.args.get("search") or "").strip() or None,
        status=None if status in ("", "all") else status,
    )
    return jsonify([delivery_to_dict(p) for p in packages])
