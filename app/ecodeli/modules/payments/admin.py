from __future__ import annotations

from flask import Blueprint, abort, current_app, g, jsonify, request

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.payments.service import list_payments, payment_to_dict, set_payment_status
from app.ecodeli.modules.payments.stripe_config import check_stripe_config
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_bool, parse_int

bp = Blueprint("payments", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/payments")
@require_permission("payments.view")
def payments_list():
    s = db_session()
    try:
        user_id = parse_int(request.args.get("user_id"), "user_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    payments = list_payments(s, status=(request.args.get("status") or "").strip() or None, user_id=user_id)
    return jsonify([payment_to_dict(p) for p in payments])


@bp.put("/payments")
@require_permission("payments.edit")
def payments_update():
    s = db_session()
    payload = json_body()
    try:
        payment_id = parse_int(payload.get("id"), "id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not payment_id or not payload.get("status"):
        return jsonify({"error": "Payment ID and status are required"}), 400
    payment = s.get(Payment, payment_id)
    if not payment:
        abort(404)
    try:
        set_payment_status(s, payment, payload.get("status"), _current_user())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(payment_to_dict(payment))


@bp.get("/payments/stripe-config")
@require_permission("payments.view")
def payments_stripe_config():
    report = check_stripe_config(current_app.config, live=parse_bool(request.args.get("live")))
    if not report.ok:
        current_app.logger.warning("Stripe configuration problems: %s", "; ".join(report.errors))
    return jsonify(report.to_dict())
