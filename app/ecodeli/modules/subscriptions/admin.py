from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, jsonify

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.subscriptions.service import (
    list_subscriptions,
    subscription_stats,
    subscription_to_dict,
    user_subscription_status,
)
from app.ecodeli.rbac import require_permission

bp = Blueprint("subscriptions", __name__)


@bp.get("/subscriptions")
@require_permission("subscriptions.view")
def subscriptions_list():
    s = db_session()
    now = datetime.utcnow()
    subs = list_subscriptions(s)
    return jsonify(
        {
            "success": True,
            "subscriptions": [subscription_to_dict(x, now=now) for x in subs],
            "stats": subscription_stats(subs, now=now),
        }
    )


@bp.get("/subscriptions/users/<int:user_id>")
@require_permission("subscriptions.view")
def subscriptions_for_user(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    return jsonify(user_subscription_status(s, user))
