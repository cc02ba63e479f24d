from __future__ import annotations

from flask import Blueprint, abort, current_app, g, jsonify, request

from app.ecodeli.audit import record_event
from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.notifications.mailer import MailerError
from app.ecodeli.modules.notifications.models import Notification
from app.ecodeli.modules.notifications.service import (
    available_templates,
    channel_status,
    create_notification,
    deliver,
    list_notifications,
    notification_to_dict,
    send_template_email,
    set_read,
)
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import json_body, parse_bool, parse_int

bp = Blueprint("notifications", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/notifications")
@require_permission("notifications.view")
def notifications_list():
    s = db_session()
    try:
        user_id = parse_int(request.args.get("user_id"), "user_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    rows, unread_count = list_notifications(
        s,
        user_id=user_id,
        unread_only=parse_bool(request.args.get("unread_only")),
        type=(request.args.get("type") or "").strip() or None,
    )
    return jsonify({"notifications": [notification_to_dict(n) for n in rows], "unread_count": unread_count})


@bp.put("/notifications")
@require_permission("notifications.send")
def notifications_mark():
    s = db_session()
    payload = json_body()
    try:
        notification_id = parse_int(payload.get("id"), "id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not notification_id:
        return jsonify({"error": "id is required"}), 400
    n = s.get(Notification, notification_id)
    if not n:
        abort(404)
    set_read(n, parse_bool(payload.get("is_read", True)))
    s.commit()
    return jsonify(notification_to_dict(n))


@bp.delete("/notifications/<int:notification_id>")
@require_permission("notifications.send")
def notifications_delete(notification_id: int):
    s = db_session()
    n = s.get(Notification, notification_id)
    if not n:
        abort(404)
    s.delete(n)
    record_event(s, actor=_current_user(), action="notification.delete", entity_type="Notification", entity_id=str(notification_id))
    s.commit()
    return jsonify({"success": True})


@bp.post("/notifications")
@require_permission("notifications.send")
def notifications_create():
    s = db_session()
    payload = json_body()
    try:
        user_id = parse_int(payload.get("user_id"), "user_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400
    user = s.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    try:
        n = create_notification(
            s,
            user_id=user.id,
            type=(payload.get("type") or "SYSTEM").strip(),
            title=payload.get("title") or "",
            message=payload.get("message") or "",
            related_entity_id=payload.get("related_entity_id"),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    record_event(s, actor=_current_user(), action="notification.create", entity_type="Notification", entity_id=str(n.id), metadata={"user_id": user.id, "type": n.type})
    s.commit()

    delivery = deliver(
        current_app.config,
        n,
        user,
        send_email=parse_bool(payload.get("send_email")),
        send_push=parse_bool(payload.get("send_push")),
    )
    return jsonify({"notification": notification_to_dict(n), "delivery": delivery}), 201


@bp.get("/notifications/email-sms")
@require_permission("notifications.view")
def email_sms_get():
    action = (request.args.get("action") or "").strip()
    if action == "test":
        return jsonify(channel_status(current_app.config))
    if action == "templates":
        return jsonify(available_templates())
    return jsonify({"error": "Invalid action parameter"}), 400


@bp.post("/notifications/email-sms")
@require_permission("notifications.send")
def email_sms_send():
    payload = json_body()
    try:
        send_template_email(
            current_app.config,
            template_type=(payload.get("template_type") or "").strip(),
            recipient=payload.get("recipient") or "",
            data=payload.get("data") if isinstance(payload.get("data"), dict) else None,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except MailerError as e:
        current_app.logger.warning("Template email failed: %s", e)
        return jsonify({"success": False, "error": str(e)}), 502
    s = db_session()
    record_event(s, actor=_current_user(), action="notification.email_sent", entity_type="Email", entity_id=payload.get("recipient"), metadata={"template_type": payload.get("template_type")})
    s.commit()
    return jsonify({"success": True})
