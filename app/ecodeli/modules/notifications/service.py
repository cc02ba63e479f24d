from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.ecodeli.constants import NOTIFICATION_TYPES
from app.ecodeli.modules.notifications.mailer import MailerError, SmtpMailer
from app.ecodeli.modules.notifications.models import Notification
from app.ecodeli.modules.notifications.onesignal_client import OneSignalClient, OneSignalError
from app.ecodeli.modules.notifications.templates import render_email, template_types
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.models import User

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


def notification_to_dict(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "related_entity_id": n.related_entity_id,
        "is_read": n.is_read,
        "read_at": iso(n.read_at),
        "created_at": iso(n.created_at),
    }


def create_notification(
    s: "Session",
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    related_entity_id: str | int | None = None,
) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Invalid notification type. Must be one of: {', '.join(NOTIFICATION_TYPES)}")
    if not (title or "").strip() or not (message or "").strip():
        raise ValueError("title and message are required")
    n = Notification(
        user_id=user_id,
        type=type,
        title=title.strip(),
        message=message.strip(),
        related_entity_id=str(related_entity_id) if related_entity_id is not None else None,
        is_read=False,
    )
    s.add(n)
    s.flush()
    return n


def deliver(config: Any, n: Notification, user: "User", *, send_email: bool, send_push: bool) -> dict[str, Any]:
    """
    Best-effort fan-out of a stored notification. Failures are logged and reported, never raised.
    """
    result: dict[str, Any] = {}
    if send_email:
        mailer = SmtpMailer.from_config(config)
        try:
            subject, html = render_email("NOTIFICATION", {"title": n.title, "message": n.message})
            mailer.send(user.email, subject, html, text=n.message)
            result["email"] = {"success": True}
        except MailerError as e:
            logger.warning("Notification email failed (notification_id=%s): %s", n.id, e)
            result["email"] = {"success": False, "error": str(e)}
    if send_push:
        client = OneSignalClient(app_id=config.get("ONESIGNAL_APP_ID") or "", api_key=config.get("ONESIGNAL_API_KEY") or "")
        try:
            push_id = client.send_to_users(
                [str(user.id)],
                title=n.title,
                message=n.message,
                data={"type": n.type, "notification_id": n.id, "related_entity_id": n.related_entity_id},
            )
            result["push"] = {"success": True, "id": push_id}
        except OneSignalError as e:
            logger.warning("Push notification failed (notification_id=%s): %s", n.id, e)
            result["push"] = {"success": False, "error": str(e)}
    return result


def list_notifications(
    s: "Session",
    *,
    user_id: int | None = None,
    unread_only: bool = False,
    type: str | None = None,
) -> tuple[list[Notification], int]:
    q = s.query(Notification)
    if user_id:
        q = q.filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    if type:
        q = q.filter(Notification.type == type)
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(LIST_LIMIT).all()

    unread_q = s.query(func.count(Notification.id)).filter(Notification.is_read.is_(False))
    if user_id:
        unread_q = unread_q.filter(Notification.user_id == user_id)
    unread_count = int(unread_q.scalar() or 0)
    return rows, unread_count


def set_read(n: Notification, is_read: bool) -> Notification:
    n.is_read = bool(is_read)
    n.read_at = datetime.utcnow() if n.is_read else None
    return n


def channel_status(config: Any) -> dict[str, Any]:
    mailer = SmtpMailer.from_config(config)
    push = OneSignalClient(app_id=config.get("ONESIGNAL_APP_ID") or "", api_key=config.get("ONESIGNAL_API_KEY") or "")
    email_ok = mailer.is_configured()
    push_ok = push.is_configured()
    return {
        "email": {"success": email_ok, "error": None if email_ok else "Email configuration missing"},
        "push": {"success": push_ok, "error": None if push_ok else "Push configuration missing"},
        "configured": {"email": email_ok, "push": push_ok},
    }


def available_templates() -> dict[str, list[str]]:
    return {"email": template_types()}


def send_template_email(config: Any, *, template_type: str, recipient: str, data: dict[str, Any] | None = None) -> None:
    """Raises ValueError on bad input and MailerError when SMTP fails."""
    if template_type not in template_types():
        raise ValueError(f"Invalid template type. Must be one of: {', '.join(template_types())}")
    if not (recipient or "").strip():
        raise ValueError("recipient is required")
    values = {"base_url": config.get("APP_BASE_URL") or ""}
    values.update(data or {})
    subject, html = render_email(template_type, values)
    SmtpMailer.from_config(config).send(recipient.strip(), subject, html)
