from __future__ import annotations

from flask import Blueprint, abort, current_app, g, jsonify, request

from app.ecodeli.audit import record_event
from app.ecodeli.db import db_session
from app.ecodeli.file_storage import storage_from_config
from app.ecodeli.models import User
from app.ecodeli.modules.notifications.mailer import MailerError, SmtpMailer
from app.ecodeli.modules.notifications.templates import render_email
from app.ecodeli.modules.users.service import (
    DuplicateEmailError,
    UserHasRelationsError,
    create_user,
    delete_user,
    list_users,
    mark_verified,
    update_user,
    user_to_dict,
)
from app.ecodeli.rbac import require_permission
from app.ecodeli.security import (
    TOKEN_TYPE_EMAIL_VERIFICATION,
    TokenError,
    create_email_verification_token,
    decode_token,
    token_user_id,
)
from app.ecodeli.utils import json_body

bp = Blueprint("users", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/users")
@require_permission("users.view")
def users_list():
    s = db_session()
    users = list_users(
        s,
        search=(request.args.get("search") or "").strip() or None,
        role=(request.args.get("role") or "").strip() or None,
        verified=(request.args.get("verified") or "").strip().lower() or None,
        user_type=(request.args.get("user_type") or "").strip() or None,
    )
    return jsonify([user_to_dict(u) for u in users])


@bp.post("/users")
@require_permission("users.edit")
def users_create():
    s = db_session()
    try:
        user = create_user(s, json_body(), _current_user())
    except DuplicateEmailError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(user_to_dict(user)), 201


@bp.put("/users/<int:user_id>")
@require_permission("users.edit")
def users_update(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    try:
        update_user(s, user, json_body(), _current_user())
    except DuplicateEmailError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(user_to_dict(user))


@bp.delete("/users/<int:user_id>")
@require_permission("users.edit")
def users_delete(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    force = (request.args.get("force") or "").lower() == "true"
    try:
        delete_user(s, user, _current_user(), force=force, storage=storage_from_config(current_app.config))
    except UserHasRelationsError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    s.commit()
    current_app.logger.info("User deleted id=%s force=%s request_id=%s", user_id, force, getattr(g, "request_id", None))
    message = "User and all associated data deleted" if force else "User deleted"
    return jsonify({"message": message})


@bp.post("/users/<int:user_id>/resend-verification")
@require_permission("users.edit")
def users_resend_verification(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    if user.is_verified:
        return jsonify({"error": "User already verified"}), 400

    token = create_email_verification_token(user)
    base_url = (current_app.config.get("APP_BASE_URL") or "").rstrip("/")
    verification_url = f"{base_url}/verify-email?token={token}"

    subject, html = render_email(
        "EMAIL_VERIFICATION",
        {"first_name": user.first_name or "utilisateur", "verification_url": verification_url},
    )
    email_sent = True
    try:
        SmtpMailer.from_config(current_app.config).send(user.email, subject, html)
    except MailerError as e:
        email_sent = False
        current_app.logger.warning("Verification email not sent (user_id=%s): %s", user.id, e)

    record_event(s, actor=_current_user(), action="user.resend_verification", entity_type="User", entity_id=str(user.id), metadata={"email_sent": email_sent})
    s.commit()
    return jsonify({"success": True, "email": user.email, "email_sent": email_sent})


@bp.post("/verify-email")
def verify_email():
    """Public: consumes the link sent by resend-verification."""
    s = db_session()
    token = (json_body().get("token") or "").strip()
    if not token:
        return jsonify({"error": "Verification token required"}), 400
    try:
        payload = decode_token(token, expected_type=TOKEN_TYPE_EMAIL_VERIFICATION)
        user_id = token_user_id(payload)
    except TokenError as e:
        return jsonify({"error": str(e)}), 400

    user = s.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    if user.is_verified:
        return jsonify({"success": True, "already_verified": True, "user": user_to_dict(user)})

    mark_verified(user)
    record_event(s, actor=user, action="user.email_verified", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"success": True, "already_verified": False, "user": user_to_dict(user)})
