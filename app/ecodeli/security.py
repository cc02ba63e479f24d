"""
Bearer tokens for the public (customer/carrier/provider) API and e-mail verification links.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from flask import current_app, request
from jose import JWTError, jwt

from app.ecodeli.models import User

ALGORITHM = "HS256"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_EMAIL_VERIFICATION = "email_verification"


class TokenError(Exception):
    pass


def _secret() -> str:
    return current_app.config.get("JWT_SECRET") or current_app.config["SECRET_KEY"]


def create_token(user: User, *, token_type: str, expires_delta: timedelta) -> str:
    now = datetime.utcnow()
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "user_type": user.user_type,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, _secret(), algorithm=ALGORITHM)


def create_access_token(user: User) -> str:
    days = int(current_app.config.get("JWT_EXPIRES_DAYS") or 7)
    return create_token(user, token_type=TOKEN_TYPE_ACCESS, expires_delta=timedelta(days=days))


def create_email_verification_token(user: User) -> str:
    return create_token(user, token_type=TOKEN_TYPE_EMAIL_VERIFICATION, expires_delta=timedelta(hours=24))


def decode_token(token: str, *, expected_type: str | None = None) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except JWTError as e:
        raise TokenError("Invalid or expired token") from e
    if expected_type and payload.get("type") != expected_type:
        raise TokenError("Invalid token type")
    if not payload.get("sub"):
        raise TokenError("Invalid token")
    return payload


def bearer_payload() -> dict[str, Any]:
    """Decoded access token from the Authorization header; raises TokenError."""
    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        raise TokenError("Authentication token required")
    token = header[len("Bearer "):].strip()
    if not token:
        raise TokenError("Authentication token required")
    return decode_token(token, expected_type=TOKEN_TYPE_ACCESS)


def token_user_id(payload: dict[str, Any]) -> int:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise TokenError("Invalid token") from e
