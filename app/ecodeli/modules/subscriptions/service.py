from __future__ import annotations

import math
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.modules.subscriptions.models import Subscription
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.models import User

SUBSCRIPTION_ROLES = ("PROVIDER", "SERVICE_PROVIDER", "CARRIER")

RESTRICTED_FEATURES = (
    "create_service",
    "create_storage_box",
    "create_ride",
    "post_delivery",
    "accept_bookings",
    "manage_listings",
    "premium_messaging",
    "advanced_analytics",
)

EXPIRING_SOON_DAYS = 7

SUBSCRIPTION_REQUIRED_MESSAGE = "Un abonnement professionnel est requis pour accéder à cette fonctionnalité."


def requires_subscription(role: str | None) -> bool:
    return role in SUBSCRIPTION_ROLES


def days_until_expiration(sub: Subscription | None, *, now: datetime | None = None) -> int | None:
    if sub is None or sub.current_period_end is None:
        return None
    now = now or datetime.utcnow()
    diff_days = math.ceil((sub.current_period_end - now).total_seconds() / 86400)
    return max(0, diff_days)


def is_expiring_soon(sub: Subscription | None, *, now: datetime | None = None) -> bool:
    days = days_until_expiration(sub, now=now)
    return days is not None and 0 < days <= EXPIRING_SOON_DAYS


def _is_current(sub: Subscription, now: datetime) -> bool:
    return sub.status == "ACTIVE" and sub.current_period_end is not None and sub.current_period_end > now


def has_active_subscription(s: "Session", user: "User", *, now: datetime | None = None) -> bool:
    now = now or datetime.utcnow()
    found = (
        s.query(Subscription.id)
        .filter(
            Subscription.user_id == user.id,
            Subscription.status == "ACTIVE",
            Subscription.current_period_end > now,
        )
        .first()
    )
    return found is not None


def can_access_feature(s: "Session", user: "User", feature: str) -> dict[str, Any]:
    """Access decision for a subscription-gated feature, with the reason."""
    if not requires_subscription(user.role):
        return {"can_access": True, "reason": "customer_access"}
    if feature not in RESTRICTED_FEATURES:
        return {"can_access": True, "reason": "free_feature"}
    if not has_active_subscription(s, user):
        return {"can_access": False, "reason": "subscription_required", "message": SUBSCRIPTION_REQUIRED_MESSAGE}
    return {"can_access": True, "reason": "subscription_active"}


def subscription_to_dict(sub: Subscription, *, now: datetime | None = None) -> dict[str, Any]:
    u = sub.user
    return {
        "id": sub.id,
        "user_id": sub.user_id,
        "plan": sub.plan,
        "amount": sub.amount,
        "currency": sub.currency,
        "status": sub.status,
        "stripe_subscription_id": sub.stripe_subscription_id,
        "current_period_start": iso(sub.current_period_start),
        "current_period_end": iso(sub.current_period_end),
        "days_until_expiration": days_until_expiration(sub, now=now),
        "is_expiring_soon": is_expiring_soon(sub, now=now),
        "created_at": iso(sub.created_at),
        "updated_at": iso(sub.updated_at),
        "user": (
            {
                "id": u.id,
                "first_name": u.first_name,
                "last_name": u.last_name,
                "email": u.email,
                "role": u.role,
                "created_at": iso(u.created_at),
            }
            if u is not None
            else None
        ),
    }


def subscription_stats(subs: list[Subscription], *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    active = [x for x in subs if x.status == "ACTIVE"]
    total_revenue = sum(float(x.amount or 0) for x in active)
    return {
        "total": len(subs),
        "active": len(active),
        "pending": sum(1 for x in subs if x.status == "PENDING"),
        "canceled": sum(1 for x in subs if x.status == "CANCELED"),
        "total_revenue": total_revenue,
        "monthly_new": sum(1 for x in subs if x.created_at and x.created_at >= month_start),
        "average_revenue": total_revenue / len(active) if active else 0,
    }


def list_subscriptions(s: "Session") -> list[Subscription]:
    return s.query(Subscription).order_by(Subscription.created_at.desc(), Subscription.id.desc()).all()


def user_subscription_status(s: "Session", user: "User", *, now: datetime | None = None) -> dict[str, Any]:
    """Latest subscription of a user plus the gated-feature access map."""
    now = now or datetime.utcnow()
    latest = (
        s.query(Subscription)
        .filter(Subscription.user_id == user.id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )
    out: dict[str, Any] = {
        "user_id": user.id,
        "requires_subscription": requires_subscription(user.role),
        "has_subscription": latest is not None,
        "is_active": bool(latest is not None and _is_current(latest, now)),
        "subscription": subscription_to_dict(latest, now=now) if latest is not None else None,
        "features": {f: can_access_feature(s, user, f)["can_access"] for f in RESTRICTED_FEATURES},
    }
    out["needs_payment"] = out["has_subscription"] and not out["is_active"]
    return out
