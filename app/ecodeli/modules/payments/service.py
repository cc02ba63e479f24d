from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.audit import record_event
from app.ecodeli.constants import PAYMENT_STATUSES
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.users.service import user_summary
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.models import User


def payment_description(p: Payment) -> str:
    m = p.match
    if m is None or m.package is None or m.ride is None:
        return "Paiement"
    title = m.package.title or m.package.description or ""
    return f"Transport {title} - {m.ride.origin} → {m.ride.destination}"


def payment_to_dict(p: Payment) -> dict[str, Any]:
    # Local import: matches.service imports Payment at module level.
    from app.ecodeli.modules.matches.service import match_to_dict

    return {
        "id": p.id,
        "user_id": p.user_id,
        "match_id": p.match_id,
        "amount": p.amount,
        "currency": p.currency,
        "status": p.status,
        "payment_method": p.payment_method,
        "transaction_id": p.transaction_id,
        "completed_at": iso(p.completed_at),
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
        "description": payment_description(p),
        "user": user_summary(p.user),
        "match": match_to_dict(p.match) if p.match is not None else None,
    }


def list_payments(s: "Session", *, status: str | None = None, user_id: int | None = None) -> list[Payment]:
    q = s.query(Payment)
    if status and status != "all":
        q = q.filter(Payment.status == status)
    if user_id:
        q = q.filter(Payment.user_id == user_id)
    return q.order_by(Payment.created_at.desc(), Payment.id.desc()).all()


def set_payment_status(s: "Session", payment: Payment, status: str, actor: "User | None") -> Payment:
    status = (status or "").strip()
    if status not in PAYMENT_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(PAYMENT_STATUSES)}")
    old = payment.status
    now = datetime.utcnow()
    payment.status = status
    if status == "COMPLETED" and payment.completed_at is None:
        payment.completed_at = now
    payment.updated_at = now
    record_event(
        s,
        actor=actor,
        action="payment.status_change",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"old": old, "new": status},
    )
    return payment
