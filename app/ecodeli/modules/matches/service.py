from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.audit import record_event
from app.ecodeli.constants import MATCH_STATUSES
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.notifications.service import create_notification
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.packages.service import package_summary
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.rides.service import ride_summary
from app.ecodeli.utils import iso, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.models import User

logger = logging.getLogger(__name__)

CARRIER_STATUSES = ("CONFIRMED", "IN_TRANSIT", "DELIVERED", "CANCELLED")
VALIDATABLE_STATUSES = ("CONFIRMED", "IN_PROGRESS", "ACCEPTED_BY_CARRIER")

# Package status that follows a carrier-driven match status.
_PACKAGE_STATUS_FOR = {"IN_TRANSIT": "IN_TRANSIT", "DELIVERED": "DELIVERED", "CANCELLED": "PENDING"}

_SENDER_NOTICES = {
    "IN_TRANSIT": ("DELIVERY_STARTED", "Delivery Started", "Your package is now in transit with {carrier}."),
    "DELIVERED": ("DELIVERY_COMPLETED", "Package Delivered!", "Your package has been successfully delivered by {carrier}."),
    "CANCELLED": ("DELIVERY_CANCELLED", "Delivery Cancelled", "Your delivery has been cancelled. We'll help you find another carrier."),
}


def payment_summary(p: Payment | None) -> dict[str, Any] | None:
    if p is None:
        return None
    return {
        "id": p.id,
        "amount": p.amount,
        "currency": p.currency,
        "status": p.status,
        "payment_method": p.payment_method,
        "completed_at": iso(p.completed_at),
    }


def match_to_dict(m: Match, *, with_package: bool = True, with_ride: bool = True) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": m.id,
        "package_id": m.package_id,
        "ride_id": m.ride_id,
        "status": m.status,
        "price": m.price,
        "notes": m.notes,
        "started_at": iso(m.started_at),
        "delivered_at": iso(m.delivered_at),
        "completed_at": iso(m.completed_at),
        "created_at": iso(m.created_at),
        "updated_at": iso(m.updated_at),
        "payment": payment_summary(m.payment),
    }
    if with_package:
        d["package"] = package_summary(m.package)
    if with_ride:
        d["ride"] = ride_summary(m.ride)
    return d


def list_matches(s: "Session", *, status: str | None = None, limit: int | None = None) -> list[Match]:
    q = s.query(Match)
    if status and status != "all":
        statuses = [x.strip() for x in status.split(",") if x.strip()]
        if len(statuses) == 1:
            q = q.filter(Match.status == statuses[0])
        elif statuses:
            q = q.filter(Match.status.in_(statuses))
    q = q.order_by(Match.created_at.desc(), Match.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def update_match(s: "Session", match: Match, payload: dict, actor: "User | None") -> Match:
    """Dashboard edit of status and/or price."""
    changes: dict[str, Any] = {}
    status = (payload.get("status") or "").strip()
    if status:
        if status not in MATCH_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(MATCH_STATUSES)}")
        if status != match.status:
            changes["status"] = {"old": match.status, "new": status}
            match.status = status
    if "price" in payload:
        price = parse_float(payload.get("price"), "price")
        if price is not None and price < 0:
            raise ValueError("price must be >= 0")
        if price != match.price:
            changes["price"] = {"old": match.price, "new": price}
            match.price = price
    match.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="match.edit", entity_type="Match", entity_id=str(match.id), metadata={"changes": changes})
    return match


def _upsert_completed_payment(s: "Session", match: Match, now: datetime) -> Payment:
    payment = s.query(Payment).filter(Payment.match_id == match.id).one_or_none()
    if payment is None:
        payment = Payment(
            match=match,
            user_id=match.package.user_id,
            amount=match.price or 0.0,
            currency="EUR",
            payment_method="PLATFORM",
            created_at=now,
        )
        s.add(payment)
    payment.status = "COMPLETED"
    payment.completed_at = now
    payment.updated_at = now
    return payment


def carrier_set_status(s: "Session", match: Match, status: str, carrier: "User") -> Match:
    """
    Carrier-driven transition. Raises ValueError (bad status) or PermissionError (not their ride).
    """
    if status not in CARRIER_STATUSES:
        raise ValueError("Invalid status")
    if match.ride is None or match.ride.user_id != carrier.id:
        raise PermissionError("You can only update your own deliveries.")

    now = datetime.utcnow()
    old = match.status
    match.status = status
    match.updated_at = now
    if status == "IN_TRANSIT":
        match.started_at = now
    elif status == "DELIVERED":
        match.delivered_at = now

    package = match.package
    package.status = _PACKAGE_STATUS_FOR.get(status, "CONFIRMED")
    package.updated_at = now

    notice = _SENDER_NOTICES.get(status)
    if notice:
        ntype, title, message = notice
        create_notification(
            s,
            user_id=package.user_id,
            type=ntype,
            title=title,
            message=message.format(carrier=carrier.display_name),
            related_entity_id=match.id,
        )

    if status == "DELIVERED":
        _upsert_completed_payment(s, match, now)

    record_event(
        s,
        actor=carrier,
        action="match.carrier_status",
        entity_type="Match",
        entity_id=str(match.id),
        metadata={"old": old, "new": status, "package_status": package.status},
    )
    return match


def _append_rating(notes: str | None, rating: Any, review: str | None) -> str | None:
    try:
        value = int(rating)
    except (TypeError, ValueError):
        return notes
    if not (1 <= value <= 5) or not (review or "").strip():
        return notes
    line = f"Customer rating ({value}/5): {review.strip()}"
    return f"{notes}\n\n{line}" if notes else line


def validate_delivery(s: "Session", customer: "User", payload: dict) -> Match:
    """
    Customer confirms a delivery. Raises ValueError (400), LookupError (404) or PermissionError (403).
    """
    package_id = parse_int(payload.get("package_id"), "package_id")
    match_id = parse_int(payload.get("match_id"), "match_id")
    if not package_id or not match_id:
        raise ValueError("package_id and match_id are required")

    package = s.get(Package, package_id)
    if not package:
        raise LookupError("Package not found")
    if package.user_id != customer.id:
        raise PermissionError("Access to this package is not allowed")
    match = s.query(Match).filter(Match.id == match_id, Match.package_id == package.id).one_or_none()
    if not match:
        raise LookupError("Match not found")
    if match.status not in VALIDATABLE_STATUSES:
        raise ValueError("This delivery cannot be validated in its current state")

    now = datetime.utcnow()
    old = match.status
    match.status = "COMPLETED"
    match.completed_at = now
    match.updated_at = now
    match.notes = _append_rating(match.notes, payload.get("rating"), payload.get("review"))

    package.status = "DELIVERED"
    package.updated_at = now

    payment = match.payment
    if payment is not None:
        payment.status = "COMPLETED"
        payment.completed_at = now
        payment.updated_at = now

    if match.ride is not None:
        create_notification(
            s,
            user_id=match.ride.user_id,
            type="MATCH_UPDATE",
            title="Delivery validated",
            message=f'The delivery of package "{package.title or package.description}" was validated by the customer.',
            related_entity_id=match.id,
        )

    record_event(
        s,
        actor=customer,
        action="match.validate_delivery",
        entity_type="Match",
        entity_id=str(match.id),
        metadata={"old": old, "package_id": package.id, "rating": payload.get("rating")},
    )
    return match
