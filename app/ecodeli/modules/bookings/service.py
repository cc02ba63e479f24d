from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.ecodeli.audit import record_event
from app.ecodeli.constants import BOOKING_STATUS_LABELS, BOOKING_STATUSES
from app.ecodeli.models import User
from app.ecodeli.modules.bookings.models import Booking, Service
from app.ecodeli.modules.notifications.service import create_notification
from app.ecodeli.modules.users.service import user_summary
from app.ecodeli.utils import iso, parse_datetime, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

# Storage rentals that were historically filed as service bookings.
STORAGE_NAME_MARKERS = ("box", "boîte", "stockage")

PROVIDER_ACTIONS = {"ACCEPT": "CONFIRMED", "REJECT": "CANCELLED"}
CUSTOMER_ACTIONS = ("complete", "rate", "cancel")


def status_label(status: str | None) -> str | None:
    if status is None:
        return None
    return BOOKING_STATUS_LABELS.get(status, status)


def is_storage_service_name(name: str | None) -> bool:
    lowered = (name or "").lower()
    return any(marker in lowered for marker in STORAGE_NAME_MARKERS)


def service_to_dict(sv: Service, *, with_bookings: bool = True) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": sv.id,
        "provider_id": sv.provider_id,
        "name": sv.name,
        "description": sv.description,
        "category": sv.category,
        "price": sv.price,
        "duration": sv.duration,
        "is_active": sv.is_active,
        "rating": sv.rating,
        "created_at": iso(sv.created_at),
        "updated_at": iso(sv.updated_at),
        "provider": user_summary(sv.provider),
    }
    if with_bookings:
        d["bookings"] = [{"id": b.id, "status": b.status} for b in sv.bookings]
    return d


def booking_to_dict(b: Booking) -> dict[str, Any]:
    sv = b.service
    return {
        "id": b.id,
        "service_id": b.service_id,
        "customer_id": b.customer_id,
        "provider_id": b.provider_id,
        "scheduled_at": iso(b.scheduled_at),
        "duration": b.duration,
        "total_amount": b.total_amount,
        "status": b.status,
        "status_label": status_label(b.status),
        "notes": b.notes,
        "address": b.address,
        "rating": b.rating,
        "review": b.review,
        "created_at": iso(b.created_at),
        "updated_at": iso(b.updated_at),
        "service": (
            {"id": sv.id, "name": sv.name, "category": sv.category, "price": sv.price} if sv is not None else None
        ),
        "customer": user_summary(b.customer),
        "provider": user_summary(b.provider),
    }


def list_services(s: "Session") -> list[Service]:
    return s.query(Service).order_by(Service.created_at.desc(), Service.id.desc()).all()


def create_service(s: "Session", payload: dict, actor: User | None) -> Service:
    """Raises ValueError (bad payload) or LookupError (unknown provider)."""
    if any(payload.get(f) in (None, "") for f in ("provider_id", "name", "category", "price")):
        raise ValueError("provider_id, name, category and price are required")
    provider_id = parse_int(payload.get("provider_id"), "provider_id")
    if not s.get(User, provider_id):
        raise LookupError("Provider not found")
    price = parse_float(payload.get("price"), "price")
    if price is None or price < 0:
        raise ValueError("price must be >= 0")

    now = datetime.utcnow()
    sv = Service(
        provider_id=provider_id,
        name=str(payload["name"]).strip(),
        description=(payload.get("description") or "").strip() or None,
        category=str(payload["category"]).strip(),
        price=price,
        duration=parse_int(payload.get("duration"), "duration"),
        is_active=payload.get("is_active", True) is not False,
        created_at=now,
        updated_at=now,
    )
    s.add(sv)
    s.flush()
    record_event(s, actor=actor, action="service.create", entity_type="Service", entity_id=str(sv.id), metadata={"name": sv.name})
    return sv


def list_service_bookings(s: "Session") -> list[Booking]:
    """Service bookings only; storage rentals mis-filed as bookings are dropped."""
    bookings = s.query(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()).all()
    return [b for b in bookings if b.service is not None and not is_storage_service_name(b.service.name)]


def create_booking(s: "Session", payload: dict, actor: User | None) -> Booking:
    """Raises ValueError (bad payload) or LookupError (unknown service/customer)."""
    if any(payload.get(f) in (None, "") for f in ("service_id", "customer_id", "scheduled_at")):
        raise ValueError("service_id, customer_id and scheduled_at are required")
    sv = s.get(Service, parse_int(payload.get("service_id"), "service_id"))
    if not sv:
        raise LookupError("Service not found")
    customer = s.get(User, parse_int(payload.get("customer_id"), "customer_id"))
    if not customer:
        raise LookupError("Customer not found")
    provider_id = parse_int(payload.get("provider_id"), "provider_id") or sv.provider_id
    if provider_id != sv.provider_id and not s.get(User, provider_id):
        raise LookupError("Provider not found")

    status = (payload.get("status") or "PENDING").strip()
    if status not in BOOKING_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(BOOKING_STATUSES)}")
    total_amount = parse_float(payload.get("total_amount"), "total_amount")

    now = datetime.utcnow()
    b = Booking(
        service_id=sv.id,
        customer_id=customer.id,
        provider_id=provider_id,
        scheduled_at=parse_datetime(payload.get("scheduled_at")),
        duration=parse_int(payload.get("duration"), "duration") or sv.duration,
        total_amount=total_amount if total_amount is not None else sv.price,
        status=status,
        notes=(payload.get("notes") or "").strip() or None,
        address=(payload.get("address") or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    s.add(b)
    s.flush()
    record_event(s, actor=actor, action="booking.create", entity_type="Booking", entity_id=str(b.id), metadata={"service_id": sv.id, "customer_id": customer.id})
    return b


def provider_manage_booking(s: "Session", booking: Booking, provider: User, action: str, reason: str | None = None) -> Booking:
    """
    Provider accepts or rejects a pending booking on one of their services.
    Raises ValueError (400) or PermissionError (403).
    """
    action = (action or "").strip().upper()
    if action not in PROVIDER_ACTIONS:
        raise ValueError("Action must be ACCEPT or REJECT")
    owner_id = booking.service.provider_id if booking.service else booking.provider_id
    if owner_id != provider.id:
        raise PermissionError("Not authorized to manage this booking")
    if booking.status != "PENDING":
        raise ValueError("Booking is not in pending status")

    booking.status = PROVIDER_ACTIONS[action]
    booking.updated_at = datetime.utcnow()

    service_name = booking.service.name if booking.service else ""
    if action == "ACCEPT":
        title = "Réservation confirmée"
        message = f'Votre réservation pour "{service_name}" a été confirmée'
    else:
        title = "Réservation refusée"
        message = f'Votre réservation pour "{service_name}" a été refusée' + (f": {reason}" if reason else "")
    create_notification(s, user_id=booking.customer_id, type="BOOKING_UPDATE", title=title, message=message, related_entity_id=booking.id)

    record_event(
        s,
        actor=provider,
        action=f"booking.{action.lower()}",
        entity_type="Booking",
        entity_id=str(booking.id),
        reason=reason,
        metadata={"status": booking.status},
    )
    return booking


def _refresh_service_rating(s: "Session", service_id: int) -> None:
    avg = s.query(func.avg(Booking.rating)).filter(Booking.service_id == service_id, Booking.rating.isnot(None)).scalar()
    sv = s.get(Service, service_id)
    if sv is not None:
        sv.rating = float(avg) if avg is not None else None
        sv.updated_at = datetime.utcnow()


def customer_booking_action(s: "Session", booking: Booking, customer: User, action: str, *, rating: Any = None, review: str | None = None) -> Booking:
    """
    Customer side of a booking: complete an in-progress service, rate it, or cancel.
    Raises ValueError (400) or PermissionError (403).
    """
    if booking.customer_id != customer.id:
        raise PermissionError("Access to this booking is not allowed")
    action = (action or "").strip().lower()
    if action not in CUSTOMER_ACTIONS:
        raise ValueError("Unknown action")

    now = datetime.utcnow()
    service_name = booking.service.name if booking.service else ""
    if action == "complete":
        if booking.status != "IN_PROGRESS":
            raise ValueError("Only in-progress services can be marked as completed")
        booking.status = "COMPLETED"
        create_notification(
            s,
            user_id=booking.provider_id,
            type="BOOKING_UPDATE",
            title="Service terminé",
            message=f'Le service "{service_name}" a été marqué comme terminé par le client.',
            related_entity_id=booking.id,
        )
    elif action == "rate":
        if booking.status != "COMPLETED":
            raise ValueError("Only completed services can be rated")
        value = parse_int(rating, "rating")
        if value is None or not (1 <= value <= 5):
            raise ValueError("Invalid rating (1-5)")
        booking.rating = value
        booking.review = (review or "").strip() or None
        s.flush()
        _refresh_service_rating(s, booking.service_id)
    else:
        if booking.status not in ("PENDING", "CONFIRMED"):
            raise ValueError("Only pending or confirmed bookings can be cancelled")
        booking.status = "CANCELLED"
        create_notification(
            s,
            user_id=booking.provider_id,
            type="BOOKING_UPDATE",
            title="Réservation annulée",
            message=f'La réservation pour "{service_name}" a été annulée par le client.',
            related_entity_id=booking.id,
        )
    booking.updated_at = now
    record_event(s, actor=customer, action=f"booking.customer_{action}", entity_type="Booking", entity_id=str(booking.id), metadata={"status": booking.status})
    return booking
