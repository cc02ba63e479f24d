"""
Unified reservations view: service bookings and storage box rentals in one list.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.constants import PLATFORM_NAME
from app.ecodeli.models import User
from app.ecodeli.modules.bookings.models import Booking
from app.ecodeli.modules.bookings.service import status_label
from app.ecodeli.modules.storage.models import BoxRental
from app.ecodeli.modules.users.service import user_summary
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

STORAGE_ITEM_TYPE = "Boîte de stockage"


def _full_name(u: User | None) -> str | None:
    if u is None:
        return None
    return f"{u.first_name or ''} {u.last_name or ''}".strip() or u.display_name


def rental_duration_minutes(start: datetime | None, end: datetime | None) -> int | None:
    """Whole days between start and end (rounded up), in minutes."""
    if start is None or end is None:
        return None
    days = math.ceil((end - start).total_seconds() / 86400)
    return days * 24 * 60


def booking_entry(b: Booking) -> dict[str, Any]:
    sv = b.service
    return {
        "id": b.id,
        "type": "service",
        "service_id": b.service_id,
        "customer_id": b.customer_id,
        "provider_id": b.provider_id,
        "scheduled_at": iso(b.scheduled_at),
        "duration": b.duration,
        "total_amount": b.total_amount,
        "status": b.status,
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
        "item_name": sv.name if sv is not None else None,
        "item_type": "Service",
        "customer_name": _full_name(b.customer),
        "provider_name": _full_name(b.provider),
        "price": b.total_amount,
        "status_label": status_label(b.status),
        "date_time": iso(b.scheduled_at),
    }


def rental_entry(r: BoxRental) -> dict[str, Any]:
    box = r.box
    owner = box.owner
    item_name = f"Boîte {box.code}"
    return {
        "id": r.id,
        "type": "storage",
        "box_id": r.box_id,
        "user_id": r.user_id,
        "start_date": iso(r.start_date),
        "end_date": iso(r.end_date),
        "total_cost": r.total_cost,
        "access_code": r.access_code,
        "is_active": r.is_active,
        "created_at": iso(r.created_at),
        "updated_at": iso(r.updated_at),
        "box": {
            "id": box.id,
            "code": box.code,
            "location": box.location,
            "size": box.size,
            "price_per_day": box.price_per_day,
            "owner": user_summary(owner),
        },
        "user": user_summary(r.user),
        "item_name": item_name,
        "item_type": STORAGE_ITEM_TYPE,
        "customer_name": _full_name(r.user),
        "provider_name": _full_name(owner) if owner is not None else PLATFORM_NAME,
        "price": r.total_cost,
        "status_label": "Active" if r.is_active else "Terminée",
        "date_time": iso(r.start_date),
        # booking-shaped fields
        "service_id": None,
        "customer_id": r.user_id,
        "provider_id": owner.id if owner is not None else None,
        "scheduled_at": iso(r.start_date),
        "duration": rental_duration_minutes(r.start_date, r.end_date),
        "total_amount": r.total_cost,
        "status": "IN_PROGRESS" if r.is_active else "COMPLETED",
        "notes": f"Location de boîte de stockage {box.code} à {box.location}",
        "address": box.location,
        "rating": None,
        "review": None,
        "customer": user_summary(r.user),
        "provider": user_summary(owner),
        "service": {"id": box.id, "name": item_name, "category": "STORAGE", "price": box.price_per_day},
    }


def all_reservations(s: "Session") -> dict[str, Any]:
    bookings = s.query(Booking).order_by(Booking.created_at.desc()).all()
    rentals = s.query(BoxRental).order_by(BoxRental.created_at.desc()).all()

    entries: list[tuple[datetime, dict[str, Any]]] = [(b.created_at, booking_entry(b)) for b in bookings]
    entries.extend((r.created_at, rental_entry(r)) for r in rentals)
    entries.sort(key=lambda e: e[0] or datetime.min, reverse=True)

    return {
        "total": len(entries),
        "bookings": len(bookings),
        "rentals": len(rentals),
        "data": [d for _, d in entries],
    }
