from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.modules.bookings.models import Booking
from app.ecodeli.modules.bookings.service import status_label
from app.ecodeli.modules.matches.service import payment_summary
from app.ecodeli.modules.notifications.models import Notification
from app.ecodeli.modules.notifications.service import notification_to_dict
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.users.service import user_summary
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.models import User

ACTIVE_MATCH_STATUSES = ("CONFIRMED", "IN_TRANSIT", "ACCEPTED_BY_CARRIER")
ACTIVE_BOOKING_STATUSES = ("CONFIRMED", "IN_PROGRESS")
RECENT_NOTIFICATIONS = 20


def public_user(u: "User") -> dict[str, Any]:
    return {
        "id": u.id,
        "email": u.email,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "phone_number": u.phone_number,
        "address": u.address,
        "is_verified": u.is_verified,
        "role": u.role,
        "user_type": u.user_type,
    }


def _delivery(p: Package) -> dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title or p.description,
        "description": p.description,
        "status": p.status,
        "from_address": p.pickup_address,
        "to_address": p.delivery_address,
        "price": p.price,
        "weight": p.weight,
        "dimensions": p.dimensions,
        "tracking_number": p.tracking_number,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
        "matches": [
            {
                "id": m.id,
                "status": m.status,
                "price": m.price,
                "updated_at": iso(m.updated_at),
                "carrier": user_summary(m.ride.carrier) if m.ride is not None else None,
                "payment": payment_summary(m.payment),
            }
            for m in p.matches
        ],
    }


def _service_booking(b: Booking) -> dict[str, Any]:
    sv = b.service
    return {
        "id": b.id,
        "service_name": sv.name if sv is not None else None,
        "service_category": sv.category if sv is not None else None,
        "status": b.status,
        "status_label": status_label(b.status),
        "scheduled_at": iso(b.scheduled_at),
        "total_amount": b.total_amount,
        "address": b.address,
        "rating": b.rating,
        "review": b.review,
        "provider": user_summary(sv.provider if sv is not None else b.provider),
        "created_at": iso(b.created_at),
        "updated_at": iso(b.updated_at),
    }


def customer_data(s: "Session", user: "User", *, now: datetime | None = None) -> dict[str, Any]:
    """Everything the customer app shows on its home screen."""
    now = now or datetime.utcnow()
    packages = s.query(Package).filter(Package.user_id == user.id).order_by(Package.created_at.desc()).all()
    bookings = s.query(Booking).filter(Booking.customer_id == user.id).order_by(Booking.created_at.desc()).all()
    payments = (
        s.query(Payment)
        .filter(Payment.user_id == user.id, Payment.status == "COMPLETED")
        .order_by(Payment.created_at.desc())
        .all()
    )
    notifications = (
        s.query(Notification)
        .filter(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc())
        .limit(RECENT_NOTIFICATIONS)
        .all()
    )

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = today.replace(day=1)

    stats = {
        "total_packages": len(packages),
        "active_packages": sum(1 for p in packages if any(m.status in ACTIVE_MATCH_STATUSES for m in p.matches)),
        "delivered_packages": sum(1 for p in packages if any(m.status == "COMPLETED" for m in p.matches)),
        "pending_packages": sum(1 for p in packages if all(m.status == "PENDING" for m in p.matches)),
        "total_bookings": len(bookings),
        "active_bookings": sum(1 for b in bookings if b.status in ACTIVE_BOOKING_STATUSES),
        "completed_bookings": sum(1 for b in bookings if b.status == "COMPLETED"),
        "total_spent": sum(p.amount for p in payments),
        "today_spent": sum(p.amount for p in payments if p.created_at >= today),
        "month_spent": sum(p.amount for p in payments if p.created_at >= month_start),
    }

    return {
        "user": public_user(user),
        "deliveries": [_delivery(p) for p in packages],
        "services": [_service_booking(b) for b in bookings],
        "notifications": [notification_to_dict(n) for n in notifications],
        "stats": stats,
    }
