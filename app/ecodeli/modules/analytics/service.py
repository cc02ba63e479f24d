"""
Dashboard analytics: counts and sums reduced from the marketplace tables.
"""
from __future__ import annotations

import calendar
import logging
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.ecodeli.models import User
from app.ecodeli.modules.bookings.models import Booking, Service
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.notifications.models import Notification
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.payments.models import Payment
from app.ecodeli.modules.rides.models import Ride
from app.ecodeli.modules.storage.models import BoxRental, StorageBox

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_RANGE = "30d"


def shift_months(dt: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    idx = dt.year * 12 + (dt.month - 1) + months
    year, month = divmod(idx, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def window_start(range_key: str | None, now: datetime) -> datetime:
    if range_key == "1y":
        return shift_months(now, -12)
    return now - timedelta(days=RANGE_DAYS.get(range_key or DEFAULT_RANGE, RANGE_DAYS[DEFAULT_RANGE]))


def _count_by(s: "Session", column) -> dict[str, int]:
    return {str(k): int(n) for k, n in s.query(column, func.count()).group_by(column).all()}


def _sum(q) -> float:
    return float(q.scalar() or 0)


def compute_analytics(s: "Session", *, range_key: str | None = None, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    start = window_start(range_key, now)
    last_period_start = shift_months(now, -1)

    # users
    users_by_role = _count_by(s, User.role)
    users = {
        "total": sum(users_by_role.values()),
        "by_role": users_by_role,
        "new_this_period": s.query(func.count(User.id)).filter(User.created_at >= start).scalar() or 0,
    }

    # services
    services_total = s.query(func.count(Service.id)).scalar() or 0
    rating_sum = _sum(s.query(func.sum(func.coalesce(Service.rating, 0))))
    services = {
        "total": services_total,
        "active": s.query(func.count(Service.id)).filter(Service.is_active.is_(True)).scalar() or 0,
        "by_category": _count_by(s, Service.category),
        "average_rating": rating_sum / services_total if services_total else 0,
    }

    # bookings
    bookings_by_status = _count_by(s, Booking.status)
    booking_revenue = _sum(s.query(func.sum(Booking.total_amount)).filter(Booking.status == "COMPLETED"))
    bookings = {
        "total": sum(bookings_by_status.values()),
        "completed": bookings_by_status.get("COMPLETED", 0),
        "pending": bookings_by_status.get("PENDING", 0),
        "cancelled": bookings_by_status.get("CANCELLED", 0),
        "this_period": s.query(func.count(Booking.id)).filter(Booking.created_at >= start).scalar() or 0,
        "revenue": booking_revenue,
    }

    # packages
    packages_by_status = _count_by(s, Package.status)
    packages = {
        "total": sum(packages_by_status.values()),
        "delivered": packages_by_status.get("DELIVERED", 0),
        "in_transit": packages_by_status.get("IN_TRANSIT", 0),
        "pending": packages_by_status.get("PENDING", 0),
    }

    # storage boxes
    boxes_total = s.query(func.count(StorageBox.id)).scalar() or 0
    boxes_occupied = s.query(func.count(StorageBox.id)).filter(StorageBox.is_occupied.is_(True)).scalar() or 0
    storage_revenue = _sum(s.query(func.sum(BoxRental.total_cost)).filter(BoxRental.is_active.is_(True)))
    storage_boxes = {
        "total": boxes_total,
        "occupied": boxes_occupied,
        "occupancy_rate": (boxes_occupied / boxes_total) * 100 if boxes_total else 0,
        "revenue": storage_revenue,
    }

    # revenue (completed payments only)
    completed = s.query(func.sum(Payment.amount)).filter(Payment.status == "COMPLETED")
    this_period = _sum(completed.filter(Payment.created_at >= start))
    last_period = _sum(completed.filter(Payment.created_at >= last_period_start, Payment.created_at < start))
    revenue = {
        "total": _sum(completed),
        "this_period": this_period,
        "last_period": last_period,
        "growth": ((this_period - last_period) / last_period) * 100 if last_period > 0 else 0,
        "by_source": {
            "bookings": booking_revenue,
            "storage": storage_revenue,
            "packages": _sum(completed.filter(Payment.match_id.isnot(None))),
        },
    }

    return {
        "range": range_key if range_key in (*RANGE_DAYS, "1y") else DEFAULT_RANGE,
        "users": users,
        "services": services,
        "bookings": bookings,
        "packages": packages,
        "storage_boxes": storage_boxes,
        "revenue": revenue,
    }


def dashboard_snapshot(s: "Session") -> dict[str, Any]:
    """Newest-first rows for the dashboard home page, plus counts. Query time is logged."""
    from app.ecodeli.modules.matches.service import match_to_dict
    from app.ecodeli.modules.notifications.service import notification_to_dict
    from app.ecodeli.modules.packages.service import package_to_dict
    from app.ecodeli.modules.payments.service import payment_to_dict
    from app.ecodeli.modules.rides.service import ride_to_dict
    from app.ecodeli.modules.users.service import user_to_dict

    started = time.perf_counter()
    users = s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    packages = s.query(Package).order_by(Package.created_at.desc(), Package.id.desc()).all()
    rides = s.query(Ride).order_by(Ride.created_at.desc(), Ride.id.desc()).all()
    matches = s.query(Match).order_by(Match.created_at.desc(), Match.id.desc()).all()
    payments = s.query(Payment).order_by(Payment.created_at.desc(), Payment.id.desc()).all()
    notifications = s.query(Notification).order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    db_ms = (time.perf_counter() - started) * 1000

    counts = {
        "users": len(users),
        "packages": len(packages),
        "rides": len(rides),
        "matches": len(matches),
        "payments": len(payments),
        "notifications": len(notifications),
    }
    logger.info("Dashboard data fetched in %.1f ms (%s records)", db_ms, sum(counts.values()))
    return {
        "users": [user_to_dict(u) for u in users],
        "packages": [package_to_dict(p) for p in packages],
        "rides": [ride_to_dict(r) for r in rides],
        "matches": [match_to_dict(m) for m in matches],
        "payments": [payment_to_dict(p) for p in payments],
        "notifications": [notification_to_dict(n) for n in notifications],
        "counts": counts,
    }
