from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.ecodeli.audit import record_event
from app.ecodeli.constants import PACKAGE_STATUSES
from app.ecodeli.modules.packages.models import Package
from app.ecodeli.modules.users.service import user_summary
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.models import User


def package_summary(p: Package | None) -> dict[str, Any] | None:
    if p is None:
        return None
    return {
        "id": p.id,
        "title": p.title or p.description,
        "description": p.description,
        "weight": p.weight,
        "dimensions": p.dimensions,
        "pickup_address": p.pickup_address,
        "delivery_address": p.delivery_address,
        "sender_name": p.sender_name,
        "recipient_name": p.recipient_name,
        "tracking_number": p.tracking_number,
        "price": p.price,
        "status": p.status,
        "user_id": p.user_id,
        "sender": user_summary(p.sender),
        "created_at": iso(p.created_at),
    }


def package_to_dict(p: Package) -> dict[str, Any]:
    from app.ecodeli.modules.matches.service import match_to_dict

    d = package_summary(p) or {}
    d.update(
        {
            "pickup_lat": p.pickup_lat,
            "pickup_lng": p.pickup_lng,
            "delivery_lat": p.delivery_lat,
            "delivery_lng": p.delivery_lng,
            "updated_at": iso(p.updated_at),
            "matches": [match_to_dict(m, with_package=False) for m in p.matches],
        }
    )
    return d


def list_packages(s: "Session", *, search: str | None = None, status: str | None = None) -> list[Package]:
    q = s.query(Package)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Package.title.ilike(like),
                Package.description.ilike(like),
                Package.sender_name.ilike(like),
                Package.recipient_name.ilike(like),
                Package.pickup_address.ilike(like),
                Package.delivery_address.ilike(like),
                Package.tracking_number.ilike(like),
            )
        )
    if status:
        q = q.filter(Package.status == status)
    return q.order_by(Package.created_at.desc(), Package.id.desc()).all()


def set_package_status(s: "Session", package: Package, status: str, actor: "User | None", reason: str | None = None) -> Package:
    if status not in PACKAGE_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(PACKAGE_STATUSES)}")
    old = package.status
    package.status = status
    package.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="package.status",
        entity_type="Package",
        entity_id=str(package.id),
        reason=reason,
        metadata={"old": old, "new": status},
    )
    return package


ACTIVE_MATCH_STATUSES = ("CONFIRMED", "IN_PROGRESS", "IN_TRANSIT")


def _person(u) -> dict[str, Any] | None:
    if u is None:
        return None
    return {"id": u.id, "first_name": u.first_name or "", "last_name": u.last_name or "", "phone_number": u.phone_number or ""}


def delivery_to_dict(p: Package) -> dict[str, Any]:
    """
    A package seen as a delivery: the package, its sender and, when matched,
    the carrier's ride (the active match wins, otherwise the newest one).
    """
    active = next((m for m in p.matches if m.status in ACTIVE_MATCH_STATUSES), None) or next(iter(p.matches), None)
    sender_first, _, sender_last = (p.sender_name or "").partition(" ")
    ride = active.ride if active is not None else None
    if ride is not None:
        carrier = _person(ride.carrier)
        if carrier is not None:
            carrier["is_online"] = ride.carrier.is_online
        ride_block = {
            "id": ride.id,
            "match_id": active.id,
            "match_status": active.status,
            "carrier": carrier,
            "start_location": ride.origin,
            "end_location": ride.destination,
            "departure_time": iso(ride.departure_time),
        }
    else:
        ride_block = {
            "id": None,
            "match_id": None,
            "match_status": None,
            "carrier": None,
            "start_location": p.pickup_address,
            "end_location": p.delivery_address,
            "departure_time": iso(p.created_at),
        }
    return {
        "id": p.id,
        "status": p.status,
        "price": p.price or 0,
        "tracking_number": p.tracking_number,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
        "package": {
            "id": p.id,
            "title": p.title,
            "description": p.description,
            "sender_address": p.pickup_address,
            "recipient_address": p.delivery_address,
            "weight": p.weight,
            "sender": {"first_name": sender_first, "last_name": sender_last},
            "user": _person(p.sender),
            "recipient": {"name": p.recipient_name or ""},
        },
        "ride": ride_block,
    }
