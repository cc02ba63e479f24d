from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from app.ecodeli.audit import record_event
from app.ecodeli.constants import RIDE_SPACES, RIDE_STATUSES
from app.ecodeli.models import User
from app.ecodeli.modules.rides.models import Ride
from app.ecodeli.modules.users.service import user_summary
from app.ecodeli.utils import clean_str, iso, parse_datetime, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Dashboard "seats" per declared space.
SEATS_BY_SPACE = {"SMALL": 1, "MEDIUM": 3, "LARGE": 5}
DEFAULT_SEATS = 3
SEAT_PRICE_FACTOR = 5
DEFAULT_PRICE_PER_KG = 2.5


def available_seats(space: str | None) -> int:
    return SEATS_BY_SPACE.get(space or "", DEFAULT_SEATS)


def ride_summary(r: Ride | None) -> dict[str, Any] | None:
    if r is None:
        return None
    return {
        "id": r.id,
        "user_id": r.user_id,
        "origin": r.origin,
        "destination": r.destination,
        "departure_time": iso(r.departure_time),
        "arrival_time": iso(r.arrival_time),
        "available_space": r.available_space,
        "price_per_kg": r.price_per_kg,
        "vehicle_type": r.vehicle_type,
        "status": r.status,
        "carrier": user_summary(r.carrier),
    }


def ride_to_dict(r: Ride) -> dict[str, Any]:
    """Ride in the shape the dashboard rides page expects."""
    d = ride_summary(r) or {}
    carrier = r.carrier
    d.update(
        {
            "max_weight": r.max_weight,
            "description": r.description,
            "created_at": iso(r.created_at),
            "updated_at": iso(r.updated_at),
            "user": (dict(user_summary(carrier) or {}, role=carrier.role) if carrier else None),
            "start_location": r.origin,
            "end_location": r.destination,
            "estimated_arrival_time": iso(r.arrival_time),
            "available_seats": available_seats(r.available_space),
            "max_package_weight": r.max_weight,
            "max_package_size": r.available_space,
            "price_per_seat": (r.price_per_kg or 0) * SEAT_PRICE_FACTOR,
            "notes": r.description,
            "matches": [
                {
                    "id": m.id,
                    "status": m.status,
                    "package": (
                        {
                            "id": m.package.id,
                            "description": m.package.description,
                            "title": m.package.title or m.package.description,
                        }
                        if m.package
                        else None
                    ),
                }
                for m in r.matches
            ],
        }
    )
    return d


def list_rides(s: "Session", *, status: str | None = None, user_id: int | None = None, limit: int | None = None) -> list[Ride]:
    q = s.query(Ride)
    if status:
        q = q.filter(Ride.status == status)
    if user_id:
        q = q.filter(Ride.user_id == user_id)
    q = q.order_by(Ride.created_at.desc(), Ride.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def _ride_fields(payload: dict, *, defaults: bool) -> dict[str, Any]:
    """
    Normalize a ride payload (dashboard aliases accepted). Raises ValueError.
    """
    fields: dict[str, Any] = {
        "origin": clean_str(payload.get("origin") or payload.get("start_location"), "origin"),
        "destination": clean_str(payload.get("destination") or payload.get("end_location"), "destination"),
        "departure_time": parse_datetime(payload.get("departure_time")),
        "arrival_time": parse_datetime(payload.get("arrival_time")),
        "available_space": payload.get("available_space") or ("MEDIUM" if defaults else None),
        "price_per_kg": parse_float(payload.get("price_per_kg"), "price_per_kg"),
        "vehicle_type": clean_str(payload.get("vehicle_type"), "vehicle_type"),
        "max_weight": parse_float(payload.get("max_weight") or payload.get("max_package_weight"), "max_weight"),
        "description": clean_str(payload.get("description") or payload.get("notes"), "description"),
        "status": payload.get("status") or ("AVAILABLE" if defaults else None),
    }
    if fields["available_space"] and fields["available_space"] not in RIDE_SPACES:
        raise ValueError(f"Invalid available_space. Must be one of: {', '.join(RIDE_SPACES)}")
    if fields["status"] and fields["status"] not in RIDE_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(RIDE_STATUSES)}")
    return fields


def create_ride(s: "Session", payload: dict, actor: User | None) -> Ride:
    """Raises ValueError (bad payload) or LookupError (unknown user)."""
    fields = _ride_fields(payload, defaults=True)
    user_id = parse_int(payload.get("user_id"), "user_id")
    if not user_id or not all(fields[f] is not None for f in ("origin", "destination", "departure_time", "price_per_kg")):
        raise ValueError("user_id, origin, destination, departure_time, and price_per_kg are required")
    if not s.get(User, user_id):
        raise LookupError("User not found")

    now = datetime.utcnow()
    ride = Ride(user_id=user_id, created_at=now, updated_at=now, **fields)
    s.add(ride)
    s.flush()
    record_event(s, actor=actor, action="ride.create", entity_type="Ride", entity_id=str(ride.id), metadata={"user_id": user_id})
    return ride


def set_ride_status(s: "Session", ride: Ride, status: str, actor: User | None) -> Ride:
    if status not in RIDE_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(RIDE_STATUSES)}")
    old = ride.status
    ride.status = status
    ride.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="ride.status", entity_type="Ride", entity_id=str(ride.id), metadata={"old": old, "new": status})
    return ride


def _upsert_ride(s: "Session", item: dict) -> Ride:
    ride_id = parse_int(item.get("id"), "id")
    fields = _ride_fields(item, defaults=True)
    if fields["price_per_kg"] is None:
        fields["price_per_kg"] = DEFAULT_PRICE_PER_KG
    if not fields["origin"] or not fields["destination"] or fields["departure_time"] is None:
        raise ValueError("origin, destination and departure_time are required")
    user_id = parse_int(item.get("user_id"), "user_id")
    if not user_id or not s.get(User, user_id):
        raise ValueError("Unknown user_id")

    ride = s.get(Ride, ride_id) if ride_id else None
    now = datetime.utcnow()
    if ride is None:
        ride = Ride(user_id=user_id, created_at=now)
        if ride_id:
            ride.id = ride_id
        s.add(ride)
    ride.user_id = user_id
    for k, v in fields.items():
        setattr(ride, k, v)
    ride.updated_at = now
    s.flush()
    return ride


def sync_rides(s: "Session", items: list, actor: User | None) -> list[Ride]:
    """
    Upsert rides pushed by the marketplace app. Bad items are skipped and logged.
    """
    synced: list[Ride] = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("sync_rides: skipping non-object item")
            continue
        try:
            with s.begin_nested():
                synced.append(_upsert_ride(s, item))
        except (ValueError, IntegrityError) as e:
            logger.warning("sync_rides: skipping ride id=%s: %s", item.get("id"), e)
            continue
    record_event(s, actor=actor, action="ride.sync", entity_type="Ride", metadata={"received": len(items), "synced": len(synced)})
    return synced
