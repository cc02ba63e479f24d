from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.ecodeli.audit import record_event
from app.ecodeli.models import User
from app.ecodeli.modules.rides.models import Ride
from app.ecodeli.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def get_carrier(s: "Session", carrier_id: int) -> User:
    u = s.get(User, carrier_id)
    if not u or u.role != "CARRIER":
        raise LookupError("Carrier not found")
    return u


def carrier_status(s: "Session", carrier: User) -> dict[str, Any]:
    rides_count = s.query(func.count(Ride.id)).filter(Ride.user_id == carrier.id).scalar() or 0
    return {
        "id": carrier.id,
        "first_name": carrier.first_name,
        "last_name": carrier.last_name,
        "email": carrier.email,
        "phone_number": carrier.phone_number,
        "is_verified": carrier.is_verified,
        "created_at": iso(carrier.created_at),
        "is_online": carrier.is_online,
        "last_active_at": iso(carrier.last_active_at),
        "rides_count": int(rides_count),
    }


def set_carrier_online(s: "Session", carrier: User, is_online: bool, actor: User | None) -> User:
    old = carrier.is_online
    carrier.is_online = is_online
    carrier.last_active_at = datetime.utcnow()
    if old != is_online:
        record_event(
            s,
            actor=actor,
            action="carrier.status",
            entity_type="User",
            entity_id=str(carrier.id),
            metadata={"old": old, "new": is_online},
        )
    return carrier
