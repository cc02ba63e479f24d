from __future__ import annotations

import secrets
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ecodeli.audit import record_event
from app.ecodeli.models import User
from app.ecodeli.modules.storage.models import BoxRental, StorageBox
from app.ecodeli.modules.users.service import user_summary
from app.ecodeli.utils import iso, parse_bool, parse_datetime, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class DuplicateBoxCodeError(ValueError):
    pass


def generate_access_code() -> str:
    """Six-digit numeric code the renter types on the box keypad."""
    return f"{secrets.randbelow(10**6):06d}"


def box_summary(box: StorageBox | None) -> dict[str, Any] | None:
    if box is None:
        return None
    return {
        "id": box.id,
        "code": box.code,
        "location": box.location,
        "size": box.size,
        "price_per_day": box.price_per_day,
    }


def box_to_dict(box: StorageBox) -> dict[str, Any]:
    d = box_summary(box) or {}
    d.update(
        {
            "owner_id": box.owner_id,
            "owner": user_summary(box.owner),
            "is_occupied": box.is_occupied,
            "is_active": box.is_active,
            "created_at": iso(box.created_at),
            "updated_at": iso(box.updated_at),
            "rentals": [
                {
                    "id": r.id,
                    "user_id": r.user_id,
                    "start_date": iso(r.start_date),
                    "end_date": iso(r.end_date),
                    "is_active": r.is_active,
                    "user": {"first_name": r.user.first_name, "last_name": r.user.last_name} if r.user else None,
                }
                for r in box.rentals
                if r.is_active
            ],
        }
    )
    return d


def rental_to_dict(r: BoxRental) -> dict[str, Any]:
    return {
        "id": r.id,
        "box_id": r.box_id,
        "user_id": r.user_id,
        "start_date": iso(r.start_date),
        "end_date": iso(r.end_date),
        "total_cost": r.total_cost,
        "access_code": r.access_code,
        "is_active": r.is_active,
        "payment_status": "PAID" if r.total_cost else "PENDING",
        "created_at": iso(r.created_at),
        "updated_at": iso(r.updated_at),
        "box": box_summary(r.box),
        "user": user_summary(r.user),
    }


def list_boxes(s: "Session") -> list[StorageBox]:
    return s.query(StorageBox).order_by(StorageBox.created_at.desc(), StorageBox.id.desc()).all()


def create_box(s: "Session", payload: dict, actor: User | None) -> StorageBox:
    if any(payload.get(f) in (None, "") for f in ("code", "location", "size", "price_per_day")):
        raise ValueError("code, location, size and price_per_day are required")
    code = str(payload["code"]).strip()
    if s.query(StorageBox.id).filter(StorageBox.code == code).first() is not None:
        raise DuplicateBoxCodeError("A storage box with this code already exists.")
    price = parse_float(payload.get("price_per_day"), "price_per_day")
    if price is None or price < 0:
        raise ValueError("price_per_day must be >= 0")
    owner_id = parse_int(payload.get("owner_id"), "owner_id")
    if owner_id and not s.get(User, owner_id):
        raise LookupError("Owner not found")

    now = datetime.utcnow()
    box = StorageBox(
        code=code,
        location=str(payload["location"]).strip(),
        size=str(payload["size"]).strip(),
        price_per_day=price,
        owner_id=owner_id,
        is_occupied=False,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(box)
    s.flush()
    record_event(s, actor=actor, action="storage_box.create", entity_type="StorageBox", entity_id=str(box.id), metadata={"code": code})
    return box


def list_rentals(s: "Session") -> list[BoxRental]:
    return s.query(BoxRental).order_by(BoxRental.created_at.desc(), BoxRental.id.desc()).all()


def create_rental(s: "Session", payload: dict, actor: User | None) -> BoxRental:
    """Raises ValueError (bad payload / occupied box) or LookupError (unknown box/user)."""
    if any(payload.get(f) in (None, "") for f in ("box_id", "user_id", "start_date")):
        raise ValueError("box_id, user_id and start_date are required")
    box = s.get(StorageBox, parse_int(payload.get("box_id"), "box_id"))
    if not box:
        raise LookupError("Storage box not found")
    user = s.get(User, parse_int(payload.get("user_id"), "user_id"))
    if not user:
        raise LookupError("User not found")

    start_date = parse_datetime(payload.get("start_date"))
    end_date = parse_datetime(payload.get("end_date"))
    if end_date is not None and start_date is not None and end_date < start_date:
        raise ValueError("end_date must be after start_date")
    is_active = parse_bool(payload["is_active"]) if payload.get("is_active") is not None else True
    if is_active and box.is_occupied:
        raise ValueError("Storage box is already occupied")

    now = datetime.utcnow()
    rental = BoxRental(
        box=box,
        user_id=user.id,
        start_date=start_date,
        end_date=end_date,
        total_cost=parse_float(payload.get("total_cost"), "total_cost"),
        access_code=(str(payload.get("access_code") or "").strip() or generate_access_code()),
        is_active=is_active,
        created_at=now,
        updated_at=now,
    )
    s.add(rental)
    if is_active:
        box.is_occupied = True
        box.updated_at = now
    s.flush()
    record_event(s, actor=actor, action="box_rental.create", entity_type="BoxRental", entity_id=str(rental.id), metadata={"box_id": box.id, "user_id": user.id})
    return rental


def end_rental(s: "Session", rental: BoxRental, actor: User | None) -> BoxRental:
    """Close an active rental and free the box."""
    if not rental.is_active:
        raise ValueError("Rental is not active")
    now = datetime.utcnow()
    rental.is_active = False
    rental.end_date = rental.end_date or now
    rental.updated_at = now
    box = rental.box
    still_rented = any(r.is_active for r in box.rentals if r.id != rental.id)
    if not still_rented:
        box.is_occupied = False
        box.updated_at = now
    record_event(s, actor=actor, action="box_rental.end", entity_type="BoxRental", entity_id=str(rental.id), metadata={"box_id": box.id})
    return rental
