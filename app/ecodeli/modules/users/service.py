from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_
from werkzeug.security import generate_password_hash

from app.ecodeli.audit import record_event
from app.ecodeli.constants import USER_ROLES, USER_TYPES
from app.ecodeli.models import User
from app.ecodeli.utils import iso, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ecodeli.file_storage import Storage

logger = logging.getLogger(__name__)


class DuplicateEmailError(ValueError):
    pass


class UserHasRelationsError(ValueError):
    def __init__(self, details: dict[str, int]):
        super().__init__(
            "Cannot delete this user: they own packages, rides, payments, bookings or contracts. "
            "Delete or transfer that data first, or use force=true."
        )
        self.details = details


def user_summary(u: User | None) -> dict[str, Any] | None:
    """Compact user shape embedded in other resources."""
    if u is None:
        return None
    return {
        "id": u.id,
        "name": u.name,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "email": u.email,
        "phone_number": u.phone_number,
    }


def user_to_dict(u: User) -> dict[str, Any]:
    return {
        "id": u.id,
        "email": u.email,
        "name": u.name,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "role": u.role,
        "user_type": u.user_type,
        "company_name": u.company_name,
        "company_first_name": u.company_first_name,
        "company_last_name": u.company_last_name,
        "phone_number": u.phone_number,
        "address": u.address,
        "image": u.image,
        "is_verified": u.is_verified,
        "email_verified_at": iso(u.email_verified_at),
        "is_active": u.is_active,
        "created_at": iso(u.created_at),
        "updated_at": iso(u.updated_at),
    }


def list_users(
    s: "Session",
    *,
    search: str | None = None,
    role: str | None = None,
    verified: str | None = None,
    user_type: str | None = None,
) -> list[User]:
    q = s.query(User)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                User.name.ilike(like),
                User.email.ilike(like),
                User.first_name.ilike(like),
                User.last_name.ilike(like),
                User.company_name.ilike(like),
            )
        )
    if role:
        q = q.filter(User.role == role)
    if verified:
        q = q.filter(User.is_verified.is_(verified == "true"))
    if user_type:
        q = q.filter(User.user_type == user_type)
    return q.order_by(User.created_at.desc(), User.id.desc()).all()


def _email_taken(s: "Session", email: str, exclude_id: int | None = None) -> bool:
    q = s.query(User.id).filter(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def validate_user_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial:
        for field in ("first_name", "last_name", "email"):
            if not (payload.get(field) or "").strip():
                errors.append(f"{field} is required.")
    role = payload.get("role")
    if role and role not in USER_ROLES:
        errors.append("Invalid role")
    user_type = payload.get("user_type")
    if user_type and user_type not in USER_TYPES:
        errors.append("Invalid user type")
    return errors


def create_user(s: "Session", payload: dict, actor: User | None) -> User:
    errors = validate_user_payload(payload)
    if errors:
        raise ValueError(" ".join(errors))
    email = payload["email"].strip().lower()
    if _email_taken(s, email):
        raise DuplicateEmailError("A user with this email already exists.")

    now = datetime.utcnow()
    password = payload.get("password") or ""
    user = User(
        email=email,
        password_hash=generate_password_hash(password) if password else None,
        first_name=payload["first_name"].strip(),
        last_name=payload["last_name"].strip(),
        role=payload.get("role") or "CUSTOMER",
        user_type=payload.get("user_type") or "INDIVIDUAL",
        company_name=(payload.get("company_name") or "").strip() or None,
        company_first_name=(payload.get("company_first_name") or "").strip() or None,
        company_last_name=(payload.get("company_last_name") or "").strip() or None,
        phone_number=(payload.get("phone_number") or "").strip() or None,
        address=(payload.get("address") or "").strip() or None,
        is_verified=parse_bool(payload.get("is_verified", False)),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=actor, action="user.create", entity_type="User", entity_id=str(user.id), metadata={"email": email, "role": user.role})
    return user


_UPDATABLE = ("first_name", "last_name", "email", "role", "user_type", "phone_number", "address", "company_name")


def update_user(s: "Session", user: User, payload: dict, actor: User | None) -> User:
    errors = validate_user_payload(payload, partial=True)
    if errors:
        raise ValueError(" ".join(errors))

    changes: dict[str, Any] = {}
    for field in _UPDATABLE:
        if field not in payload or payload[field] is None:
            continue
        new = payload[field].strip() if isinstance(payload[field], str) else payload[field]
        if field == "email":
            new = new.lower()
            if not new:
                raise ValueError("email cannot be empty.")
            if _email_taken(s, new, exclude_id=user.id):
                raise DuplicateEmailError("A user with this email already exists.")
        old = getattr(user, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(user, field, new)

    if "is_verified" in payload and payload["is_verified"] is not None:
        new_verified = parse_bool(payload["is_verified"])
        if new_verified != user.is_verified:
            changes["is_verified"] = {"old": user.is_verified, "new": new_verified}
            user.is_verified = new_verified
            if new_verified and not user.email_verified_at:
                user.email_verified_at = datetime.utcnow()

    user.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="user.edit", entity_type="User", entity_id=str(user.id), metadata={"changes": changes})
    return user


def relation_counts(s: "Session", user: User) -> dict[str, int]:
    from app.ecodeli.modules.bookings.models import Booking
    from app.ecodeli.modules.contracts.models import Contract
    from app.ecodeli.modules.packages.models import Package
    from app.ecodeli.modules.payments.models import Payment
    from app.ecodeli.modules.rides.models import Ride

    def _count(model, *criteria) -> int:
        return int(s.query(func.count(model.id)).filter(*criteria).scalar() or 0)

    return {
        "packages": _count(Package, Package.user_id == user.id),
        "rides": _count(Ride, Ride.user_id == user.id),
        "payments": _count(Payment, Payment.user_id == user.id),
        "bookings": _count(Booking, or_(Booking.customer_id == user.id, Booking.provider_id == user.id)),
        "contracts": _count(Contract, or_(Contract.merchant_id == user.id, Contract.carrier_id == user.id)),
    }


def delete_user(s: "Session", user: User, actor: User | None, *, force: bool = False, storage: "Storage | None" = None) -> None:
    """
    Delete a user and the rows that hang off it. Without `force`, users that own
    business data (packages, rides, payments, bookings, contracts) are refused.
    Document files are removed from `storage` when one is given.
    Caller commits; everything happens in the caller's transaction.
    """
    from app.ecodeli.modules.bookings.models import Booking, Service
    from app.ecodeli.modules.contracts.models import Contract
    from app.ecodeli.modules.documents.models import Document
    from app.ecodeli.modules.documents.service import contract_documents, delete_documents_for
    from app.ecodeli.modules.matches.models import Match
    from app.ecodeli.modules.merchants.models import Product
    from app.ecodeli.modules.notifications.models import Notification
    from app.ecodeli.modules.packages.models import Package
    from app.ecodeli.modules.payments.models import Payment
    from app.ecodeli.modules.rides.models import Ride
    from app.ecodeli.modules.storage.models import BoxRental, StorageBox
    from app.ecodeli.modules.subscriptions.models import Subscription

    counts = relation_counts(s, user)
    if any(counts.values()) and not force:
        raise UserHasRelationsError(counts)

    uid = user.id
    if force:
        package_ids = [pid for (pid,) in s.query(Package.id).filter(Package.user_id == uid).all()]
        ride_ids = [rid for (rid,) in s.query(Ride.id).filter(Ride.user_id == uid).all()]
        match_filters = []
        if package_ids:
            match_filters.append(Match.package_id.in_(package_ids))
        if ride_ids:
            match_filters.append(Match.ride_id.in_(ride_ids))
        match_ids: list[int] = []
        if match_filters:
            match_ids = [mid for (mid,) in s.query(Match.id).filter(or_(*match_filters)).all()]

        payment_filters = [Payment.user_id == uid]
        if match_ids:
            payment_filters.append(Payment.match_id.in_(match_ids))
        s.query(Payment).filter(or_(*payment_filters)).delete(synchronize_session=False)
        if match_ids:
            s.query(Match).filter(Match.id.in_(match_ids)).delete(synchronize_session=False)
        s.query(Package).filter(Package.user_id == uid).delete(synchronize_session=False)
        s.query(Ride).filter(Ride.user_id == uid).delete(synchronize_session=False)
        s.query(Booking).filter(or_(Booking.customer_id == uid, Booking.provider_id == uid)).delete(synchronize_session=False)
        contracts = s.query(Contract).filter(or_(Contract.merchant_id == uid, Contract.carrier_id == uid)).all()
        for contract in contracts:
            delete_documents_for(s, storage, contract_documents(s, contract.id))
            s.delete(contract)

    # Non-critical rows.
    delete_documents_for(s, storage, s.query(Document).filter(Document.user_id == uid).all())
    s.query(Product).filter(Product.merchant_id == uid).delete(synchronize_session=False)
    s.query(Notification).filter(Notification.user_id == uid).delete(synchronize_session=False)
    s.query(Subscription).filter(Subscription.user_id == uid).delete(synchronize_session=False)
    service_ids = [sid for (sid,) in s.query(Service.id).filter(Service.provider_id == uid).all()]
    if service_ids:
        s.query(Booking).filter(Booking.service_id.in_(service_ids)).delete(synchronize_session=False)
        s.query(Service).filter(Service.id.in_(service_ids)).delete(synchronize_session=False)
    rented_box_ids = {
        bid for (bid,) in s.query(BoxRental.box_id).filter(BoxRental.user_id == uid, BoxRental.is_active.is_(True)).all()
    }
    s.query(BoxRental).filter(BoxRental.user_id == uid).delete(synchronize_session=False)
    if rented_box_ids:
        still_rented = {
            bid
            for (bid,) in s.query(BoxRental.box_id)
            .filter(BoxRental.box_id.in_(rented_box_ids), BoxRental.is_active.is_(True))
            .all()
        }
        freed = rented_box_ids - still_rented
        if freed:
            s.query(StorageBox).filter(StorageBox.id.in_(freed)).update(
                {StorageBox.is_occupied: False, StorageBox.updated_at: datetime.utcnow()}, synchronize_session=False
            )
    s.query(StorageBox).filter(StorageBox.owner_id == uid).update({StorageBox.owner_id: None}, synchronize_session=False)

    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=str(uid),
        reason="force" if force else None,
        metadata={"email": user.email, "counts": counts},
    )
    s.delete(user)
    s.flush()


def mark_verified(user: User) -> None:
    user.is_verified = True
    user.email_verified_at = datetime.utcnow()
    user.updated_at = datetime.utcnow()
