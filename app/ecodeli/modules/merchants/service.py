from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.ecodeli.audit import record_event
from app.ecodeli.models import User
from app.ecodeli.modules.merchants.models import Product
from app.ecodeli.utils import clean_str, iso, parse_bool, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

DEFAULT_CATEGORY = "Autre"


def merchant_to_dict(u: User, product_count: int) -> dict[str, Any]:
    return {
        "id": u.id,
        "email": u.email,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "company_name": u.company_name,
        "phone_number": u.phone_number,
        "address": u.address,
        "is_verified": u.is_verified,
        "created_at": iso(u.created_at),
        "product_count": product_count,
    }


def product_to_dict(p: Product) -> dict[str, Any]:
    m = p.merchant
    return {
        "id": p.id,
        "merchant_id": p.merchant_id,
        "name": p.name,
        "description": p.description,
        "price": p.price,
        "category": p.category,
        "stock": p.stock,
        "weight": p.weight,
        "dimensions": p.dimensions,
        "image_url": p.image_url,
        "is_active": p.is_active,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
        "merchant": {"first_name": m.first_name, "last_name": m.last_name, "company_name": m.company_name} if m else None,
    }


def list_merchants(s: "Session") -> list[tuple[User, int]]:
    counts = (
        s.query(Product.merchant_id.label("merchant_id"), func.count(Product.id).label("n"))
        .group_by(Product.merchant_id)
        .subquery()
    )
    rows = (
        s.query(User, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.merchant_id == User.id)
        .filter(User.role == "MERCHANT")
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return [(u, int(n)) for u, n in rows]


def get_merchant(s: "Session", merchant_id: int) -> User:
    u = s.get(User, merchant_id)
    if not u or u.role != "MERCHANT":
        raise LookupError("Merchant not found")
    return u


def list_products(s: "Session", merchant: User) -> list[Product]:
    return (
        s.query(Product)
        .filter(Product.merchant_id == merchant.id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )


def _product_fields(payload: dict, *, partial: bool) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if not partial or "name" in payload:
        fields["name"] = clean_str(payload.get("name"), "name")
    if not partial or "price" in payload:
        fields["price"] = parse_float(payload.get("price"), "price")
    if not partial or "category" in payload:
        fields["category"] = clean_str(payload.get("category"), "category")
    if not partial and not (fields["name"] and fields["price"] is not None and fields["category"]):
        raise ValueError("name, price and category are required")
    if "name" in fields and not fields["name"]:
        raise ValueError("name cannot be empty")
    if "price" in fields and fields["price"] is None:
        raise ValueError("price cannot be empty")
    if fields.get("price") is not None and fields["price"] < 0:
        raise ValueError("price must be >= 0")
    if "category" in fields and not fields["category"]:
        fields["category"] = DEFAULT_CATEGORY

    if not partial or "stock" in payload:
        stock = parse_int(payload.get("stock"), "stock") or 0
        if stock < 0:
            raise ValueError("stock must be >= 0")
        fields["stock"] = stock
    if not partial or "weight" in payload:
        fields["weight"] = parse_float(payload.get("weight"), "weight")
    for key in ("description", "dimensions", "image_url"):
        if not partial or key in payload:
            fields[key] = clean_str(payload.get(key), key)
    if "is_active" in payload and payload["is_active"] is not None:
        fields["is_active"] = parse_bool(payload["is_active"])
    elif not partial:
        fields["is_active"] = True
    return fields


def create_product(s: "Session", merchant: User, payload: dict) -> Product:
    fields = _product_fields(payload, partial=False)
    now = datetime.utcnow()
    product = Product(merchant_id=merchant.id, created_at=now, updated_at=now, **fields)
    s.add(product)
    s.flush()
    record_event(s, actor=merchant, action="product.create", entity_type="Product", entity_id=str(product.id), metadata={"name": product.name})
    return product


def _check_owner(product: Product, merchant: User) -> None:
    if product.merchant_id != merchant.id:
        raise PermissionError("You can only manage your own products")


def update_product(s: "Session", product: Product, merchant: User, payload: dict) -> Product:
    _check_owner(product, merchant)
    fields = _product_fields(payload, partial=True)
    for k, v in fields.items():
        setattr(product, k, v)
    product.updated_at = datetime.utcnow()
    record_event(s, actor=merchant, action="product.edit", entity_type="Product", entity_id=str(product.id), metadata={"fields": sorted(fields)})
    return product


def delete_product(s: "Session", product: Product, actor: User | None, *, merchant: User | None = None) -> None:
    """Admins delete any product; a merchant only their own."""
    if merchant is not None:
        _check_owner(product, merchant)
    record_event(
        s,
        actor=actor,
        action="product.delete",
        entity_type="Product",
        entity_id=str(product.id),
        metadata={"name": product.name, "merchant_id": product.merchant_id},
    )
    s.delete(product)
    s.flush()
