from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.merchants.models import Product
from app.ecodeli.modules.merchants.service import (
    delete_product,
    get_merchant,
    list_merchants,
    list_products,
    merchant_to_dict,
    product_to_dict,
)
from app.ecodeli.rbac import require_permission
from app.ecodeli.utils import parse_int

bp = Blueprint("merchants", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/merchants")
@require_permission("merchants.view")
def merchants_list():
    merchants = list_merchants(db_session())
    return jsonify({"merchants": [merchant_to_dict(u, n) for u, n in merchants], "total": len(merchants)})


@bp.get("/merchants/products")
@require_permission("merchants.view")
def merchants_products():
    s = db_session()
    try:
        merchant_id = parse_int(request.args.get("merchant_id"), "merchant_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not merchant_id:
        return jsonify({"error": "merchant_id is required"}), 400
    try:
        merchant = get_merchant(s, merchant_id)
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify([product_to_dict(p) for p in list_products(s, merchant)])


@bp.delete("/merchants/products/<int:product_id>")
@require_permission("merchants.edit")
def merchants_delete_product(product_id: int):
    s = db_session()
    product = s.get(Product, product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    delete_product(s, product, _current_user())
    s.commit()
    return jsonify({"message": "Product deleted"})
