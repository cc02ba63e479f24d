"""
Bearer-token API used by the customer, carrier, provider and merchant apps.
"""
from __future__ import annotations

from flask import Blueprint, abort, jsonify
from werkzeug.security import check_password_hash

from app.ecodeli.db import db_session
from app.ecodeli.models import User
from app.ecodeli.modules.bookings.models import Booking
from app.ecodeli.modules.bookings.service import booking_to_dict, customer_booking_action, provider_manage_booking
from app.ecodeli.modules.carriers.service import carrier_status, set_carrier_online
from app.ecodeli.modules.matches.models import Match
from app.ecodeli.modules.matches.service import carrier_set_status, match_to_dict, validate_delivery
from app.ecodeli.modules.merchants.models import Product
from app.ecodeli.modules.merchants.service import create_product, delete_product, list_products, product_to_dict, update_product
from app.ecodeli.modules.public_api.service import customer_data, public_user
from app.ecodeli.security import TokenError, bearer_payload, create_access_token, token_user_id
from app.ecodeli.utils import json_body, parse_bool, parse_int

bp = Blueprint("public_api", __name__)

PROVIDER_ROLES = ("PROVIDER", "SERVICE_PROVIDER")


def _token_user(*roles: str):
    """
    Resolve the bearer token to a user.
    Returns (user, None) or (None, error response).
    """
    try:
        user_id = token_user_id(bearer_payload())
    except TokenError as e:
        return None, (jsonify({"error": str(e)}), 401)
    user = db_session().get(User, user_id)
    if not user:
        return None, (jsonify({"error": "User not found"}), 404)
    if not user.is_active:
        return None, (jsonify({"error": "Account disabled"}), 401)
    if roles and user.role not in roles:
        return None, (jsonify({"error": "Access restricted to " + " / ".join(r.lower() for r in roles)}), 403)
    return user, None


@bp.post("/public/auth")
def public_auth():
    payload = json_body()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user:
        return jsonify({"error": "User not found"}), 404
    if user.role != "CUSTOMER":
        return jsonify({"error": "Access restricted to customers"}), 403
    if not user.password_hash:
        return jsonify({"error": "No password set for this account"}), 400
    if not check_password_hash(user.password_hash, password):
        return jsonify({"error": "Incorrect password"}), 401

    return jsonify({"success": True, "token": create_access_token(user), "user": public_user(user)})


@bp.get("/public/customer/data")
def customer_data_view():
    user, err = _token_user("CUSTOMER")
    if err:
        return err
    return jsonify(customer_data(db_session(), user))


@bp.post("/public/customer/validate-delivery")
def customer_validate_delivery():
    user, err = _token_user("CUSTOMER")
    if err:
        return err
    s = db_session()
    try:
        match = validate_delivery(s, user, json_body())
    except PermissionError as e:
        return jsonify({"error": str(e)}), 403
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "message": "Delivery validated", "match": match_to_dict(match)})


@bp.put("/public/customer/service")
def customer_service_action():
    user, err = _token_user("CUSTOMER")
    if err:
        return err
    s = db_session()
    payload = json_body()
    try:
        booking_id = parse_int(payload.get("booking_id"), "booking_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not booking_id or not payload.get("action"):
        return jsonify({"error": "booking_id and action are required"}), 400
    booking = s.get(Booking, booking_id)
    if not booking:
        abort(404)
    try:
        customer_booking_action(
            s,
            booking,
            user,
            payload.get("action"),
            rating=payload.get("rating"),
            review=payload.get("review"),
        )
    except PermissionError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "booking": booking_to_dict(booking)})


@bp.post("/public/carrier/matches/<int:match_id>/status")
def carrier_match_status(match_id: int):
    user, err = _token_user("CARRIER")
    if err:
        return err
    s = db_session()
    match = s.get(Match, match_id)
    if not match:
        abort(404)
    try:
        carrier_set_status(s, match, (json_body().get("status") or "").strip(), user)
    except PermissionError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "match": match_to_dict(match)})


@bp.post("/public/provider/bookings/<int:booking_id>/manage")
def provider_booking_manage(booking_id: int):
    user, err = _token_user(*PROVIDER_ROLES)
    if err:
        return err
    s = db_session()
    booking = s.get(Booking, booking_id)
    if not booking:
        abort(404)
    payload = json_body()
    try:
        provider_manage_booking(s, booking, user, payload.get("action"), (payload.get("reason") or "").strip() or None)
    except PermissionError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "booking": booking_to_dict(booking)})


@bp.post("/public/carrier/status")
def carrier_own_status():
    user, err = _token_user("CARRIER")
    if err:
        return err
    payload = json_body()
    if payload.get("is_online") is None:
        return jsonify({"error": "is_online is required"}), 400
    s = db_session()
    set_carrier_online(s, user, parse_bool(payload["is_online"]), user)
    s.commit()
    return jsonify({"success": True, "data": carrier_status(s, user)})


@bp.get("/public/merchant/products")
def merchant_products():
    user, err = _token_user("MERCHANT")
    if err:
        return err
    return jsonify({"products": [product_to_dict(p) for p in list_products(db_session(), user)]})


@bp.post("/public/merchant/products")
def merchant_create_product():
    user, err = _token_user("MERCHANT")
    if err:
        return err
    s = db_session()
    try:
        product = create_product(s, user, json_body())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "product": product_to_dict(product)}), 201


@bp.put("/public/merchant/products/<int:product_id>")
def merchant_update_product(product_id: int):
    user, err = _token_user("MERCHANT")
    if err:
        return err
    s = db_session()
    product = s.get(Product, product_id)
    if not product:
        abort(404)
    try:
        update_product(s, product, user, json_body())
    except PermissionError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"success": True, "product": product_to_dict(product)})


@bp.delete("/public/merchant/products/<int:product_id>")
def merchant_delete_product(product_id: int):
    user, err = _token_user("MERCHANT")
    if err:
        return err
    s = db_session()
    product = s.get(Product, product_id)
    if not product:
        abort(404)
    try:
        delete_product(s, product, user, merchant=user)
    except PermissionError as e:
        return jsonify({"error": str(e)}), 403
    s.commit()
    return jsonify({"success": True})
