from flask import Blueprint, current_app, jsonify
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from app.ecodeli.db import db_session
from app.ecodeli.models import (
    AuditEvent,
    Booking,
    BoxRental,
    Contract,
    Document,
    Match,
    Notification,
    Package,
    Payment,
    Product,
    Ride,
    Service,
    StorageBox,
    Subscription,
    User,
)
from app.ecodeli.rbac import require_permission

bp = Blueprint("routes", __name__)

COUNTED_MODELS = (
    User,
    Package,
    Ride,
    Match,
    Service,
    Booking,
    StorageBox,
    BoxRental,
    Payment,
    Subscription,
    Notification,
    Contract,
    Document,
    Product,
    AuditEvent,
)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO liveness checks. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/test-db")
@require_permission("diagnostics.view")
def test_db():
    """Database round trip plus row counts per table."""
    s = db_session()
    try:
        s.execute(text("SELECT 1"))
        counts = {m.__tablename__: s.query(func.count()).select_from(m).scalar() for m in COUNTED_MODELS}
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.error("Database check failed: %s", e)
        return jsonify({"success": False, "error": "Database connection failed", "details": str(e)}), 500
    engine = current_app.extensions["sqlalchemy_engine"]
    return jsonify(
        {
            "success": True,
            "message": "Database connection OK",
            "dialect": engine.dialect.name,
            "counts": counts,
        }
    )
