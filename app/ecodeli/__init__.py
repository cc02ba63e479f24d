import logging
from datetime import timedelta

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv

from app.ecodeli.config import load_config
from app.ecodeli.db import init_db, teardown_db_session
from app.ecodeli.routes import bp as routes_bp
from app.ecodeli.auth import bp as auth_bp, load_current_user
from app.ecodeli.modules.users.admin import bp as users_bp
from app.ecodeli.modules.packages.admin import bp as packages_bp
from app.ecodeli.modules.rides.admin import bp as rides_bp
from app.ecodeli.modules.matches.admin import bp as matches_bp
from app.ecodeli.modules.bookings.admin import bp as bookings_bp
from app.ecodeli.modules.storage.admin import bp as storage_bp
from app.ecodeli.modules.reservations.admin import bp as reservations_bp
from app.ecodeli.modules.payments.admin import bp as payments_bp
from app.ecodeli.modules.subscriptions.admin import bp as subscriptions_bp
from app.ecodeli.modules.notifications.admin import bp as notifications_bp
from app.ecodeli.modules.contracts.admin import bp as contracts_bp
from app.ecodeli.modules.documents.admin import bp as documents_bp
from app.ecodeli.modules.merchants.admin import bp as merchants_bp
from app.ecodeli.modules.carriers.admin import bp as carriers_bp
from app.ecodeli.modules.analytics.admin import bp as analytics_bp
from app.ecodeli.modules.public_api.api import bp as public_api_bp

_ERROR_MESSAGES = {
    400: "Bad request",
    401: "Authentication required",
    403: "Forbidden",
    404: "Not found",
    405: "Method not allowed",
    409: "Conflict",
    413: "Request body too large",
    429: "Too many requests",
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    for bp in (
        users_bp,
        packages_bp,
        rides_bp,
        matches_bp,
        bookings_bp,
        storage_bp,
        reservations_bp,
        payments_bp,
        subscriptions_bp,
        notifications_bp,
        contracts_bp,
        documents_bp,
        merchants_bp,
        carriers_bp,
        analytics_bp,
        public_api_bp,
    ):
        app.register_blueprint(bp, url_prefix="/api")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    def _json_error(code: int):
        def handler(e):
            if code == 403:
                missing = getattr(g, "missing_permission", None)
                if missing:
                    app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
                    return jsonify({"error": _ERROR_MESSAGES[403], "missing_permission": missing}), 403
            description = getattr(e, "description", None)
            message = _ERROR_MESSAGES[code]
            if code == 404 and request.path.startswith("/api/") and request.url_rule is not None:
                message = "Resource not found"
            return jsonify({"error": message, "details": description}), code

        return handler

    for code in _ERROR_MESSAGES:
        app.register_error_handler(code, _json_error(code))

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal server error", "request_id": rid}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
