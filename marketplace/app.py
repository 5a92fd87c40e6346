import logging
import os
from datetime import timedelta
from typing import Dict, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_pymongo import PyMongo
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from . import admin, auth, blogs, complaints, orders, products, reviews, users, wishlist
from .commission import CommissionRateProvider
from .database import ensure_indexes
from .errors import MarketplaceError
from .notifications import NotificationDispatcher, build_queue
from .placement import OrderPlacementService

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name, str(default))
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return default


def configure_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    package_logger = logging.getLogger("marketplace")
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    package_logger.setLevel(level)
    app.logger.setLevel(level)


def allowed_origins() -> list:
    origins = [
        origin.strip()
        for origin in os.getenv("CLIENT_ORIGIN", "http://localhost:5173").split(",")
    ]
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        origins.extend(origin.strip() for origin in cors_extra.split(","))
    return [origin for origin in origins if origin]


def create_app(config_overrides: Optional[Dict] = None, database=None) -> Flask:
    """Create and configure the Flask application.

    ``database`` replaces the PyMongo connection, which lets tests run the
    app against an in-memory Mongo.
    """
    app = Flask(__name__)

    # Honor proxy headers so request.remote_addr reflects the client.
    trusted_proxy_hops = max(0, env_int("TRUSTED_PROXY_HOPS", 1))
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(
        hours=env_int("JWT_EXPIRES_HOURS", 24 * 7)
    )
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI", "mongodb://localhost:27017/marketplace"
    )
    app.config["COMMISSION_RATE"] = os.getenv("COMMISSION_RATE")
    app.config["DEFAULT_ADMIN_EMAIL"] = (
        os.getenv("DEFAULT_ADMIN_EMAIL") or ""
    ).strip().lower()
    app.config["REDIS_URL"] = (os.getenv("REDIS_URL") or "").strip()
    app.config["NOTIFICATION_QUEUE"] = os.getenv("NOTIFICATION_QUEUE", "notifications")
    app.config["NOTIFICATION_MAX_RETRIES"] = env_int("NOTIFICATION_MAX_RETRIES", 3)
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    # --- Initialize extensions ---
    CORS(app, supports_credentials=True, origins=allowed_origins() or "*")
    JWTManager(app)

    if database is None:
        database = PyMongo(app).db
    ensure_indexes(database)

    commission = CommissionRateProvider(
        database.commission_history, app.config.get("COMMISSION_RATE")
    )
    try:
        commission.hydrate()
    except Exception as exc:
        app.logger.warning("Unable to load commission history: %s", exc)

    queue = None
    if app.config["REDIS_URL"]:
        queue = build_queue(app.config["REDIS_URL"], app.config["NOTIFICATION_QUEUE"])
    notifier = NotificationDispatcher(
        database, queue=queue, max_retries=app.config["NOTIFICATION_MAX_RETRIES"]
    )

    app.extensions["marketplace"] = {
        "db": database,
        "commission": commission,
        "notifier": notifier,
        "placement": OrderPlacementService(
            database.products, database.orders, commission, notifier
        ),
    }

    # --- Routes ---
    blueprints = (auth, users, products, orders, admin, wishlist, reviews, blogs, complaints)
    for module in blueprints:
        app.register_blueprint(module.bp)

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(exc: MarketplaceError):
        if exc.status_code >= 500:
            app.logger.error("Request failed: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"message": exc.description}), exc.code
        app.logger.error("Unhandled error: %s", exc, exc_info=True)
        return jsonify({"message": "Something went wrong."}), 500

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    app.logger.info(
        "Marketplace API ready (commission rate %.4f, notifications %s)",
        commission.get_rate(),
        "queued" if notifier.is_queued else "inline",
    )
    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port)
