# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask, Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import event

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from config import DevelopmentConfig, ProductionConfig, TestingConfig  # noqa: E402
from config.monitoring import (  # noqa: E402
    DevelopmentMonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
)
from config.validation import validate_and_exit  # noqa: E402
from leadbridge.models import db  # noqa: E402
from leadbridge.transfer import init_transfer  # noqa: E402
from leadbridge.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)


def _select_config(flask_env):
    if flask_env == "production":
        return ProductionConfig, ProductionMonitoringConfig
    if flask_env == "testing":
        return TestingConfig, TestingMonitoringConfig
    return DevelopmentConfig, DevelopmentMonitoringConfig


def _configure_sqlite_connection_factory(*, enable_foreign_keys: bool):
    """Return a connection hook applying concurrency-friendly pragmas."""

    def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        except Exception as exc:
            logger.warning("Failed to apply SQLite PRAGMAs: %s", exc)

    return _configure_sqlite_connection


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def _register_metrics_endpoint(app):
    if not app.config.get("MONITORING_ENABLED", False):
        return

    @app.get(app.config.get("METRICS_ENDPOINT", "/metrics"))
    def metrics():
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


def create_app(overrides=None, *, client_factory=None):
    """
    Build the Flask application.

    ``overrides`` is applied on top of the environment-selected config before
    any extension initialises, so tests can point at their own database.
    """
    flask_env = os.environ.get("FLASK_ENV", "development")
    if flask_env == "production":
        validate_and_exit(flask_env)

    app = Flask(__name__)
    config_class, monitoring_class = _select_config(flask_env)
    app.config.from_object(config_class)
    app.config.from_object(monitoring_class)
    if overrides:
        app.config.update(overrides)

    db.init_app(app)
    setup_logging(app)
    init_transfer(app, client_factory=client_factory)
    _register_error_handlers(app)
    _register_metrics_endpoint(app)

    with app.app_context():
        engine = db.engine
        if engine.url.drivername.startswith("sqlite"):
            if not getattr(engine, "_sqlite_pragmas_configured", False):
                pragma_hook = _configure_sqlite_connection_factory(
                    enable_foreign_keys=not app.config.get("TESTING", False)
                )
                event.listen(engine, "connect", pragma_hook)
                engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]
        # The transfer ledger is the only state; create it up front outside tests
        if not app.config.get("TESTING", False):
            db.create_all()

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
