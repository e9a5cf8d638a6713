"""Application factory for the Flowgate backend."""
from __future__ import annotations

import time

from flask import Flask, jsonify
from sqlalchemy.exc import OperationalError

from .config import Config
from .errors import FlowgateError
from .extensions import cors, db, limiter, remote_engine


def create_app(config_class: type[Config] = Config) -> Flask:
    """Create and configure the Flask application instance."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)

    if cors is not None:
        allowed_origins = [
            origin.strip()
            for origin in (app.config.get("CORS_ALLOWED_ORIGINS") or "").split(",")
            if origin.strip()
        ]
        cors.init_app(
            app,
            resources={r"/api/*": {"origins": allowed_origins}},
            allow_headers=["Content-Type", "Authorization"],
        )

    limiter.init_app(app)
    remote_engine.init_app(app)

    from .api.audit import bp as audit_bp
    from .api.auth import bp as auth_bp
    from .api.cleanup import bp as cleanup_bp
    from .api.executions import bp as executions_bp
    from .api.health import bp as health_bp
    from .api.reviews import bp as reviews_bp
    from .api.webhooks import bp as webhooks_bp
    from .api.workflow import bp as workflow_bp

    for blueprint in (
        health_bp,
        auth_bp,
        workflow_bp,
        reviews_bp,
        executions_bp,
        webhooks_bp,
        cleanup_bp,
        audit_bp,
    ):
        app.register_blueprint(blueprint, url_prefix="/api")

    _register_error_handlers(app)

    with app.app_context():
        # Import models to ensure they are registered with SQLAlchemy before creating tables.
        from .models import audit, auth, execution, review, workflow  # noqa: F401

        _initialize_database(app)

    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(FlowgateError)
    def handle_flowgate_error(exc: FlowgateError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", type(exc).__name__, exc.message)
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code


def _initialize_database(app: Flask) -> None:
    """Initialize the database with retry logic to handle delayed availability."""

    max_retries = int(app.config.get("DB_INIT_MAX_RETRIES", 30))
    retry_delay = float(app.config.get("DB_INIT_RETRY_DELAY", 2))

    for attempt in range(1, max_retries + 1):
        try:
            db.create_all()
            return
        except OperationalError as exc:
            if attempt >= max_retries:
                app.logger.exception("Database initialization failed after %s attempts.", attempt)
                raise

            app.logger.warning(
                "Database initialization attempt %s/%s failed: %s", attempt, max_retries, exc
            )
            time.sleep(retry_delay)
