# backend/invoicing/__init__.py
import logging

from flask import Flask, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .errors import ServiceError
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Services configured once at startup
    from .services.token_service import TokenService, TokenSettings
    from .services.push_service import InMemoryPushChannel, PushDispatcher
    from .services.pdf_service import WeasyPrintInvoiceRenderer

    app.extensions["token_service"] = TokenService(TokenSettings.from_config(app.config))
    app.extensions["push_dispatcher"] = PushDispatcher(
        app.config.get("PUSH_CHANNEL") or InMemoryPushChannel(),
        async_mode=app.config["PUSH_ASYNC"],
        queue_size=app.config["PUSH_QUEUE_SIZE"],
        workers=app.config["PUSH_WORKERS"],
        max_retries=app.config["PUSH_MAX_RETRIES"],
        backoff_base=app.config["PUSH_RETRY_BACKOFF"],
    )
    app.extensions["invoice_renderer"] = app.config.get("INVOICE_RENDERER") or WeasyPrintInvoiceRenderer()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.invoices import invoices_bp
    from .routes.users import users_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(notifications_bp)

    @app.errorhandler(ServiceError)
    def handle_service_error(error: ServiceError):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Database operation failed on %s %s", request.method, request.path)
        return jsonify({"error": "Operation failed"}), 500

    from .services.pdf_service import PdfRenderingError

    @app.errorhandler(PdfRenderingError)
    def handle_pdf_error(error: PdfRenderingError):
        app.logger.exception("Invoice rendering failed on %s", request.path)
        return jsonify({"error": "Operation failed"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
