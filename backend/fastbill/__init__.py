# backend/fastbill/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _build_storage(app: Flask):
    from .offline.storage import MemoryStorage, JsonFileStorage

    path = app.config["LOCAL_STORAGE_PATH"]
    quota = app.config["LOCAL_STORAGE_QUOTA_BYTES"]
    if not path or path == ":memory:":
        return MemoryStorage(quota)
    return JsonFileStorage(path, quota)


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Till-side state: one local storage, one connectivity signal, one cache
    from .services.cache_service import TTLCache
    from .services.auth_service import AuthEvents
    from .offline.connectivity import ConnectivityMonitor
    from .offline.terminal import TerminalRegistry
    from .decorators import TERMINALS_EXTENSION, AUTH_EVENTS_EXTENSION, CACHE_EXTENSION

    cache = TTLCache(default_ttl=app.config["CACHE_DURATION_SECONDS"])
    registry = TerminalRegistry(_build_storage(app), ConnectivityMonitor(), cache)
    auth_events = AuthEvents()
    auth_events.subscribe(registry.handle_auth_event)

    app.extensions[CACHE_EXTENSION] = cache
    app.extensions[TERMINALS_EXTENSION] = registry
    app.extensions[AUTH_EVENTS_EXTENSION] = auth_events

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.billing import billing_bp
    from .routes.orders import orders_bp
    from .routes.customers import customers_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(reports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
