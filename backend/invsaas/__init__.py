# backend/invsaas/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate
from .notifier import build_notifier


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

    # Post-commit change notifier, injected into workflows by the routes
    app.extensions["invsaas.notifier"] = build_notifier(app.config["NOTIFIER"])

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.purchase_orders import purchase_orders_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(purchase_orders_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
