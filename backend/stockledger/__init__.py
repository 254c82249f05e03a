# backend/stockledger/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)

    # Import models so metadata and append-only listeners are registered
    from . import models  # noqa: F401

    # Post-commit event fan-out; the log subscriber is always attached
    from .services.events import EventDispatcher, log_event
    dispatcher = EventDispatcher()
    dispatcher.subscribe(log_event)
    app.extensions["ledger_events"] = dispatcher

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.purchases import purchases_bp
    from .routes.payments import payments_bp
    from .routes.returns import returns_bp
    from .routes.adjustments import adjustments_bp
    from .routes.ledger import ledger_bp
    from .routes.balances import balances_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(adjustments_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(balances_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
