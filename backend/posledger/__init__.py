# backend/posledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        # Applied before extensions bind so the engine sees the test database
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.bridge import bridge_bp  # Fiscal printer bridge API
    from .routes.fiscal import fiscal_bp  # Fiscal job monitoring and shift actions
    from .routes.credits import credits_bp  # Customer / supplier credit queries
    from .routes.expenses import expenses_bp  # Expense deletion cascade

    app.register_blueprint(system_bp)
    app.register_blueprint(bridge_bp)
    app.register_blueprint(fiscal_bp)
    app.register_blueprint(credits_bp)
    app.register_blueprint(expenses_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
