# backend/backoffice/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Overrides must land before the engine is created in db.init_app
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp, deliveries_bp, sale_items_bp
    from .routes.purchases import purchases_bp, purchase_items_bp
    from .routes.settlements import settlements_bp
    from .routes.points import points_bp
    from .routes.accounts import accounts_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(sale_items_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(purchase_items_bp)
    app.register_blueprint(settlements_bp)
    app.register_blueprint(points_bp)
    app.register_blueprint(accounts_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
