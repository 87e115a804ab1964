"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import os

from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from minerchecker.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')
    app.json.sort_keys = False

    # Register blueprints
    from minerchecker.routes.profitability import bp as profitability_bp

    app.register_blueprint(profitability_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic; no init_db() call.
    from minerchecker.database import import_models
    import_models()

    return app
