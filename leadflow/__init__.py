"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import os
from flask import Flask, jsonify


def create_app():
    """Create and configure the Flask application."""
    from leadflow.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')
    app.json.sort_keys = False

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        return jsonify({"status": "healthy"}), 200

    # Register blueprints
    from leadflow.routes.crm import bp as crm_bp

    app.register_blueprint(crm_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic; no create_all() call.
    from leadflow.database import import_models
    import_models()

    return app
