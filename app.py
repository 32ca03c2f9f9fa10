"""
app.py - Application Factory
Entry point for the report card engine's Flask application.
Uses the Application Factory pattern for modularity and testing.
"""

import logging

from flask import Flask, jsonify
from config import config
from extensions import db, migrate, login_manager

logger = logging.getLogger(__name__)


def create_app(config_name='development'):
    """
    Application Factory Function

    Args:
        config_name (str): Configuration to use ('development', 'production', 'testing')

    Returns:
        Flask: Configured Flask application instance
    """
    # Initialize Flask app
    app = Flask(__name__)

    # Load configuration from config.py based on environment
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # Initialize extensions with the app
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # User loader callback for Flask-Login
    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login session management"""
        from models import User
        return db.session.get(User, int(user_id))

    # JSON API: answer 401 instead of redirecting to a login page
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'Authentication required'}), 401

    # Register blueprints (routes)
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Import models so Flask-Migrate can detect them
    with app.app_context():
        import models  # noqa: F401

    logger.info("Report card app created with '%s' config", config_name)
    return app


def register_blueprints(app):
    """
    Register all application blueprints (modular route handlers)
    """
    from blueprints.report_cards.routes import report_cards_bp
    from blueprints.admin.routes import admin_bp

    # Register with URL prefixes
    app.register_blueprint(report_cards_bp, url_prefix='/report-cards')
    app.register_blueprint(admin_bp, url_prefix='/admin')


def register_error_handlers(app):
    """
    Register JSON error handlers for common HTTP errors
    """
    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'success': False, 'error': 'Bad request'}), 400

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({'success': False, 'error': 'Access denied'}), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()  # Rollback any failed database transactions
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


# Run the application
if __name__ == '__main__':
    app = create_app('development')

    app.run(
        host='0.0.0.0',
        port=5000,
        debug=True
    )
