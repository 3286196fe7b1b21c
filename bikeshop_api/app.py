import os
import logging
from flask import Flask, request, jsonify
from flask_login import LoginManager
from flask_cors import CORS
from sqlalchemy.orm.exc import StaleDataError

from .config import config, get_config_name
from .models import db, User
from .routes import get_blueprints
from .services.errors import ServiceError
from .cli import register_commands


def create_app(config_name=None):
    """
    Application factory
    """
    if config_name is None:
        config_name = get_config_name()

    app = Flask(__name__)

    # Instantiate so the database URL is resolved from the environment
    config_instance = config[config_name]()
    app.config.from_object(config_instance)
    configure_logging(app, config_name)
    app.logger.info(f"Configuration loaded for {config_name} environment")

    db.init_app(app)

    CORS(app,
         origins=app.config.get('CORS_ORIGINS', []),
         supports_credentials=app.config.get('CORS_SUPPORTS_CREDENTIALS', True),
         methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization', 'X-Requested-With', 'Accept', 'Origin'],
         max_age=86400)

    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.session_protection = 'strong'

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        """Return JSON instead of redirecting to a login page"""
        app.logger.warning(f"Unauthorized API access attempt to {request.path} from {request.remote_addr}")
        return jsonify({
            'error': 'Authentication required',
            'code': 'UNAUTHORIZED'
        }), 401

    @login_manager.user_loader
    def load_user(user_id):
        try:
            return db.session.get(User, int(user_id))
        except (ValueError, TypeError) as e:
            app.logger.warning(f"Invalid user_id provided to user_loader: {user_id} - {e}")
            return None

    for blueprint, url_prefix in get_blueprints():
        app.register_blueprint(blueprint, url_prefix=url_prefix)
        app.logger.debug(f"Registered {blueprint.name} blueprint at {url_prefix}")

    register_error_handlers(app)
    register_commands(app)

    with app.app_context():
        db.create_all()

    api_routes = len([rule for rule in app.url_map.iter_rules() if rule.rule.startswith('/api/')])
    app.logger.info(f"Bike Shop Service API created ({api_routes} API routes)")
    return app


def configure_logging(app, config_name):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    if config_name == 'production' and not app.debug:
        logging.basicConfig(level=level)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        app.logger.addHandler(handler)
        app.logger.setLevel(level)
    elif app.debug:
        app.logger.setLevel(logging.DEBUG)
    else:
        app.logger.setLevel(level)


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error(f"{error.code} on {request.method} {request.path}: {error.message}")
        else:
            app.logger.info(f"{error.code} on {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(StaleDataError)
    def handle_stale_data(error):
        db.session.rollback()
        app.logger.warning(f"Concurrent modification on {request.path}: {error}")
        return jsonify({
            'error': 'The document was modified by another request. Reload and try again.',
            'code': 'CONFLICT'
        }), 409

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'Not Found',
            'message': f'The requested endpoint {request.path} does not exist',
            'code': 'NOT_FOUND'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'Method Not Allowed',
            'message': f'The method {request.method} is not allowed for endpoint {request.path}',
            'code': 'METHOD_NOT_ALLOWED'
        }), 405

    @app.errorhandler(500)
    def internal_error(error):
        """500 handler with database rollback"""
        db.session.rollback()
        app.logger.error(f"Internal server error: {error}")
        return jsonify({
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred. Please try again later.',
            'code': 'INTERNAL_ERROR'
        }), 500


if __name__ == '__main__':
    local_app = create_app()
    port = int(os.environ.get('PORT', 5000))
    local_app.run(
        debug=local_app.config.get('DEBUG', False),
        host='0.0.0.0',
        port=port
    )
