from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime

from .. import __version__
from ..models import db

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Health check endpoint to verify service status.
    Tests database connectivity and reports registered blueprints.
    """
    health_status = {
        'status': 'healthy',
        'app': 'Bike Shop Service API',
        'version': __version__,
        'timestamp': datetime.utcnow().isoformat() + 'Z',
        'checks': {}
    }
    status_code = 200

    try:
        db.session.execute(text('SELECT 1'))
        db.session.commit()

        db_url = current_app.config.get('SQLALCHEMY_DATABASE_URI', '')
        if 'sqlite' in db_url.lower():
            db_type = 'SQLite'
        elif 'postgres' in db_url.lower():
            db_type = 'PostgreSQL'
        else:
            db_type = 'Unknown'

        health_status['checks']['database'] = {
            'status': 'healthy',
            'type': db_type,
            'connected': True
        }
    except SQLAlchemyError as db_error:
        db.session.rollback()
        current_app.logger.error(f"Database health check failed: {db_error}")
        health_status['checks']['database'] = {
            'status': 'unhealthy',
            'connected': False,
            'error': str(db_error)
        }
        health_status['status'] = 'unhealthy'
        status_code = 503

    health_status['checks']['application'] = {
        'status': 'healthy',
        'blueprints': sorted(current_app.blueprints),
        'api_routes': len([rule for rule in current_app.url_map.iter_rules()
                           if rule.rule.startswith('/api/')])
    }

    return jsonify(health_status), status_code
