"""Main blueprint with health check endpoints."""
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from ferremas.database import get_session, utcnow

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        503: Unhealthy (DB error)
    """
    try:
        session = get_session()
        row = session.execute(text("SELECT 1 as health_check")).fetchone()
        database_ok = bool(row and row[0] == 1)
        error = None if database_ok else 'Unexpected query result'
    except SQLAlchemyError as e:
        get_session().rollback()
        database_ok = False
        error = str(e)

    gateway = current_app.extensions.get('gateway')
    body = {
        'success': database_ok,
        'status': 'healthy' if database_ok else 'unhealthy',
        'database': 'connected' if database_ok else 'disconnected',
        'gateway_configured': bool(gateway and gateway.access_token),
        'timestamp': utcnow().isoformat(),
    }
    if error:
        body['error'] = error
    return jsonify(body), 200 if database_ok else 503


@main_bp.route('/')
@main_bp.route('/api/v1')
def index():
    """API summary."""
    return jsonify({
        'success': True,
        'message': 'FERREMAS API',
        'data': {
            'version': 'v1',
            'endpoints': {
                'auth': '/api/v1/auth',
                'products': '/api/v1/products',
                'categories': '/api/v1/categories',
                'brands': '/api/v1/brands',
                'branches': '/api/v1/branches',
                'orders': '/api/v1/orders',
                'payments': '/api/v1/payments',
                'currency': '/api/v1/currency',
                'health': '/health',
                'metrics': '/metrics',
            },
        },
    })
