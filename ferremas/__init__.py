"""Flask application factory."""
from flask import Flask, jsonify, request
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException
from ferremas.database import init_db, get_session
import logging
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = app.config.get('JSON_SORT_KEYS', False)

    # Logging
    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    app.logger.setLevel(log_level)

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from ferremas.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # External services (swappable through app.extensions)
    from ferremas.services.mercadopago_client import init_gateway
    from ferremas.services.currency_service import init_exchange_rates
    init_gateway(app)
    init_exchange_rates(app)

    # Load bearer token claims before each request
    from ferremas.middleware import load_current_user

    @app.before_request
    def before_request_handler():
        load_current_user()

    # Error Handlers
    from ferremas.exceptions import FerremasError, UpstreamError

    @app.errorhandler(FerremasError)
    def handle_ferremas_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"FerremasError [{error.status_code}] {request.method} {request.path}: {error.message}")
        else:
            app.logger.info(f"FerremasError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        messages = {
            404: 'Ruta no encontrada',
            405: 'Método no permitido',
        }
        return jsonify({
            'success': False,
            'message': messages.get(error.code, error.description),
        }), error.code

    @app.errorhandler(OperationalError)
    def handle_database_unavailable(error):
        app.logger.error(f"Database unavailable: {error}")
        get_session().rollback()
        upstream = UpstreamError('Base de datos no disponible')
        return jsonify(upstream.to_dict()), upstream.status_code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        get_session().rollback()
        return jsonify({'success': False, 'message': 'Error interno del servidor'}), 500

    # Register blueprints
    from ferremas.blueprints.main import main_bp
    from ferremas.blueprints.metrics import metrics_bp
    from ferremas.blueprints.auth import auth_bp
    from ferremas.blueprints.catalog import catalog_bp
    from ferremas.blueprints.orders import orders_bp
    from ferremas.blueprints.payments import payments_bp
    from ferremas.blueprints.webhooks import webhooks_bp
    from ferremas.blueprints.currency import currency_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(currency_bp)

    # Register CLI commands
    from ferremas.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"FERREMAS API ready (status policy: {app.config.get('ORDER_STATUS_POLICY')})")

    return app
