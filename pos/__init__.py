"""Flask application factory for the POS stock service."""
import os

from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException

from pos.database import init_db

csrf = CSRFProtect()


def _is_production(app):
    return app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'


def _init_sentry(app):
    dsn = os.getenv('SENTRY_DSN')
    if not dsn or not _is_production(app):
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', '0.1')),
        environment=os.getenv('FLASK_ENV', 'production'),
        release=os.getenv('GIT_COMMIT', 'unknown'),
    )
    app.logger.info("[BOOT] Sentry enabled")


def _register_error_handlers(app):
    """Every error leaves the API as {'status': 'error', 'message': ...}."""
    from pos.exceptions import PosError

    @app.errorhandler(CSRFError)
    def csrf_failed(e):
        app.logger.warning(f"[CSRF] {request.method} {request.path}: {e.description}")
        return jsonify({'status': 'error', 'message': 'La sesión ha expirado. Recarga la página.'}), 400

    @app.errorhandler(PosError)
    def pos_error(error):
        log = app.logger.error if error.status_code >= 500 else app.logger.info
        log(f"[{type(error).__name__}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def unexpected_error(error):
        app.logger.exception(f"Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500


def _register_blueprints(app):
    from pos.blueprints.auth import auth_bp
    from pos.blueprints.catalog import catalog_bp
    from pos.blueprints.sales import sales_bp
    from pos.blueprints.settings import settings_bp
    from pos.blueprints.reports import reports_bp
    from pos.blueprints.metrics import metrics_bp

    for blueprint in (auth_bp, catalog_bp, sales_bp, settings_bp, reports_bp, metrics_bp):
        app.register_blueprint(blueprint)


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # JSON clients send X-CSRFToken obtained from /auth/csrf
    csrf.init_app(app)
    _init_sentry(app)

    from pos.services.cache_service import init_cache
    from pos.blueprints.metrics import setup_metrics_instrumentation
    init_cache(app)
    setup_metrics_instrumentation(app)

    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        # One reverse proxy in front: trust its X-Forwarded-* headers
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_db(app)

    from pos.middleware import load_current_user
    app.before_request(load_current_user)

    _register_error_handlers(app)
    _register_blueprints(app)

    from pos.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
