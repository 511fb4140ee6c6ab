"""Flask application factory."""
import logging
import os

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError

from jewelry.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    if not app.config.get('TESTING'):
        logging.basicConfig(
            level=logging.DEBUG if app.config.get('DEBUG') else logging.INFO,
            format='%(asctime)s %(levelname)s %(name)s: %(message)s'
        )

    # CSRF protection for form posts; JSON API blueprints are exempted below
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired or invalid form token.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Notifications
    from jewelry.services.email_service import init_mail
    init_mail(app)

    # Redis cache (tax rate)
    from jewelry.services.cache_service import init_cache
    init_cache(app)

    # Prometheus instrumentation
    from jewelry.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust one reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    # Error Handlers
    from jewelry.exceptions import JewelryError

    @app.errorhandler(JewelryError)
    def handle_jewelry_error(error):
        """Handle application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"JewelryError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"JewelryError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception on {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from jewelry.blueprints.main import main_bp
    from jewelry.blueprints.metrics import metrics_bp
    from jewelry.blueprints.pricing import pricing_bp
    from jewelry.blueprints.quotations import quotations_bp
    from jewelry.blueprints.orders import orders_bp
    from jewelry.blueprints.checkout import checkout_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(metrics_bp)

    # JSON API is called by other services, not browser forms
    for api_bp in (pricing_bp, quotations_bp, orders_bp, checkout_bp):
        csrf.exempt(api_bp)
        app.register_blueprint(api_bp)

    from jewelry.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")

    return app
