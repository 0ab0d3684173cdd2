"""Portia - Access Request Manager."""
import logging
import os

from flask import Flask, jsonify, request
from flask_login import LoginManager
from werkzeug.middleware.proxy_fix import ProxyFix

from portia.api.proxy import proxy_bp
from portia.api.routes import api_bp
from portia.database import create_store
from portia.envelope import fail, fail_from
from portia.errors import BackendError, PortiaError
from portia.services.directory import DirectoryService
from portia.services.identity import IdentityGate
from portia.services.lifecycle import AccessLifecycleService
from portia.services.policy import Policy
from shared.auth import SessionUser
from shared.error_handlers import register_error_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _render_error(status, code, message):
    return fail(code, message, status)


def create_app(app_config=None, store=None) -> Flask:
    """
    Build the Flask app.

    Args:
        app_config: A portia.config.Config; defaults to the global one
        store: A DomainStore; defaults to create_store(app_config)
    """
    if app_config is None:
        from portia.config import config as app_config

    app = Flask(__name__)

    # Trust proxy headers (nginx forwards X-Forwarded-Proto, X-Forwarded-Host, etc.)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
    app.secret_key = app_config.secret_key

    if store is None:
        store = create_store(app_config)

    policy = Policy(store)
    identity = IdentityGate(
        store,
        session_secret=app_config.session_secret,
        session_ttl_seconds=app_config.session_ttl_seconds,
        allowed_domains=app_config.allowed_domains,
    )
    app.extensions['portia'] = {
        'config': app_config,
        'store': store,
        'policy': policy,
        'identity': identity,
        'lifecycle': AccessLifecycleService(store, policy),
        'directory': DirectoryService(store, policy),
    }

    # Bearer-token sessions; nothing is kept in the Flask session cookie
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_user_from_request(req):
        header = req.headers.get('Authorization', '')
        if not header.startswith('Bearer '):
            return None
        token = header[len('Bearer '):].strip()
        try:
            user = identity.resolve_session(token)
        except PortiaError as e:
            logger.debug(f"Rejected session token: {e.message}")
            return None
        return SessionUser(user, token)

    app.register_blueprint(api_bp, url_prefix='/api')
    if app_config.notion_proxy_enabled:
        app.register_blueprint(proxy_bp, url_prefix='/proxy/notion')

    register_error_handlers(app, logger, render=_render_error)

    @app.errorhandler(PortiaError)
    def handle_portia_error(error):
        if isinstance(error, BackendError):
            logger.error(f"{request.method} {request.path}: {error.message} ({error.details})")
        elif error.http_status >= 500:
            logger.error(f"{request.method} {request.path}: {error.code} {error.message}")
        else:
            logger.info(f"{request.method} {request.path}: {error.code} {error.message}")
        return fail_from(error)

    @app.route('/robots.txt')
    def robots():
        """Robots.txt to block all search engine crawlers."""
        return """User-agent: *
Disallow: /
""", 200, {'Content-Type': 'text/plain'}

    @app.route('/health')
    def health():
        """Health check endpoint."""
        try:
            store.ping()
            return jsonify({
                'status': 'healthy',
                'bot': app_config.name,
                'version': app_config.version,
                'backend': store.backend_name,
            })
        except Exception as e:
            logger.exception("Health check error")
            return jsonify({
                'status': 'unhealthy',
                'bot': app_config.name,
                'version': app_config.version,
                'backend': store.backend_name,
                'error': str(e)
            }), 500

    @app.route('/info')
    def info():
        """Bot information endpoint."""
        return jsonify({
            'name': app_config.name,
            'description': app_config.description,
            'version': app_config.version,
            'emoji': app_config.emoji,
            'backend': store.backend_name,
            'endpoints': {
                'auth': {
                    'POST /api/auth/google-login': 'Exchange a Google ID token for a session',
                    'POST /api/auth/logout': 'End the session',
                    'GET /api/auth/me': 'Current user'
                },
                'api': {
                    'GET /api/dashboard': 'Headline counts',
                    'GET|POST /api/users': 'List or invite users',
                    'GET|PATCH /api/users/<id>': 'Get or update a user',
                    'POST /api/users/<id>/offboard': 'Offboard a user',
                    'GET /api/users/<id>/detail': 'User with requests and grants',
                    'GET|POST /api/applications': 'List or create applications',
                    'GET|PATCH|DELETE /api/applications/<id>': 'Get, update or delete an application',
                    'POST|DELETE /api/applications/<id>/admins': 'Assign or remove an app admin',
                    'GET|POST /api/access-requests': 'List or submit access requests',
                    'GET /api/access-requests/<id>': 'Get an access request',
                    'POST /api/access-requests/<id>/approve': 'Approve and grant access',
                    'POST /api/access-requests/<id>/reject': 'Reject a request',
                    'GET /api/access-registry': 'List grants',
                    'POST /api/access-registry/<id>/revoke': 'Revoke a grant'
                },
                'system': {
                    'GET /health': 'Health check',
                    'GET /info': 'Bot information'
                }
            }
        })

    return app


if __name__ == '__main__':
    from portia.config import config

    print("\n" + "=" * 50)
    print("🗝️  Hi! I'm Portia")
    print("   Access Request Manager")
    print(f"   Running on http://localhost:{config.server_port}")
    print("=" * 50 + "\n")

    create_app(config).run(
        host=config.server_host,
        port=config.server_port,
        debug=os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    )
