"""
Shared error handlers for Flask JSON APIs.

Usage:
    from shared.error_handlers import register_error_handlers
    register_error_handlers(app, logger, render=my_render)

render(status, code, message) builds the response, so each app keeps its
own body shape. Without one, a plain {'error': message} body is used.
"""
import logging

from flask import jsonify, request


def _default_render(status, code, message):
    return jsonify({'error': message, 'code': code}), status


def register_error_handlers(app, logger=None, render=None):
    """
    Register standard HTTP error handlers on a Flask app.

    Args:
        app: Flask application instance
        logger: Optional logger instance. If not provided, uses module-level logger.
        render: Optional callable(status, code, message) -> response
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    if render is None:
        render = _default_render

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request"""
        return render(400, 'BAD_REQUEST', 'The request was invalid or malformed.')

    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized"""
        return render(401, 'AUTH_REQUIRED', 'Authentication is required to access this resource.')

    @app.errorhandler(403)
    def forbidden(error):
        """Handle 403 Forbidden"""
        return render(403, 'FORBIDDEN', 'You do not have permission to access this resource.')

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found"""
        return render(404, 'NOT_FOUND', 'The requested resource could not be found.')

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 Method Not Allowed"""
        return render(405, 'METHOD_NOT_ALLOWED', f'The {request.method} method is not allowed for this endpoint.')

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error"""
        logger.error(f"Internal server error: {getattr(error, 'original_exception', error)}", exc_info=True)
        return render(500, 'INTERNAL_ERROR', 'An unexpected error occurred. Please try again later.')

    @app.errorhandler(502)
    def bad_gateway(error):
        """Handle 502 Bad Gateway"""
        logger.error(f"Bad gateway: {error}")
        return render(502, 'BAD_GATEWAY', 'The server received an invalid response from an upstream service.')

    @app.errorhandler(503)
    def service_unavailable(error):
        """Handle 503 Service Unavailable"""
        return render(503, 'SERVICE_UNAVAILABLE', 'The service is temporarily unavailable. Please try again later.')
