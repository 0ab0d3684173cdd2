"""
Shared authentication decorators for JSON API routes.

Failures abort with 401/403 so the app's registered error handlers
decide the response body.
"""
from functools import wraps

from flask import abort
from flask_login import current_user


def login_required(f):
    """Require an authenticated, active user. Aborts 401 otherwise."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not current_user.is_active:
            abort(401)
        return f(*args, **kwargs)
    return decorated_function


def role_required(*roles):
    """
    Require one of the given roles.

    Aborts 401 if not logged in, 403 if logged in with another role.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated or not current_user.is_active:
                abort(401)
            if getattr(current_user, 'role', None) not in roles:
                abort(403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
