"""
Shared authentication module.

- SessionUser for Flask-Login
- Decorators (login_required, role_required)
- JWT session tokens and identity assertion decoding

Usage:
    from shared.auth import SessionUser, login_required
    from shared.auth.tokens import create_auth_token, verify_auth_token
"""

# Token operations
from shared.auth.tokens import create_auth_token, verify_auth_token, read_unverified_claims

# User class
from shared.auth.user import SessionUser

# Decorators
from shared.auth.decorators import login_required, role_required

__all__ = [
    # Tokens
    'create_auth_token',
    'verify_auth_token',
    'read_unverified_claims',
    # User
    'SessionUser',
    # Decorators
    'login_required',
    'role_required',
]
