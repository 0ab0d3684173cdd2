"""Identity gate: Google sign-in assertion -> Portia user + session token."""
import logging
from typing import Dict, Iterable, Optional

import jwt

from portia.database import USERS
from portia.errors import (
    AuthenticationRequired, Forbidden, NotFound, UserInactive, UserNotFound, ValidationError,
)
from portia.models import User, normalize_email
from shared.auth.tokens import create_auth_token, read_unverified_claims, verify_auth_token

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 8 * 60 * 60


class IdentityGate:
    """
    Turns an identity assertion into an authenticated session.

    The assertion's signature is not checked here; Portia trusts the
    sign-in widget that produced it. The session token Portia issues in
    return is signed, and every API call is authenticated with it.
    """

    def __init__(self, store, session_secret: str, session_ttl_seconds: int = DEFAULT_SESSION_TTL,
                 allowed_domains: Optional[Iterable[str]] = None):
        if not session_secret:
            raise ValueError("A session secret is required")
        self.store = store
        self.session_secret = session_secret
        self.session_ttl_seconds = session_ttl_seconds
        self.allowed_domains = [d.lower() for d in (allowed_domains or [])]

    @staticmethod
    def decode_assertion(token: str) -> Dict[str, str]:
        """
        Read email, name and sub from an identity assertion.

        Raises:
            ValidationError: token is malformed or carries no email
        """
        if not token or not isinstance(token, str) or token.count('.') != 2:
            raise ValidationError('Identity token must have three dot-separated segments')

        try:
            claims = read_unverified_claims(token)
        except jwt.InvalidTokenError as e:
            raise ValidationError('Identity token payload could not be decoded', details=str(e)) from e

        email = claims.get('email')
        email = normalize_email(email) if isinstance(email, str) else ''
        if not email:
            raise ValidationError('Identity token carries no email')

        return {
            'email': email,
            'name': claims.get('name') or '',
            'sub': str(claims.get('sub') or ''),
        }

    def _check_domain(self, email: str):
        if not self.allowed_domains:
            return
        domain = email.rsplit('@', 1)[-1]
        if domain not in self.allowed_domains:
            logger.warning(f"Login refused for {email}: domain not allowed")
            raise Forbidden(f"Sign-in is restricted to: {', '.join(self.allowed_domains)}")

    def find_user_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup. Prefers an active match when duplicates exist."""
        email = normalize_email(email)
        matches = [u for u in self.store.list(USERS, use_cache=False) if normalize_email(u.email) == email]
        if not matches:
            return None
        return next((u for u in matches if u.is_active), matches[0])

    def authenticate(self, assertion: Dict[str, str]) -> Dict:
        """
        Match an assertion to an active user and open a session.

        Returns:
            {'user': User, 'token': str}

        Raises:
            Forbidden: email domain not allowed
            UserNotFound: no user with that email
            UserInactive: the user has been offboarded
        """
        email = normalize_email(assertion.get('email'))
        if not email:
            raise ValidationError('Identity assertion carries no email')
        self._check_domain(email)

        user = self.find_user_by_email(email)
        if user is None:
            logger.warning(f"Login refused for {email}: no such user")
            raise UserNotFound('No Portia account exists for this email. Ask an admin to invite you.')
        if not user.is_active:
            logger.warning(f"Login refused for {email}: user is {user.status}")
            raise UserInactive('This account has been offboarded.')

        token = create_auth_token(
            {'sub': user.id, 'email': user.email, 'role': user.role},
            self.session_secret,
            expires_in=self.session_ttl_seconds,
        )
        logger.info(f"User {user.email} signed in")
        return {'user': user, 'token': token}

    def login(self, credential: str) -> Dict:
        """decode_assertion + authenticate."""
        return self.authenticate(self.decode_assertion(credential))

    def resolve_session(self, token: str) -> User:
        """
        Return the live user behind a session token.

        Raises:
            AuthenticationRequired: token missing, invalid, expired, or its user is gone
            UserInactive: the user was offboarded after the token was issued
        """
        payload = verify_auth_token(token, self.session_secret) if token else None
        if not payload or not payload.get('sub'):
            raise AuthenticationRequired('Session token is missing, invalid or expired')

        try:
            user = self.store.get(USERS, payload['sub'], use_cache=False)
        except NotFound as e:
            raise AuthenticationRequired('Session user no longer exists') from e

        if not user.is_active:
            raise UserInactive('This account has been offboarded.')
        return user

    def end_session(self, token: Optional[str] = None) -> bool:
        """Sessions are stateless; the client discards the token."""
        return True
