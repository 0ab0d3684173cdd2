"""
JWT helpers for session tokens and identity assertions.

Session tokens are HS256-signed with a secret the caller supplies.
Identity assertions (e.g. a Google ID token handed over by the browser)
are only read here; their signature is the identity provider's business.
"""
import logging
import time
from typing import Any, Dict, Optional

import jwt

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'


def create_auth_token(claims: Dict[str, Any], secret: str, expires_in: int = 8 * 60 * 60) -> str:
    """
    Create a signed JWT carrying claims.

    Args:
        claims: Payload fields (e.g. sub, email, role)
        secret: HMAC signing secret
        expires_in: Token lifetime in seconds (default 8 hours)

    Returns:
        Signed JWT token string
    """
    if not secret:
        raise ValueError("A signing secret is required for auth tokens")

    now = int(time.time())
    payload = dict(claims)
    payload['iat'] = now
    payload['exp'] = now + expires_in
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_auth_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    """
    Verify a signed JWT.

    Returns:
        The payload if valid, None if invalid or expired
    """
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Auth token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f"Invalid auth token: {e}")
        return None


def read_unverified_claims(token: str) -> Dict[str, Any]:
    """
    Decode a JWT payload without checking its signature or expiry.

    Raises:
        jwt.DecodeError: token is not a decodable JWT
    """
    return jwt.decode(token, options={'verify_signature': False})
