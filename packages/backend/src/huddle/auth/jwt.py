"""JWT verification.

Learn: access tokens carry the user id in "sub". Expired and tampered
tokens both surface as TokenError so callers handle one exception.
"""

import jwt

from huddle.config import settings


class TokenError(Exception):
    """Raised when token verification fails."""


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload
