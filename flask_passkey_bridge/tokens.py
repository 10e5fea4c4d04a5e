"""Session tokens for users who completed a passkey login."""

from datetime import datetime, timedelta, timezone

import jwt

TOKEN_ALGORITHM = "HS256"
TOKEN_TYPE = "authRecord"


class TokenIssuer:
    """Issues and checks HS256 JWTs bound to a user record id."""

    def __init__(self, secret, duration_seconds=14 * 24 * 60 * 60):
        if not secret:
            raise ValueError("A token secret is required")
        self.secret = secret
        self.duration = timedelta(seconds=int(duration_seconds))

    def issue(self, identity):
        now = datetime.now(timezone.utc)
        payload = {
            "id": identity.id,
            "username": identity.username,
            "type": TOKEN_TYPE,
            "iat": now,
            "exp": now + self.duration,
        }
        return jwt.encode(payload, self.secret, algorithm=TOKEN_ALGORITHM)

    def verify(self, token):
        """Return the token claims, or None if the token is invalid or expired."""
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret, algorithms=[TOKEN_ALGORITHM])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        if payload.get("type") != TOKEN_TYPE:
            return None
        return payload
