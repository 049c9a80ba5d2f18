"""
Short-lived identity tokens for calls made on behalf of a user (e.g. the retrieval index).
"""

from datetime import datetime, timedelta, timezone

import jwt

from siteplane.core.config import JWT_SECRET, SHORT_LIVED_TOKEN_MINUTES
from siteplane.core.errors import ConfigurationMissingError

JWT_ALGORITHM = "HS256"


def generate_short_lived_token(
    user_id: str,
    expire_minutes: int = SHORT_LIVED_TOKEN_MINUTES,
    secret: str = JWT_SECRET,
) -> str:
    """Sign {"id": user_id} with an expiry of expire_minutes."""
    if not secret:
        raise ConfigurationMissingError("JWT_SECRET is not configured")
    payload = {
        "id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expire_minutes),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)
