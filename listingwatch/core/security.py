"""JWT helpers and guest deletion tokens."""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from listingwatch.core.config import settings


def create_access_token(user_id: str, expires_in: timedelta = timedelta(days=7)) -> str:
    """Create a JWT access token (used by trusted front-ends and tests)."""
    payload: dict[str, Any] = {
        "sub": user_id,
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate JWT; return payload or None if invalid."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError:
        return None


def generate_deletion_token() -> str:
    """Unguessable token handed to guests for unsubscribe links."""
    return secrets.token_urlsafe(32)
