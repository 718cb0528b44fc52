"""Authentication & authorization dependencies.

- require_admin_key: protects /admin endpoints via X-Admin-Key header
- get_owner: resolves the caller to a user or guest owner
- RateLimiter: simple in-memory per-IP rate limiting
"""
import logging
import time
from collections import defaultdict
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from listingwatch.core.config import settings
from listingwatch.core.security import decode_access_token
from listingwatch.services.owner import Owner

logger = logging.getLogger(__name__)

# ── Admin API key ────────────────────────────────────────────────────

_admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


async def require_admin_key(
    request: Request,
    api_key: Optional[str] = Security(_admin_key_header),
) -> str:
    """
    Dependency: require valid ADMIN_API_KEY via X-Admin-Key header.
    If ADMIN_API_KEY is not set (empty), admin endpoints are OPEN (dev mode).
    """
    configured_key = settings.admin_api_key

    if not configured_key:
        logger.warning("ADMIN_API_KEY not set, admin endpoints are UNPROTECTED.")
        return "dev-mode"

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-Key header",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key != configured_key:
        logger.warning("Invalid admin API key attempt from %s", request.client.host if request.client else "unknown")
        raise HTTPException(status_code=403, detail="Invalid admin API key")

    return api_key


# ── Owner resolution ─────────────────────────────────────────────────

_bearer = HTTPBearer(auto_error=False)


def _user_id_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(user_id)


async def get_optional_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    x_guest_email: Optional[str] = Header(None),
    x_guest_token: Optional[str] = Header(None),
) -> Optional[Owner]:
    """Bearer JWT wins; otherwise guest headers; otherwise None."""
    user_id = _user_id_from_credentials(credentials)
    if user_id:
        return Owner.user(user_id)
    if x_guest_email and x_guest_token:
        return Owner.guest(x_guest_email, x_guest_token)
    return None


async def get_owner(owner: Optional[Owner] = Depends(get_optional_owner)) -> Owner:
    """Like get_optional_owner but raises 401 when the caller is anonymous."""
    if owner is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return owner


# ── Rate limiter (in-memory, per IP) ────────────────────────────────

class RateLimiter:
    """
    Simple sliding-window rate limiter.
    Tracks request timestamps per IP; rejects with 429 when limit exceeded.

    Usage as FastAPI dependency:
        limiter = RateLimiter(per_minute=60)
        @app.get("/search", dependencies=[Depends(limiter)])
    """

    def __init__(self, per_minute: Optional[int] = None, burst: Optional[int] = None):
        self.per_minute = per_minute or settings.rate_limit_per_minute
        self.burst = burst or settings.rate_limit_burst
        self._hits: dict[str, list[float]] = defaultdict(list)
        self._last_cleanup = time.monotonic()

    def _client_ip(self, request: Request) -> str:
        """Extract client IP, respecting X-Forwarded-For."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < 60:
            return
        cutoff = now - 60
        for key in [k for k, v in self._hits.items() if not v or v[-1] < cutoff]:
            del self._hits[key]
        self._last_cleanup = now

    async def __call__(self, request: Request) -> None:
        now = time.monotonic()
        self._cleanup(now)

        window = self._hits[self._client_ip(request)]
        cutoff = now - 60
        while window and window[0] < cutoff:
            window.pop(0)

        if len(window) >= self.per_minute:
            retry_after = int(60 - (now - window[0])) + 1
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Max {self.per_minute} requests/minute. Retry in {retry_after}s.",
                headers={"Retry-After": str(retry_after)},
            )

        window.append(now)


rate_limit_public = RateLimiter()
rate_limit_admin = RateLimiter(per_minute=30)
