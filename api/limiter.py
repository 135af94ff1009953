"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and by the route modules
(per-route limits with @limiter.limit()). A single shared instance keeps one
in-memory counter store; separate instances per module would never trip.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def credential_rate_limit() -> str:
    """Per-IP limit for endpoints that accept passwords or refresh tokens (LOGIN_RATE_LIMIT)."""
    return get_settings().login_rate_limit
