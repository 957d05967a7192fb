"""Per-IP request limits (slowapi) for the unauthenticated-cost check endpoints.

These sit in front of the per-user Redis limits in ``app.services.rate_limiter``
and only guard endpoints that are cheap to hammer.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)


def reset_limiter() -> None:
    """Clear in-memory limiter storage between tests."""
    limiter.reset()
