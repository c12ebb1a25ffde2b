# path: backend/shipsarthi/core/limiter.py
"""
Rate limiting support (slowapi).

Manual reconciliation triggers hit the carrier API once per shipment, so
they are throttled per client address.
"""
from typing import Tuple

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

# Module-level limiter for decorators at import time.
limiter = Limiter(key_func=get_remote_address)


def apply_rate_limiting(app) -> Tuple[Limiter, bool]:
    """
    Attach SlowAPI middleware and exception handler.
    Returns (limiter, enabled_flag).
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    return limiter, limiter.enabled
