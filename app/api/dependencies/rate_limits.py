"""Per-client rate limits for the HTTP surface.

Every route is keyed on the calling client. Requests normally arrive through
a load balancer, so the first X-Forwarded-For hop identifies the client and
the socket peer address is only the fallback.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# Producers enqueue in bursts; operator controls are rare and mutate shared state.
ENQUEUE_LIMIT = "600/minute"
QUERY_LIMIT = "120/minute"
OPERATOR_LIMIT = "30/minute"
SYSTEM_LIMIT = "50/minute"


def client_key(request: Request) -> str:
    """Rate limit key: the originating client address."""
    forwarded_for = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    return first_hop or get_remote_address(request)


limiter = Limiter(key_func=client_key)


async def rate_limit_handler(_request: Request, exc: Exception):
    """Return 429 with the limit that was exceeded."""
    if isinstance(exc, RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"message": "Rate limit exceeded", "limit": exc.detail},
        )


def setup_rate_limiter(app: FastAPI):
    """Attach the shared limiter and its 429 handler to the application."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


def get_limiter():
    return limiter
