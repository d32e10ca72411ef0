"""
Admission middleware
====================
Runs every request under the protected path prefix through the RateLimiter
before any route code sees it.  NO business logic lives here; this layer
only:
  1. Resolves the caller identity and sets the logging context.
  2. Asks the RateLimiter for a decision.
  3. Answers 429 with a retry hint on denial, otherwise passes through.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.logging import get_logger, new_request_id, set_logging_context
from app.core.rate_limiter import Denied, RateLimiter
from app.gateway.client_identity import resolve_client_id

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."


def rate_limited_response(retry_after_seconds: int) -> JSONResponse:
    return JSONResponse(
        {"error": RATE_LIMIT_MESSAGE, "retryAfter": retry_after_seconds},
        status_code=429,
        headers={"Retry-After": str(retry_after_seconds)},
    )


class AdmissionMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: RateLimiter,
        path_prefix: str = "/api/",
        peer_fallback: bool = True,
    ) -> None:
        super().__init__(app)
        self._rate_limiter = rate_limiter
        self._prefix = path_prefix
        self._peer_fallback = peer_fallback

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client_id = resolve_client_id(request, peer_fallback=self._peer_fallback)
        set_logging_context(client_id=client_id)
        request_id = new_request_id()

        if request.url.path.startswith(self._prefix):
            decision = self._rate_limiter.admit(client_id)
            if isinstance(decision, Denied):
                response = rate_limited_response(decision.retry_after_seconds)
                response.headers["X-Request-ID"] = request_id
                return response

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
