"""
HTTP routes.
Thin handlers: validate the body, delegate to the relay / backend, translate
`GatewayError` into the JSON error shape (see `register_error_handlers`).
"""

from typing import Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from app.adapters.base import RecommendationBackend
from app.core.errors import GatewayError, InvalidQueryError
from app.core.logging import get_logger
from app.core.rate_limiter import RateLimiter
from app.stream.relay import NDJSON_MEDIA_TYPE, SearchRelay

logger = get_logger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"
MISSING_PROVIDER_PARAMS_MESSAGE = "movie_id and region parameters are required"

router = APIRouter(prefix="/api")


class SearchRequest(BaseModel):
    query: Optional[str] = None


class ProvidersRequest(BaseModel):
    movie_id: Optional[Union[int, str]] = None
    region: Optional[str] = None


# ── Dependencies ───────────────────────────────────────────────────────────────

def get_relay(request: Request) -> SearchRelay:
    return request.app.state.relay


def get_backend(request: Request) -> RecommendationBackend:
    return request.app.state.backend


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


# ── Routes ─────────────────────────────────────────────────────────────────────

@router.post("/movies")
async def search_movies(payload: SearchRequest, relay: SearchRelay = Depends(get_relay)):
    stream = await relay.open(payload.query)
    return StreamingResponse(
        stream.body(),
        media_type=NDJSON_MEDIA_TYPE,
        background=BackgroundTask(stream.aclose),
    )


@router.post("/providers")
async def get_providers(payload: ProvidersRequest, backend: RecommendationBackend = Depends(get_backend)):
    if not payload.movie_id or not payload.region:
        raise InvalidQueryError(MISSING_PROVIDER_PARAMS_MESSAGE)
    return await backend.get_providers(payload.movie_id, payload.region)


# ── Error translation ──────────────────────────────────────────────────────────

def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected malformed request body", extra={"path": request.url.path, "errors": len(exc.errors())})
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unexpected error handling request", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse({"error": UNEXPECTED_ERROR_MESSAGE}, status_code=500)
