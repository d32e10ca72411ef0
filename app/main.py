"""
Application entry point.
Wires together all components and registers routes.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.adapters import RecommendationBackend, build_backend
from app.config import Settings, get_settings
from app.core.logging import configure_logging, get_logger
from app.core.rate_limiter import RateLimiter
from app.gateway.admission import AdmissionMiddleware
from app.gateway.routes import get_rate_limiter, register_error_handlers, router
from app.stream.relay import SearchRelay

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[RecommendationBackend] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or get_settings()

    # ── Components (one per process, passed by reference) ─────────────────────
    rate_limiter = rate_limiter or RateLimiter(
        max_requests=settings.rate_limit_requests,
        window_ms=settings.rate_limit_window_ms,
        evict_after_windows=settings.rate_limit_evict_after_windows,
    )
    backend = backend or build_backend(settings)
    relay = SearchRelay(backend)

    # ── Application lifespan ───────────────────────────────────────────────────
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rate_limiter.start_background_sweep()
        logger.info(
            "Movie search gateway started",
            extra={
                "backend_api_url": settings.backend_api_url,
                "rate_limit": f"{rate_limiter.limit}/{rate_limiter.window_ms}ms",
                "rate_limit_prefix": settings.rate_limit_path_prefix,
            },
        )
        yield
        await rate_limiter.stop()
        await backend.aclose()
        logger.info("Movie search gateway shut down")

    # ── FastAPI app ────────────────────────────────────────────────────────────
    app = FastAPI(
        title="Movie Search Gateway",
        description="Rate-limited relay that streams movie recommendations as NDJSON snapshots",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter
    app.state.backend = backend
    app.state.relay = relay

    app.add_middleware(
        AdmissionMiddleware,
        rate_limiter=rate_limiter,
        path_prefix=settings.rate_limit_path_prefix,
        peer_fallback=settings.rate_limit_peer_fallback,
    )
    # Outermost: 429 responses must carry CORS headers too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-Request-ID"],
    )

    register_error_handlers(app)
    app.include_router(router)

    @app.get("/health")
    async def health_check(limiter: RateLimiter = Depends(get_rate_limiter)):
        return {
            "status": "ok",
            "tracked_clients": limiter.tracked_clients,
            "rate_limit": f"{limiter.limit}/{limiter.window_ms}ms",
        }

    @app.get("/")
    async def root():
        return {"message": "Movie search gateway running. POST a query to /api/movies"}

    return app


# ── Bootstrap logging before anything else ────────────────────────────────────
configure_logging()
app = create_app()
