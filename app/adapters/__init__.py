"""
Adapter factory.
Change the concrete class here to swap the recommendation backend globally.
"""

from typing import Optional

from app.adapters.base import BackendResponse, RecommendationBackend
from app.adapters.http_backend import HttpRecommendationBackend
from app.config import Settings, get_settings

__all__ = ["BackendResponse", "RecommendationBackend", "HttpRecommendationBackend", "build_backend"]


def build_backend(settings: Optional[Settings] = None) -> RecommendationBackend:
    settings = settings or get_settings()
    return HttpRecommendationBackend(
        base_url=settings.backend_api_url,
        timeout_seconds=settings.backend_timeout_seconds,
    )
