"""
Recommendation backend adapter: HTTP
==================================
Talks to the recommendation service over plain HTTP with one shared
`httpx.AsyncClient` (connection pooling, incremental body decoding).

- `POST {base}/api/movies/recommendations` with `{"query": ...}`; the response is
  either NDJSON events or one JSON document.
- `POST {base}/api/providers/` with `{"movie_id": ..., "region": ...}`.

Single attempt per call: no retries, no backoff.  The only timeout is the
transport timeout configured here (None disables it).
"""

from typing import Any, AsyncIterator, Optional

import httpx

from app.adapters.base import BackendResponse, RecommendationBackend
from app.core.errors import (
    GENERIC_PROVIDERS_ERROR,
    BackendUnavailableError,
    StreamInterruptedError,
    UpstreamError,
    error_detail,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

RECOMMENDATIONS_PATH = "/api/movies/recommendations"
PROVIDERS_PATH = "/api/providers/"


class HttpBackendResponse(BackendResponse):
    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def is_streaming(self) -> bool:
        content_type = self._response.headers.get("content-type", "")
        media_type = content_type.split(";", 1)[0].strip().lower()
        return media_type != "application/json"

    async def iter_text(self) -> AsyncIterator[str]:
        try:
            async for chunk in self._response.aiter_text():
                yield chunk
        except httpx.RequestError as exc:
            raise StreamInterruptedError(f"Recommendation stream interrupted: {exc}") from exc

    async def read_json(self) -> Any:
        try:
            await self._response.aread()
        except httpx.RequestError as exc:
            raise StreamInterruptedError(f"Recommendation response interrupted: {exc}") from exc
        return self._response.json()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._response.aclose()


class HttpRecommendationBackend(RecommendationBackend):
    def __init__(
        self,
        base_url: str,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def open_recommendations(self, query: str) -> BackendResponse:
        url = f"{self._base_url}{RECOMMENDATIONS_PATH}"
        request = self._client.build_request("POST", url, json={"query": query})

        logger.debug("Opening recommendation stream", extra={"url": url})
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TransportError as exc:
            logger.error("Recommendation backend unreachable", extra={"url": url, "error": str(exc)})
            raise BackendUnavailableError("Recommendation service is unavailable") from exc

        logger.debug(
            "Recommendation backend responded",
            extra={"status": response.status_code, "content_type": response.headers.get("content-type", "")},
        )
        return HttpBackendResponse(response)

    async def get_providers(self, movie_id: Any, region: str) -> Any:
        url = f"{self._base_url}{PROVIDERS_PATH}"
        try:
            response = await self._client.post(url, json={"movie_id": movie_id, "region": region})
        except httpx.TransportError as exc:
            logger.error("Providers backend unreachable", extra={"url": url, "error": str(exc)})
            raise BackendUnavailableError("Recommendation service is unavailable") from exc

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = error_detail(body, GENERIC_PROVIDERS_ERROR)
            logger.warning("Providers backend error", extra={"status": response.status_code, "detail": message})
            raise UpstreamError(response.status_code, message)

        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()
