"""
Abstract base classes for the recommendation backend.
Any concrete adapter must implement these interfaces, making the backend
fully replaceable without changing relay or route code.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


class BackendResponse(ABC):
    """An open backend response.  Must be closed by whoever opened it."""

    @property
    @abstractmethod
    def status_code(self) -> int:
        ...

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    @abstractmethod
    def is_streaming(self) -> bool:
        """True for a line-delimited body, False for a single JSON document."""
        ...

    @abstractmethod
    def iter_text(self) -> AsyncIterator[str]:
        """Incrementally decoded body text, chunk by chunk."""
        ...

    @abstractmethod
    async def read_json(self) -> Any:
        """
        Read the whole body and decode it as JSON.

        Raises
        ------
        ValueError if the body is not valid JSON.
        """
        ...

    @abstractmethod
    async def aclose(self) -> None:
        ...


class RecommendationBackend(ABC):
    """Movie recommendation service: query → event stream, movie → providers."""

    @abstractmethod
    async def open_recommendations(self, query: str) -> BackendResponse:
        """
        Send one recommendation request and return the open response.

        Parameters
        ----------
        query : caller-supplied search text, forwarded verbatim

        Returns
        -------
        The response with headers read and body not yet consumed.

        Raises
        ------
        BackendUnavailableError if the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def get_providers(self, movie_id: Any, region: str) -> Any:
        """
        Fetch watch providers for one movie in one region.

        Returns
        -------
        The backend's JSON document, unchanged.

        Raises
        ------
        UpstreamError on a non-success status, BackendUnavailableError if the
        backend cannot be reached.
        """
        ...

    async def aclose(self) -> None:
        """Release pooled connections.  Default: nothing to release."""
        return None
