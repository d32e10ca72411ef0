"""
Shared test doubles.

FakeBackend records every call so tests can assert how many backend requests
a caller request produced; FakeResponse replays scripted text chunks (an
Exception in the script is raised at that point, simulating a dropped
connection).
"""

import json
from typing import Any, List, Optional, Sequence, Union

import pytest

from app.adapters.base import BackendResponse, RecommendationBackend
from app.core.errors import StreamInterruptedError


class FakeResponse(BackendResponse):
    def __init__(
        self,
        status_code: int = 200,
        chunks: Sequence[Union[str, Exception]] = (),
        streaming: bool = True,
        body: Any = None,
    ) -> None:
        self._status = status_code
        self._chunks = list(chunks)
        self._streaming = streaming
        self._body = body
        self.close_count = 0
        self.chunks_read = 0

    @property
    def status_code(self) -> int:
        return self._status

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    async def iter_text(self):
        for chunk in self._chunks:
            if isinstance(chunk, Exception):
                raise chunk
            self.chunks_read += 1
            yield chunk

    async def read_json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        if isinstance(self._body, str):
            return json.loads(self._body)
        return self._body

    async def aclose(self) -> None:
        self.close_count += 1

    @property
    def closed(self) -> bool:
        return self.close_count > 0


class FakeBackend(RecommendationBackend):
    def __init__(
        self,
        response: Optional[FakeResponse] = None,
        error: Optional[Exception] = None,
        providers: Any = None,
    ) -> None:
        self.response = response or FakeResponse()
        self.error = error
        self.providers = providers if providers is not None else {"results": {}}
        self.queries: List[str] = []
        self.provider_calls: List[tuple] = []
        self.closed = False

    async def open_recommendations(self, query: str) -> BackendResponse:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.response

    async def get_providers(self, movie_id: Any, region: str) -> Any:
        self.provider_calls.append((movie_id, region))
        if self.error is not None:
            raise self.error
        return self.providers

    async def aclose(self) -> None:
        self.closed = True


def ndjson(*events: dict) -> str:
    return "".join(json.dumps(e) + "\n" for e in events)


def movie(movie_id: Any, title: str = "") -> dict:
    return {"id": movie_id, "title": title or f"Movie {movie_id}", "vote_average": 7.5, "genres": []}


def interrupted() -> Exception:
    return StreamInterruptedError("Recommendation stream interrupted: connection reset")


@pytest.fixture
def fake_backend():
    return FakeBackend()
