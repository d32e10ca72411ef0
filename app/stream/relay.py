"""
Search Relay
============
Turns one caller search into one backend request and relays the backend's
answer as NDJSON snapshots.

Lifecycle (per request)
-----------------------
Idle → Connecting → Streaming → Completed | BackendError | TransportFailure

1. `open()` validates the query, makes exactly one backend call and checks
   the status before any byte goes to the caller.  Failures here raise a
   `GatewayError` so the route can answer with a plain JSON error.
2. `SearchStream.body()` is handed to the HTTP response.  It folds backend
   events into snapshots and yields each one as soon as it exists, so a slow
   caller slows consumption of backend bytes.
3. A broken backend connection mid-stream re-raises `StreamInterruptedError`
   out of `body()`: the server then aborts the response instead of ending it
   cleanly, which lets the caller tell "finished" from "died".
4. Every terminal path (completion, error, caller disconnect) closes the
   backend response exactly once.

No retries: the backend is called at most once per caller request.
"""

import asyncio
from typing import AsyncIterator, Optional

from app.adapters.base import BackendResponse, RecommendationBackend
from app.core.errors import (
    GENERIC_SEARCH_ERROR,
    InvalidQueryError,
    StreamInterruptedError,
    StreamParseError,
    UpstreamError,
    error_detail,
)
from app.core.logging import current_request_id, get_logger, new_request_id
from app.metrics.latency import StreamReport
from app.stream.aggregator import AggregationState, aggregate
from app.stream.events import events_from_body, events_from_text

logger = get_logger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"
MISSING_QUERY_MESSAGE = "Query parameter is required"


class SearchStream:
    def __init__(self, response: BackendResponse, query: str, report: StreamReport) -> None:
        self._response = response
        self._query = query
        self._report = report
        self._state = AggregationState(query=query)
        self._closed = False

    @property
    def query(self) -> str:
        return self._query

    @property
    def state(self) -> AggregationState:
        return self._state

    @property
    def report(self) -> StreamReport:
        return self._report

    async def body(self) -> AsyncIterator[bytes]:
        """Encoded snapshots: each followed by a newline except the last."""
        self._report.outcome = "streaming"
        try:
            async for snapshot in aggregate(
                self._events(),
                self._query,
                incremental=self._response.is_streaming,
                state=self._state,
            ):
                self._report.record_snapshot(len(snapshot.recommendations))
                yield snapshot.encode()
            self._report.outcome = "completed"
        except StreamInterruptedError as exc:
            self._report.outcome = "transport_failure"
            logger.error(
                "Recommendation stream died mid-response",
                extra={"error": exc.message, "items_so_far": len(self._state.items)},
            )
            raise
        except (asyncio.CancelledError, GeneratorExit):
            self._report.outcome = "cancelled"
            logger.info("Caller went away, tearing down backend stream")
            raise
        finally:
            self._report.duplicates = self._state.duplicates
            await self.aclose()
            self._report.log()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._response.aclose()

    def _events(self):
        if self._response.is_streaming:
            return events_from_text(self._response.iter_text(), on_skip=self._on_skip)
        return self._body_events()

    async def _body_events(self):
        try:
            body = await self._response.read_json()
        except ValueError:
            self._on_skip(StreamParseError("response body is not valid JSON", ""))
            logger.warning("Skipping malformed recommendation body")
            return
        async for event in events_from_body(body, on_skip=self._on_skip):
            yield event

    def _on_skip(self, exc: StreamParseError) -> None:
        self._report.skipped_lines += 1


class SearchRelay:
    def __init__(self, backend: RecommendationBackend) -> None:
        self._backend = backend

    async def open(self, query: Optional[str]) -> SearchStream:
        """
        Start one search.

        Raises
        ------
        InvalidQueryError       query missing or blank (no backend call made)
        UpstreamError           backend answered with a non-success status
        BackendUnavailableError backend could not be reached
        """
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError(MISSING_QUERY_MESSAGE)

        request_id = current_request_id() or new_request_id()
        report = StreamReport(request_id=request_id, query=query)
        logger.info("Search started", extra={"request_id": request_id, "query_chars": len(query)})

        response = await self._backend.open_recommendations(query)

        if not response.is_success:
            status = response.status_code
            try:
                body = await response.read_json()
            except (ValueError, StreamInterruptedError):
                body = None
            finally:
                await response.aclose()
            message = error_detail(body, GENERIC_SEARCH_ERROR)
            logger.warning(
                "Recommendation backend returned an error",
                extra={"request_id": request_id, "status": status, "detail": message},
            )
            raise UpstreamError(status, message)

        return SearchStream(response, query, report)
