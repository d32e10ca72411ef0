"""
Stream events and line framing.

The backend speaks newline-delimited JSON:

    {"type": "init", "query": "..."}
    {"type": "movie", "data": {"id": 1, ...}}

Chunks arrive with arbitrary boundaries, so `iter_lines` keeps the trailing
partial line in a carry buffer until its terminator shows up.  Parsing is a
lazy sequence with skip: a malformed line is logged and produces no event,
it never ends the stream.

A non-streaming backend answers with one JSON body
`{"recommendations": [...]}`; `events_from_body` turns it into the same
event sequence so both shapes share one fold.
"""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, Iterator, Optional, Union

from app.core.errors import StreamParseError
from app.core.logging import get_logger

logger = get_logger(__name__)

LINE_TERMINATOR = "\n"
INIT_TAG = "init"
ITEM_TAG = "movie"


@dataclass(frozen=True)
class InitEvent:
    query: Optional[str]


@dataclass(frozen=True)
class ItemEvent:
    payload: Dict[str, Any]

    @property
    def item_id(self) -> Any:
        return self.payload["id"]


@dataclass(frozen=True)
class UnknownEvent:
    tag: Any


StreamEvent = Union[InitEvent, ItemEvent, UnknownEvent]

SkipCallback = Callable[[StreamParseError], None]


# ── Framing ────────────────────────────────────────────────────────────────────

async def iter_lines(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield complete lines from decoded text chunks.

    The fragment after the last terminator is carried into the next chunk.
    Whatever is left when the input ends is yielded once if it is non-blank.
    """
    carry = ""
    async for chunk in chunks:
        if not chunk:
            continue
        carry += chunk
        *lines, carry = carry.split(LINE_TERMINATOR)
        for line in lines:
            yield line.rstrip("\r")

    if carry.strip():
        yield carry.rstrip("\r")


# ── Parsing ────────────────────────────────────────────────────────────────────

def _item_from_payload(payload: Any, line: str) -> ItemEvent:
    if not isinstance(payload, dict):
        raise StreamParseError("item payload is not an object", line)
    item_id = payload.get("id")
    if item_id is None or isinstance(item_id, (dict, list)):
        raise StreamParseError("item payload has no usable id", line)
    return ItemEvent(payload=payload)


def parse_event(line: str) -> StreamEvent:
    """Parse one stream line.  Raises StreamParseError on malformed input."""
    text = line.strip()
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StreamParseError(f"invalid JSON ({exc.msg})", text) from exc

    if not isinstance(obj, dict):
        raise StreamParseError("event is not an object", text)

    tag = obj.get("type")
    if tag == INIT_TAG:
        query = obj.get("query")
        return InitEvent(query=query if isinstance(query, str) else None)
    if tag == ITEM_TAG:
        return _item_from_payload(obj.get("data"), text)
    return UnknownEvent(tag=tag)


def _skip(exc: StreamParseError, on_skip: Optional[SkipCallback]) -> None:
    logger.warning("Skipping malformed stream line", extra={"reason": exc.reason, "line": exc.line[:200]})
    if on_skip is not None:
        on_skip(exc)


async def parse_events(
    lines: AsyncIterable[str],
    on_skip: Optional[SkipCallback] = None,
) -> AsyncIterator[StreamEvent]:
    """Lazily parse lines into events; blank or malformed lines yield nothing."""
    async for line in lines:
        if not line.strip():
            continue
        try:
            event = parse_event(line)
        except StreamParseError as exc:
            _skip(exc, on_skip)
            continue
        yield event


async def events_from_text(
    chunks: AsyncIterable[str],
    on_skip: Optional[SkipCallback] = None,
) -> AsyncIterator[StreamEvent]:
    """Producer for the line-delimited shape."""
    async for event in parse_events(iter_lines(chunks), on_skip=on_skip):
        yield event


def iter_body_events(body: Any, on_skip: Optional[SkipCallback] = None) -> Iterator[StreamEvent]:
    recommendations = body.get("recommendations") if isinstance(body, dict) else None
    if not isinstance(recommendations, list):
        _skip(StreamParseError("body has no recommendations list", json.dumps(body, default=str)), on_skip)
        return

    for entry in recommendations:
        try:
            yield _item_from_payload(entry, json.dumps(entry, default=str))
        except StreamParseError as exc:
            _skip(exc, on_skip)


async def events_from_body(body: Any, on_skip: Optional[SkipCallback] = None) -> AsyncIterator[StreamEvent]:
    """Producer for the single JSON body shape."""
    for event in iter_body_events(body, on_skip=on_skip):
        yield event
