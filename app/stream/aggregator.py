"""
Snapshot fold.

Consumes a StreamEvent sequence and produces growing snapshots of the
de-duplicated result set.  Every snapshot carries the full item list, so a
caller can always resynchronise from the latest one alone.
"""

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional, Set

from app.core.logging import get_logger
from app.stream.events import InitEvent, ItemEvent, StreamEvent, UnknownEvent

logger = get_logger(__name__)


@dataclass(frozen=True)
class Snapshot:
    recommendations: List[Dict[str, Any]]
    query: str
    final: bool = False

    def to_dict(self) -> dict:
        return {"recommendations": self.recommendations, "query": self.query}

    def encode(self) -> bytes:
        """NDJSON encoding: non-final snapshots end with a newline, the final one does not."""
        text = json.dumps(self.to_dict())
        if not self.final:
            text += "\n"
        return text.encode("utf-8")


@dataclass
class AggregationState:
    query: str
    items: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: int = 0
    _seen: Set[Any] = field(default_factory=set, repr=False)

    def add(self, event: ItemEvent) -> bool:
        """Append the item unless its id was already seen.  First occurrence wins."""
        key = _identity(event.item_id)
        if key in self._seen:
            self.duplicates += 1
            logger.debug("Dropping duplicate item", extra={"item_id": event.item_id})
            return False
        self._seen.add(key)
        self.items.append(event.payload)
        return True

    def snapshot(self, final: bool = False) -> Snapshot:
        return Snapshot(recommendations=list(self.items), query=self.query, final=final)


def _identity(item_id: Any) -> Any:
    # True == 1 in a set; keep them apart
    return (isinstance(item_id, bool), item_id)


def fold(state: AggregationState, event: StreamEvent) -> Optional[Snapshot]:
    """Apply one event; return the snapshot it produces, if any."""
    if isinstance(event, InitEvent):
        return Snapshot(recommendations=[], query=event.query or state.query)
    if isinstance(event, ItemEvent):
        state.add(event)
        return state.snapshot()
    if isinstance(event, UnknownEvent):
        logger.debug("Ignoring unknown stream event", extra={"tag": event.tag})
    return None


async def aggregate(
    events: AsyncIterable[StreamEvent],
    query: str,
    incremental: bool = True,
    state: Optional[AggregationState] = None,
) -> AsyncIterator[Snapshot]:
    """Fold `events` into snapshots, ending with exactly one final snapshot.

    With `incremental=False` the intermediate snapshots are suppressed, which
    is how a single non-streaming body becomes one terminal snapshot.
    """
    state = state or AggregationState(query=query)
    async for event in events:
        snapshot = fold(state, event)
        if snapshot is not None and incremental:
            yield snapshot
    yield state.snapshot(final=True)
