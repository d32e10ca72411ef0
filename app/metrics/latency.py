"""
Per-request stream statistics.
A StreamReport is filled in while a search stream is relayed and written as
one structured log entry when the stream reaches a terminal state.
"""

import time
from dataclasses import dataclass, field

from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StreamReport:
    request_id: str
    query: str
    started_at: float = field(default_factory=time.perf_counter)
    first_snapshot_ms: float = -1.0
    snapshots: int = 0
    items: int = 0
    duplicates: int = 0
    skipped_lines: int = 0
    outcome: str = "streaming"

    def record_snapshot(self, item_count: int) -> None:
        if self.snapshots == 0:
            self.first_snapshot_ms = self.elapsed_ms
        self.snapshots += 1
        self.items = item_count

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 2)

    def log(self) -> None:
        logger.info(
            "Search stream report",
            extra={
                "request_id": self.request_id,
                "outcome": self.outcome,
                "query_chars": len(self.query),
                "snapshots": self.snapshots,
                "items": self.items,
                "duplicates": self.duplicates,
                "skipped_lines": self.skipped_lines,
                "first_snapshot_ms": self.first_snapshot_ms,
                "total_ms": self.elapsed_ms,
            },
        )
