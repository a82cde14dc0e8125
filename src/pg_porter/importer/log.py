"""Per-chunk execution log returned to the client as ``logEntries``."""

from collections import Counter, deque
from datetime import datetime, timezone

from pg_porter.importer.models import LogEntry

ENTRY_TYPES = ("success", "info", "warning", "error", "skipped", "truncated")


class LogCollector:
    """Bounded list of timestamped entries plus per-type counts.

    In streaming mode ``success`` entries are counted but not kept.  The
    counts (and so ``error_count``) are not affected by the entry cap.

    Args:
        streaming: Drop ``success`` entries.
        max_entries: Oldest entries are discarded past this many.
    """

    def __init__(self, streaming: bool = True, max_entries: int = 200):
        self.streaming = streaming
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self.counts: Counter[str] = Counter()

    def append(self, entry_type: str, message: str) -> None:
        if entry_type not in ENTRY_TYPES:
            raise ValueError(f"Unknown log entry type: {entry_type}")
        self.counts[entry_type] += 1
        if self.streaming and entry_type == "success":
            return
        self._entries.append(
            LogEntry(
                time=datetime.now(timezone.utc).isoformat(timespec="seconds"),
                type=entry_type,
                message=message,
            )
        )

    def success(self, message: str) -> None:
        self.append("success", message)

    def info(self, message: str) -> None:
        self.append("info", message)

    def warning(self, message: str) -> None:
        self.append("warning", message)

    def error(self, message: str) -> None:
        self.append("error", message)

    def skipped(self, message: str) -> None:
        self.append("skipped", message)

    def truncated(self, message: str) -> None:
        self.append("truncated", message)

    @property
    def error_count(self) -> int:
        return self.counts["error"]

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)
