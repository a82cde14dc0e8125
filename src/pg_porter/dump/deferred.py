"""Queue of deferred statements, drained once in a fixed kind order.

Emitters push anything that could forward-reference an object onto the
queue instead of writing it inline. The exporter that owns the queue drains
it after every object in its scope has been emitted.
"""

import logging
from collections import defaultdict

from pg_porter.dump.models import DRAIN_ORDER, DeferredKind, DeferredStatement
from pg_porter.dump.writer import SqlWriter

logger = logging.getLogger(__name__)

SECTION_TITLES = {
    DeferredKind.GENERATED_DEFAULT: "Deferred column defaults",
    DeferredKind.CHECK_VALIDATE: "Deferred check constraints",
    DeferredKind.FOREIGN_KEY: "Foreign keys",
    DeferredKind.MV_REFRESH: "Materialized view refreshes",
    DeferredKind.RULE: "Rules",
    DeferredKind.TRIGGER: "Triggers",
    DeferredKind.SEQUENCE_OWNERSHIP: "Sequence ownership",
}


class DeferredQueue:
    """Tagged deferred-statement queue owned by one exporter scope."""

    def __init__(self) -> None:
        self._items: dict[DeferredKind, list[DeferredStatement]] = defaultdict(list)

    def push(self, statement: DeferredStatement) -> None:
        self._items[statement.kind].append(statement)

    def __len__(self) -> int:
        return sum(len(items) for items in self._items.values())

    def pending(self, kind: DeferredKind | None = None) -> list[DeferredStatement]:
        if kind is not None:
            return list(self._items.get(kind, []))
        return [s for k in DRAIN_ORDER for s in self._items.get(k, [])]

    def drain(self, writer: SqlWriter, emitted: set[str]) -> tuple[int, int]:
        """Write every queued statement whose required relations were emitted.

        The queue is empty afterwards; each statement is consumed once.

        Args:
            writer: Destination for the statements.
            emitted: Qualified names (``schema.name``) of relations created
                earlier in the dump.

        Returns:
            Tuple of (statements written, statements skipped).
        """
        written = skipped = 0
        for kind in DRAIN_ORDER:
            items = self._items.pop(kind, [])
            if not items:
                continue
            writer.banner("Deferred", SECTION_TITLES[kind])
            for stmt in items:
                missing = [r for r in stmt.requires if r not in emitted]
                if missing:
                    logger.warning(
                        "Skipping %s for %s: %s not in dump",
                        kind.value, stmt.target, ", ".join(missing),
                    )
                    writer.comment(
                        f"Skipped {kind.value} for {stmt.target}: "
                        f"{', '.join(missing)} not in dump"
                    )
                    skipped += 1
                    continue
                writer.statement(stmt.sql)
                written += 1
        return written, skipped
