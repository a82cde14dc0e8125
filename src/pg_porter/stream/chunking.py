"""Batch sizing for cursor-based data export.

Chooses how many rows to fetch per round trip so that one batch stays under
a memory ceiling, and nudges the size when observed batches come out much
larger or smaller than estimated.

Usage:
    calc = ChunkCalculator(memory_ceiling_bytes=8 * 1024 * 1024)
    rows = calc.rows_per_batch(estimated_row_bytes=2048)
    rows = calc.adapt(rows, actual_batch_bytes)
"""

MIN_ROWS = 50
MAX_ROWS = 50_000
FALLBACK_ROWS = 100
SAFETY_FACTOR = 0.55

SHRINK_FACTOR = 0.7
GROW_FACTOR = 1.3
GROW_LIMIT = 10_000
GROW_THRESHOLD = 0.2

MIN_ROW_BYTES = 100
BYTES_PER_COLUMN = 500
ERROR_ROW_BYTES = 5000
SAMPLE_MARGIN = 1.2


def clamp_rows(rows: int) -> int:
    return max(MIN_ROWS, min(MAX_ROWS, rows))


def row_width_from_samples(samples: list[int], column_count: int) -> int:
    """Estimate the widest row from sampled ``pg_column_size`` sums.

    Uses the largest sample plus a 20% margin, never below 100 bytes. With
    no samples, assumes 500 bytes per column.
    """
    sizes = [s for s in samples if s]
    if not sizes:
        return max(MIN_ROW_BYTES, column_count * BYTES_PER_COLUMN)
    return max(MIN_ROW_BYTES, int(max(sizes) * SAMPLE_MARGIN))


class ChunkCalculator:
    """Rows-per-batch policy bounded by a memory ceiling.

    Args:
        memory_ceiling_bytes: Upper bound for one batch's rendered size.
    """

    def __init__(self, memory_ceiling_bytes: int = 8 * 1024 * 1024):
        self.memory_ceiling_bytes = memory_ceiling_bytes

    @property
    def available_bytes(self) -> int:
        return int(self.memory_ceiling_bytes * SAFETY_FACTOR)

    def rows_per_batch(self, estimated_row_bytes: int | None) -> int:
        if not estimated_row_bytes or estimated_row_bytes <= 0:
            return FALLBACK_ROWS
        return clamp_rows(self.available_bytes // estimated_row_bytes)

    def adapt(self, current_rows: int, batch_bytes: int) -> int:
        """Return the next batch size given the size of the batch just written."""
        if batch_bytes > self.available_bytes:
            return clamp_rows(int(current_rows * SHRINK_FACTOR))
        if (
            batch_bytes < self.available_bytes * GROW_THRESHOLD
            and current_rows < GROW_LIMIT
        ):
            return clamp_rows(int(current_rows * GROW_FACTOR))
        return current_rows
