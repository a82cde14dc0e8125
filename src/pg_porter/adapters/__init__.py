"""Database adapters for the import side.

Usage:
    >>> from pg_porter.adapters import ImportTarget, PsycopgImportTarget
"""

from pg_porter.adapters.base import ImportTarget, TargetColumn
from pg_porter.adapters.postgres import (
    PsycopgImportTarget,
    create_async_engine_pooled,
    normalize_async_url,
)

__all__ = [
    "ImportTarget",
    "TargetColumn",
    "PsycopgImportTarget",
    "create_async_engine_pooled",
    "normalize_async_url",
]
