"""pg-porter: PostgreSQL logical export and chunked, resumable import.

Exports servers, databases or schemas as dependency-ordered SQL (with
streamed table data), and imports CSV/TSV/JSON/XML uploads in resumable
chunks through COPY.

Usage:
    from pg_porter import DatabaseExporter, ExportOptions, SqlWriter, PgCatalog
    from pg_porter import ChunkProcessor, ChunkRequest, MemorySessionStore
    from pg_porter import load_config, get_profile
"""

__version__ = "0.1.0"

# Adapters
from pg_porter.adapters.base import ImportTarget, TargetColumn
from pg_porter.adapters.postgres import PsycopgImportTarget

# Catalog
from pg_porter.catalog.base import CatalogSource
from pg_porter.catalog.introspector import PgCatalog

# Config
from pg_porter.config.loader import load_config
from pg_porter.config.models import DatabaseProfile, PorterConfig

# Export
from pg_porter.dump.exporter import DatabaseExporter, SchemaExporter, ServerExporter
from pg_porter.dump.models import ExportOptions, ExportResult
from pg_porter.dump.writer import SqlWriter
from pg_porter.graph.dependency_graph import DependencyGraph

# Import
from pg_porter.importer.models import ChunkRequest, ChunkResult, ImportSession, ImportState
from pg_porter.importer.processor import ChunkProcessor
from pg_porter.importer.sessions import MemorySessionStore, SqlSessionStore

# Errors
from pg_porter.errors import (
    AuthError,
    ChecksumMismatch,
    PgPorterError,
    ProfileNotFoundError,
    StallDetected,
    ValidationError,
)

# Factory
from pg_porter.factory import get_profile, resolve_url

__all__ = [
    # Adapters
    "ImportTarget",
    "TargetColumn",
    "PsycopgImportTarget",
    # Catalog
    "CatalogSource",
    "PgCatalog",
    # Config
    "load_config",
    "DatabaseProfile",
    "PorterConfig",
    # Export
    "DatabaseExporter",
    "SchemaExporter",
    "ServerExporter",
    "ExportOptions",
    "ExportResult",
    "SqlWriter",
    "DependencyGraph",
    # Import
    "ChunkRequest",
    "ChunkResult",
    "ImportSession",
    "ImportState",
    "ChunkProcessor",
    "MemorySessionStore",
    "SqlSessionStore",
    # Errors
    "PgPorterError",
    "ValidationError",
    "AuthError",
    "ChecksumMismatch",
    "StallDetected",
    "ProfileNotFoundError",
    # Factory
    "get_profile",
    "resolve_url",
]
