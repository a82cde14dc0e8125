"""Catalog access: the ``CatalogSource`` protocol, its models, and the psycopg implementation.

Usage:
    >>> from pg_porter.catalog import CatalogSource, PgCatalog, TableInfo
"""

from pg_porter.catalog.base import CatalogSource
from pg_porter.catalog.cache import CatalogCache
from pg_porter.catalog.introspector import PgCatalog
from pg_porter.catalog.models import (
    TABLE_KINDS,
    AggregateInfo,
    CatalogObject,
    ColumnInfo,
    ConstraintInfo,
    DatabaseInfo,
    DomainInfo,
    FunctionInfo,
    IndexInfo,
    ObjectKind,
    OperatorInfo,
    Privilege,
    RoleInfo,
    RuleInfo,
    SchemaInfo,
    SequenceInfo,
    TableInfo,
    TablespaceInfo,
    TriggerInfo,
    TypeAttribute,
    TypeInfo,
    TypeLink,
    ViewInfo,
)

__all__ = [
    "CatalogSource",
    "CatalogCache",
    "PgCatalog",
    "TABLE_KINDS",
    "AggregateInfo",
    "CatalogObject",
    "ColumnInfo",
    "ConstraintInfo",
    "DatabaseInfo",
    "DomainInfo",
    "FunctionInfo",
    "IndexInfo",
    "ObjectKind",
    "OperatorInfo",
    "Privilege",
    "RoleInfo",
    "RuleInfo",
    "SchemaInfo",
    "SequenceInfo",
    "TableInfo",
    "TablespaceInfo",
    "TriggerInfo",
    "TypeAttribute",
    "TypeInfo",
    "TypeLink",
    "ViewInfo",
]
