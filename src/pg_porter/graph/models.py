"""Node and edge types for the object dependency graph."""

from dataclasses import dataclass
from enum import Enum

from pg_porter.catalog.models import CatalogObject, ObjectKind, qualify


class DependencyRelation(str, Enum):
    """Why a dependent object requires its dependency."""

    FUNCTION_CALL = "function_call"
    FUNCTION_TYPE = "function_type"
    DEFAULT_EXPR = "default_expr"
    CHECK_EXPR = "check_expr"
    FOREIGN_KEY = "foreign_key"
    PARTITION_OF = "partition_of"
    DOMAIN_USAGE = "domain_usage"
    TYPE_USAGE = "type_usage"
    AGGREGATE_SUPPORT = "aggregate_support"
    VIEW_USAGE = "view_usage"


@dataclass(frozen=True)
class ObjectNode:
    """One dumpable catalog object."""

    oid: int
    name: str
    schema: str
    kind: ObjectKind
    parent_oid: int | None = None

    @classmethod
    def from_catalog(cls, obj: CatalogObject) -> "ObjectNode":
        return cls(
            oid=obj.oid,
            name=obj.name,
            schema=obj.schema_name,
            kind=obj.kind,
            parent_oid=obj.parent_oid,
        )

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema, self.name)


@dataclass(frozen=True)
class DependencyEdge:
    """``from_oid`` (the dependent) requires ``to_oid`` (the dependency)."""

    from_oid: int
    to_oid: int
    relation: DependencyRelation
