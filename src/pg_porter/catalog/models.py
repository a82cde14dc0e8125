"""Pydantic models describing catalog objects as the exporter sees them.

Each ``*Info`` model is the answer to "what does object X look like", as
returned by a ``CatalogSource``. Expressions and definitions are kept as the
server renders them (``pg_get_expr``, ``pg_get_constraintdef``, ...).
"""

from enum import Enum

from pydantic import BaseModel, Field


class ObjectKind(str, Enum):
    """Dumpable object kinds."""

    TABLE = "table"
    PARTITIONED_TABLE = "partitioned_table"
    PARTITION = "partition"
    SUB_PARTITIONED_TABLE = "sub_partitioned_table"
    FUNCTION = "function"
    AGGREGATE = "aggregate"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized_view"
    DOMAIN = "domain"
    TYPE = "type"
    SEQUENCE = "sequence"
    OPERATOR = "operator"

    @property
    def is_table_like(self) -> bool:
        return self in TABLE_KINDS

    @property
    def has_data(self) -> bool:
        """Only leaf relations hold rows; partitioned parents are empty."""
        return self in (ObjectKind.TABLE, ObjectKind.PARTITION)


TABLE_KINDS = frozenset(
    {
        ObjectKind.TABLE,
        ObjectKind.PARTITIONED_TABLE,
        ObjectKind.PARTITION,
        ObjectKind.SUB_PARTITIONED_TABLE,
    }
)


def qualify(schema: str, name: str) -> str:
    """Return the unquoted ``schema.name`` key used for bookkeeping."""
    return f"{schema}.{name}"


# ============================================================================
# Shared pieces
# ============================================================================


class Privilege(BaseModel):
    """One grantee's privileges on an object, decoded from an ACL item."""

    grantee: str  # role name or PUBLIC
    privileges: list[str] = Field(default_factory=list)
    grantable: bool = False
    column: str | None = None


class CatalogObject(BaseModel):
    """Lightweight listing entry returned by ``CatalogSource.list_objects``."""

    oid: int
    name: str
    schema_name: str
    kind: ObjectKind
    parent_oid: int | None = None

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.name)


class TypeLink(BaseModel):
    """Type oid to backing relation / array element, for the per-run type cache."""

    oid: int
    relid: int = 0
    elem: int = 0


# ============================================================================
# Server / database scope
# ============================================================================


class RoleInfo(BaseModel):
    name: str
    superuser: bool = False
    inherit: bool = True
    createrole: bool = False
    createdb: bool = False
    login: bool = False
    replication: bool = False
    bypassrls: bool = False
    connection_limit: int = -1
    valid_until: str | None = None
    member_of: list[str] = Field(default_factory=list)
    comment: str | None = None


class TablespaceInfo(BaseModel):
    name: str
    owner: str
    location: str
    options: list[str] = Field(default_factory=list)
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)


class DatabaseInfo(BaseModel):
    name: str
    owner: str
    encoding: str = "UTF8"
    collate: str | None = None
    ctype: str | None = None
    tablespace: str | None = None
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)


class SchemaInfo(BaseModel):
    oid: int
    name: str
    owner: str | None = None
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)


# ============================================================================
# Relations
# ============================================================================


class ColumnInfo(BaseModel):
    """Schema for a table column."""

    name: str
    data_type: str
    type_oid: int = 0
    not_null: bool = False
    default: str | None = None
    generated: str | None = None  # stored generation expression
    identity: str | None = None  # 'a' (ALWAYS) or 'd' (BY DEFAULT)
    statistics: int | None = None
    storage: str | None = None  # only set when it differs from the type default
    comment: str | None = None
    is_local: bool = True


class ConstraintInfo(BaseModel):
    """Schema for a table or domain constraint."""

    name: str
    contype: str  # p, u, c, f, x
    definition: str  # pg_get_constraintdef output, e.g. "CHECK ((total > 0))"
    is_local: bool = True
    referenced_table_oid: int | None = None
    referenced_table: str | None = None  # schema.name
    comment: str | None = None


class IndexInfo(BaseModel):
    name: str
    definition: str  # pg_get_indexdef output
    is_constraint: bool = False  # backs a PK / UNIQUE / EXCLUDE constraint
    is_local: bool = True
    comment: str | None = None


class TriggerInfo(BaseModel):
    name: str
    definition: str  # pg_get_triggerdef output
    is_local: bool = True
    comment: str | None = None


class RuleInfo(BaseModel):
    name: str
    definition: str  # pg_get_ruledef output
    comment: str | None = None


class TableInfo(BaseModel):
    """Schema for a table, partitioned table, partition or sub-partitioned table."""

    oid: int
    name: str
    schema_name: str
    kind: ObjectKind = ObjectKind.TABLE
    owner: str | None = None
    columns: list[ColumnInfo] = Field(default_factory=list)
    constraints: list[ConstraintInfo] = Field(default_factory=list)
    indexes: list[IndexInfo] = Field(default_factory=list)
    triggers: list[TriggerInfo] = Field(default_factory=list)
    rules: list[RuleInfo] = Field(default_factory=list)
    partition_key: str | None = None  # pg_get_partkeydef, e.g. "RANGE (created_at)"
    partition_bound: str | None = None  # e.g. "FOR VALUES FROM ('2024-01-01') TO (...)"
    parent_oid: int | None = None
    parent_schema: str | None = None
    parent_table: str | None = None
    reloptions: list[str] = Field(default_factory=list)
    tablespace: str | None = None
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.name)

    @property
    def parent_name(self) -> str | None:
        if self.parent_schema is None or self.parent_table is None:
            return None
        return qualify(self.parent_schema, self.parent_table)

    @property
    def data_columns(self) -> list[str]:
        """Columns that accept data in COPY / INSERT (generated ones do not)."""
        return [c.name for c in self.columns if c.generated is None]


class ViewInfo(BaseModel):
    oid: int
    name: str
    schema_name: str
    materialized: bool = False
    definition: str
    depends_on_views: list[int] = Field(default_factory=list)
    columns: list[ColumnInfo] = Field(default_factory=list)  # for column comments
    indexes: list[IndexInfo] = Field(default_factory=list)
    triggers: list[TriggerInfo] = Field(default_factory=list)
    rules: list[RuleInfo] = Field(default_factory=list)
    owner: str | None = None
    tablespace: str | None = None
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.name)

    @property
    def kind(self) -> ObjectKind:
        return ObjectKind.MATERIALIZED_VIEW if self.materialized else ObjectKind.VIEW


class SequenceInfo(BaseModel):
    oid: int
    name: str
    schema_name: str
    data_type: str = "bigint"
    start: int = 1
    increment: int = 1
    min_value: int = 1
    max_value: int = 9223372036854775807
    cache: int = 1
    cycle: bool = False
    last_value: int | None = None
    is_called: bool = False
    owned_by_schema: str | None = None
    owned_by_table: str | None = None
    owned_by_column: str | None = None
    owner: str | None = None
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.name)

    @property
    def owned_by(self) -> str | None:
        if self.owned_by_schema is None or self.owned_by_table is None:
            return None
        return qualify(self.owned_by_schema, self.owned_by_table)


# ============================================================================
# Routines, types, operators
# ============================================================================


class FunctionInfo(BaseModel):
    oid: int
    name: str
    schema_name: str
    identity_arguments: str = ""
    definition: str  # pg_get_functiondef output, already "CREATE OR REPLACE FUNCTION ..."
    arg_type_oids: list[int] = Field(default_factory=list)
    return_type_oid: int = 0
    depends_on: list[int] = Field(default_factory=list)  # other function oids
    is_procedure: bool = False
    owner: str | None = None
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)

    @property
    def signature(self) -> str:
        return f"{self.name}({self.identity_arguments})"


class AggregateInfo(BaseModel):
    oid: int
    name: str
    schema_name: str
    identity_arguments: str = ""
    sfunc: str
    stype: str
    finalfunc: str | None = None
    combinefunc: str | None = None
    serialfunc: str | None = None
    deserialfunc: str | None = None
    msfunc: str | None = None
    minvfunc: str | None = None
    mstype: str | None = None
    mfinalfunc: str | None = None
    initcond: str | None = None
    sortop: str | None = None
    support_function_oids: list[int] = Field(default_factory=list)
    owner: str | None = None
    comment: str | None = None
    privileges: list[Privilege] = Field(default_factory=list)


class DomainInfo(BaseModel):
    oid: int
    name: str
    schema_name: str
    base_type: str
    default: str | None = None
    not_null: bool = False
    collation: str | None = None
    constraints: list[ConstraintInfo] = Field(default_factory=list)
    depends_on_types: list[int] = Field(default_factory=list)
    owner: str | None = None
    comment: str | None = None


class TypeAttribute(BaseModel):
    name: str
    data_type: str


class TypeInfo(BaseModel):
    """Composite, enum or range type."""

    oid: int
    name: str
    schema_name: str
    category: str  # composite, enum, range
    attributes: list[TypeAttribute] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    subtype: str | None = None
    depends_on_types: list[int] = Field(default_factory=list)
    owner: str | None = None
    comment: str | None = None


class OperatorInfo(BaseModel):
    oid: int
    name: str
    schema_name: str
    procedure: str
    left_type: str | None = None
    right_type: str | None = None
    commutator: str | None = None
    negator: str | None = None
    restrict: str | None = None
    join: str | None = None
    hashes: bool = False
    merges: bool = False
    owner: str | None = None
    comment: str | None = None
