"""Export options, deferred statements and export results."""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, model_validator


# ============================================================================
# Export options
# ============================================================================


class ExportOptions(BaseModel):
    """Options recognized by the schema and data exporters."""

    clean: bool = Field(
        default=False, validation_alias=AliasChoices("clean", "drop_objects")
    )
    if_not_exists: bool = False
    data_only: bool = False
    structure_only: bool = False
    batch_size: int | None = Field(default=None, gt=0)
    insert_format: str = Field(default="copy", pattern="^(copy|insert)$")
    insert_mode: str = Field(default="multi", pattern="^(multi|single)$")
    format: str = Field(default="sql", pattern="^(sql|csv|tsv|json|xml)$")
    null_text: str = ""
    include_comments: bool = True
    include_privileges: bool = True
    objects: list[str] | None = None
    include_dependencies: bool = False
    add_create_database: bool = False
    add_create_schema: bool = False
    suppress_preliminaries: bool = False
    memory_ceiling_bytes: int = 8 * 1024 * 1024

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_exclusive(self) -> "ExportOptions":
        if self.data_only and self.structure_only:
            raise ValueError("data_only and structure_only are mutually exclusive")
        if self.format != "sql" and self.structure_only:
            raise ValueError(f"format {self.format} exports table rows only; drop structure_only")
        return self

    @property
    def with_structure(self) -> bool:
        return not self.data_only

    @property
    def with_data(self) -> bool:
        return not self.structure_only

    def selects(self, name: str) -> bool:
        """True if ``name`` is in the explicit selection (or there is none)."""
        return self.objects is None or name in self.objects

    def scoped(self, **changes) -> "ExportOptions":
        """Copy for a nested scope (e.g. a database inside a server dump)."""
        return self.model_copy(update=changes)


# ============================================================================
# Deferred statements
# ============================================================================


class DeferredKind(str, Enum):
    """Deferred statement kinds, declared in post-pass drain order."""

    GENERATED_DEFAULT = "generated_default"
    CHECK_VALIDATE = "check_validate"
    FOREIGN_KEY = "foreign_key"
    MV_REFRESH = "mv_refresh"
    RULE = "rule"
    TRIGGER = "trigger"
    SEQUENCE_OWNERSHIP = "sequence_ownership"


DRAIN_ORDER: list[DeferredKind] = list(DeferredKind)


@dataclass
class DeferredStatement:
    """A DDL fragment whose emission waits for the post-pass.

    ``requires`` lists the relations (``schema.name``) that must have been
    emitted for the statement to be valid; the post-pass skips it otherwise.
    """

    kind: DeferredKind
    target: str
    sql: str
    requires: tuple[str, ...] = field(default_factory=tuple)


# ============================================================================
# Results
# ============================================================================


class ExportResult(BaseModel):
    """Result of a completed export run."""

    success: bool
    objects_emitted: int = 0
    rows_exported: int = 0
    deferred_emitted: int = 0
    deferred_skipped: int = 0
    circular_objects: list[str] = Field(default_factory=list)
    failed_objects: list[str] = Field(default_factory=list)
    error: str | None = None
