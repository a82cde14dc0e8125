"""Emitters for tables, partitioned tables, partitions and sub-partitioned tables.

All four share the column and constraint rules:

- Column defaults and stored generation expressions are inline unless they
  call a function that is emitted later; those are applied afterwards by a
  ``generated_default`` deferral.
- PRIMARY KEY / UNIQUE / EXCLUDE are inline. CHECK is inline unless it calls
  a later function, in which case a ``check_validate`` deferral adds it
  ``NOT VALID`` and validates it.
- FOREIGN KEY is always deferred.
- Triggers and rules are always deferred.
- Partitions only carry their local (non-inherited) constraints, indexes
  and triggers.
"""

import re
from dataclasses import dataclass, field

from pg_porter.catalog.models import ColumnInfo, ConstraintInfo, ObjectKind, TableInfo
from pg_porter.dump.data import dump_table_data
from pg_porter.dump.emitters.base import Emitter
from pg_porter.dump.models import DeferredKind, DeferredStatement
from pg_porter.dump.writer import comment_sql, grant_sql, qualified, quote_ident

IDENTITY_CLAUSES = {"a": "GENERATED ALWAYS AS IDENTITY", "d": "GENERATED BY DEFAULT AS IDENTITY"}


def _mentions_column(definition: str, column: str) -> bool:
    pattern = r'(?<![\w"])(?:%s|%s)(?![\w"])' % (re.escape(column), re.escape(quote_ident(column)))
    return re.search(pattern, definition) is not None


def or_replace(definition: str, keyword: str) -> str:
    """Rewrite ``CREATE <keyword>`` to ``CREATE OR REPLACE <keyword>``."""
    return re.sub(
        rf"^\s*CREATE\s+(?!OR\s+REPLACE\s){keyword}\b",
        f"CREATE OR REPLACE {keyword}",
        definition,
        count=1,
        flags=re.IGNORECASE,
    )


def index_if_not_exists(definition: str) -> str:
    return re.sub(
        r"^\s*CREATE\s+(UNIQUE\s+)?INDEX\s+(?!IF\s+NOT\s+EXISTS)",
        lambda m: f"CREATE {m.group(1) or ''}INDEX IF NOT EXISTS ",
        definition,
        count=1,
        flags=re.IGNORECASE,
    )


@dataclass
class LateParts:
    """Columns and constraints left out of ``CREATE TABLE``.

    Anything that names them (indexes, column settings, comments, grants)
    has to follow them into the deferred queue.
    """

    columns: dict[str, ColumnInfo] = field(default_factory=dict)
    constraints: set[str] = field(default_factory=set)

    def mentioned_in(self, definition: str) -> bool:
        return any(_mentions_column(definition, name) for name in self.columns)


class TableEmitter(Emitter):
    """Plain table: ``CREATE TABLE`` plus indexes, settings and data."""

    kind = ObjectKind.TABLE
    kind_sql = "TABLE"

    def emit(self, table: TableInfo) -> None:
        target = self.target(table)
        if self.options.with_structure:
            self.out.banner("Table", table.qualified_name)
            if self.options.clean:
                self.out.drop(self.kind_sql, target)
            late = self.emit_structure(table, target)
            self.ctx.emitted.add(table.qualified_name)
            self.emit_post_structure(table, target, late)
        else:
            self.ctx.emitted.add(table.qualified_name)

        if self.options.with_data:
            dump_table_data(self.ctx, table)

    def defer_after(
        self,
        table: TableInfo,
        kind: DeferredKind,
        sql: str,
        requires: tuple[str, ...] | None = None,
    ) -> None:
        self.ctx.defer(
            DeferredStatement(
                kind=kind,
                target=table.qualified_name,
                sql=sql,
                requires=requires or (table.qualified_name,),
            )
        )

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def create_prefix(self) -> str:
        return "CREATE TABLE IF NOT EXISTS" if self.options.if_not_exists else "CREATE TABLE"

    def emit_structure(self, table: TableInfo, target: str) -> LateParts:
        late = LateParts()
        lines: list[str] = []

        for col in table.columns:
            if not col.is_local:
                continue
            line = self.column_definition(table, target, col)
            if line is None:
                late.columns[col.name] = col
            else:
                lines.append(line)

        self.defer_generated_columns(table, target, late.columns)

        for con in self.local_constraints(table):
            inline = self.constraint_definition(table, target, con, late)
            if inline is not None:
                lines.append(inline)

        body = ",\n".join(f"    {line}" for line in lines)
        sql = f"{self.create_prefix()} {target} (\n{body}\n)" if lines else f"{self.create_prefix()} {target} ()"
        if table.partition_key:
            sql += f"\nPARTITION BY {table.partition_key}"
        self.out.statement(sql)
        return late

    def column_definition(self, table: TableInfo, target: str, col: ColumnInfo) -> str | None:
        """Render one column, or return None if the whole column must be deferred."""
        parts = [quote_ident(col.name), col.data_type]

        if col.generated is not None:
            if self.ctx.must_defer(table.oid, col.generated, table.schema_name):
                return None
            parts.append(f"GENERATED ALWAYS AS ({col.generated}) STORED")
        elif col.identity in IDENTITY_CLAUSES:
            parts.append(IDENTITY_CLAUSES[col.identity])
        elif col.default is not None:
            if self.ctx.must_defer(table.oid, col.default, table.schema_name):
                self.defer_after(
                    table,
                    DeferredKind.GENERATED_DEFAULT,
                    f"ALTER TABLE {target} ALTER COLUMN {quote_ident(col.name)} "
                    f"SET DEFAULT {col.default}",
                )
            else:
                parts.append(f"DEFAULT {col.default}")

        if col.not_null:
            parts.append("NOT NULL")
        return " ".join(parts)

    def local_constraints(self, table: TableInfo) -> list[ConstraintInfo]:
        return [c for c in table.constraints if c.is_local]

    def constraint_definition(
        self,
        table: TableInfo,
        target: str,
        con: ConstraintInfo,
        late: LateParts,
    ) -> str | None:
        """Return the inline constraint clause, or queue it and return None."""
        name = quote_ident(con.name)

        if con.contype == "f":
            requires = [table.qualified_name]
            if con.referenced_table:
                requires.append(con.referenced_table)
            self.defer_constraint(
                table, target, con, late,
                DeferredKind.FOREIGN_KEY,
                f"ALTER TABLE {target} ADD CONSTRAINT {name} {con.definition}",
                tuple(requires),
            )
            return None

        if con.contype == "c" and self.ctx.must_defer(table.oid, con.definition, table.schema_name):
            self.defer_constraint(
                table, target, con, late,
                DeferredKind.CHECK_VALIDATE,
                f"ALTER TABLE {target} ADD CONSTRAINT {name} {con.definition} NOT VALID;\n"
                f"ALTER TABLE {target} VALIDATE CONSTRAINT {name}",
            )
            return None

        if late.mentioned_in(con.definition):
            # Added together with the generated column it covers.
            self.defer_constraint(
                table, target, con, late,
                DeferredKind.GENERATED_DEFAULT,
                f"ALTER TABLE {target} ADD CONSTRAINT {name} {con.definition}",
            )
            return None

        return f"CONSTRAINT {name} {con.definition}"

    def defer_constraint(
        self,
        table: TableInfo,
        target: str,
        con: ConstraintInfo,
        late: LateParts,
        kind: DeferredKind,
        sql: str,
        requires: tuple[str, ...] | None = None,
    ) -> None:
        """Queue a constraint; its comment is queued right behind it."""
        late.constraints.add(con.name)
        self.defer_after(table, kind, sql, requires)
        if self.options.include_comments and con.comment:
            on = f"CONSTRAINT {quote_ident(con.name)} ON"
            self.defer_after(table, kind, comment_sql(on, target, con.comment), requires)

    def defer_generated_columns(
        self, table: TableInfo, target: str, columns: dict[str, ColumnInfo]
    ) -> None:
        for col in columns.values():
            sql = (
                f"ALTER TABLE {target} ADD COLUMN {quote_ident(col.name)} {col.data_type} "
                f"GENERATED ALWAYS AS ({col.generated}) STORED"
            )
            if col.not_null:
                sql += " NOT NULL"
            self.defer_after(table, DeferredKind.GENERATED_DEFAULT, sql)

    # ------------------------------------------------------------------
    # After the CREATE
    # ------------------------------------------------------------------

    def emit_post_structure(self, table: TableInfo, target: str, late: LateParts) -> None:
        """Settings, indexes, comments and grants.

        Statements naming a late column go to the ``generated_default``
        deferrals, after the ``ADD COLUMN`` queued for it.
        """
        out = self.out

        def place(sql: str, is_late: bool) -> None:
            if is_late:
                self.defer_after(table, DeferredKind.GENERATED_DEFAULT, sql)
            else:
                out.statement(sql)

        for col in table.columns:
            if not col.is_local:
                continue
            col_ref = quote_ident(col.name)
            is_late = col.name in late.columns
            if col.statistics is not None and col.statistics >= 0:
                place(f"ALTER TABLE {target} ALTER COLUMN {col_ref} SET STATISTICS {col.statistics}", is_late)
            if col.storage:
                place(f"ALTER TABLE {target} ALTER COLUMN {col_ref} SET STORAGE {col.storage.upper()}", is_late)

        if table.reloptions:
            out.statement(f"ALTER TABLE {target} SET ({', '.join(table.reloptions)})")

        for index in table.indexes:
            if index.is_constraint or not index.is_local:
                continue
            definition = index.definition
            if self.options.if_not_exists:
                definition = index_if_not_exists(definition)
            is_late = late.mentioned_in(index.definition)
            place(definition, is_late)
            if self.options.include_comments and index.comment:
                index_ref = f"{quote_ident(table.schema_name)}.{quote_ident(index.name)}"
                place(comment_sql("INDEX", index_ref, index.comment), is_late)

        privileges = [p for p in table.privileges if p.column not in late.columns]
        self.trailer(target, table.owner, table.comment, privileges)
        if self.options.include_privileges:
            for priv in table.privileges:
                if priv.column in late.columns and priv.privileges:
                    place(grant_sql(self.kind_sql, target, priv), True)

        if self.options.include_comments:
            for col in table.columns:
                if col.is_local and col.comment:
                    place(
                        comment_sql("COLUMN", f"{target}.{quote_ident(col.name)}", col.comment),
                        col.name in late.columns,
                    )
            for con in self.local_constraints(table):
                if con.comment and con.name not in late.constraints:
                    out.comment_on(f"CONSTRAINT {quote_ident(con.name)} ON", target, con.comment)

        self.defer_triggers_and_rules(table)

    def defer_triggers_and_rules(self, relation) -> None:
        for trigger in relation.triggers:
            if not trigger.is_local:
                continue
            definition = trigger.definition
            if self.options.if_not_exists:
                definition = or_replace(definition, "TRIGGER")
            self.ctx.defer(
                DeferredStatement(
                    kind=DeferredKind.TRIGGER,
                    target=relation.qualified_name,
                    sql=definition,
                    requires=(relation.qualified_name,),
                )
            )
        for rule in relation.rules:
            self.ctx.defer(
                DeferredStatement(
                    kind=DeferredKind.RULE,
                    target=relation.qualified_name,
                    sql=or_replace(rule.definition, "RULE"),
                    requires=(relation.qualified_name,),
                )
            )


class PartitionedTableEmitter(TableEmitter):
    """``CREATE TABLE ... PARTITION BY``; holds no rows of its own."""

    kind = ObjectKind.PARTITIONED_TABLE


class PartitionEmitter(TableEmitter):
    """``CREATE TABLE ... PARTITION OF parent FOR VALUES ...``.

    Columns come from the parent; only local constraints are rendered.
    """

    kind = ObjectKind.PARTITION

    def emit_structure(self, table: TableInfo, target: str) -> LateParts:
        parent = qualified(table.parent_schema or table.schema_name, table.parent_table or "")
        late = LateParts()
        lines = [
            inline
            for con in self.local_constraints(table)
            if (inline := self.constraint_definition(table, target, con, late)) is not None
        ]

        sql = f"{self.create_prefix()} {target} PARTITION OF {parent}"
        if lines:
            sql += " (\n" + ",\n".join(f"    {line}" for line in lines) + "\n)"
        sql += f"\n    {table.partition_bound or 'DEFAULT'}"
        if table.partition_key:
            sql += f"\nPARTITION BY {table.partition_key}"
        self.out.statement(sql)
        return late

    def local_constraints(self, table: TableInfo) -> list[ConstraintInfo]:
        return [c for c in table.constraints if c.is_local and c.contype != "n"]


class SubPartitionedTableEmitter(PartitionEmitter):
    """A partition that is itself partitioned: ``PARTITION OF ... PARTITION BY``."""

    kind = ObjectKind.SUB_PARTITIONED_TABLE
