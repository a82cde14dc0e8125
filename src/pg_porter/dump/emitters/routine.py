"""Function and aggregate emitters."""

from pg_porter.catalog.models import AggregateInfo, FunctionInfo, ObjectKind
from pg_porter.dump.emitters.base import Emitter
from pg_porter.dump.writer import qualified, quote_literal


class FunctionEmitter(Emitter):
    kind = ObjectKind.FUNCTION
    kind_sql = "FUNCTION"

    def emit(self, func: FunctionInfo) -> None:
        if not self.options.with_structure:
            return
        kind_sql = "PROCEDURE" if func.is_procedure else self.kind_sql
        target = f"{qualified(func.schema_name, func.name)}({func.identity_arguments})"

        self.out.banner(kind_sql.title(), f"{func.schema_name}.{func.signature}")
        if self.options.clean:
            self.out.drop(kind_sql, target)
        # pg_get_functiondef already renders CREATE OR REPLACE.
        self.out.statement(func.definition)
        self.trailer(target, func.owner, func.comment, func.privileges, kind_sql=kind_sql)


class AggregateEmitter(Emitter):
    """``CREATE AGGREGATE name (args) (SFUNC = ..., STYPE = ..., ...)``."""

    kind = ObjectKind.AGGREGATE
    kind_sql = "AGGREGATE"

    OPTIONAL_FIELDS = [
        ("FINALFUNC", "finalfunc"),
        ("COMBINEFUNC", "combinefunc"),
        ("SERIALFUNC", "serialfunc"),
        ("DESERIALFUNC", "deserialfunc"),
        ("MSFUNC", "msfunc"),
        ("MINVFUNC", "minvfunc"),
        ("MSTYPE", "mstype"),
        ("MFINALFUNC", "mfinalfunc"),
        ("SORTOP", "sortop"),
    ]

    def emit(self, agg: AggregateInfo) -> None:
        if not self.options.with_structure:
            return
        args = agg.identity_arguments or "*"
        target = f"{qualified(agg.schema_name, agg.name)}({args})"

        self.out.banner("Aggregate", f"{agg.schema_name}.{agg.name}({args})")
        if self.options.clean:
            self.out.drop(self.kind_sql, target)

        fields = [f"SFUNC = {agg.sfunc}", f"STYPE = {agg.stype}"]
        for label, attr in self.OPTIONAL_FIELDS:
            value = getattr(agg, attr)
            if value:
                fields.append(f"{label} = {value}")
        if agg.initcond is not None:
            fields.append(f"INITCOND = {quote_literal(agg.initcond)}")

        body = ",\n".join(f"    {f}" for f in fields)
        self.out.statement(f"CREATE AGGREGATE {target} (\n{body}\n)")
        self.trailer(target, agg.owner, agg.comment, agg.privileges, grant_kind_sql="FUNCTION")
