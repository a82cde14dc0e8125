"""Sequence emitter."""

from pg_porter.catalog.models import ObjectKind, SequenceInfo
from pg_porter.dump.emitters.base import Emitter
from pg_porter.dump.models import DeferredKind, DeferredStatement
from pg_porter.dump.writer import qualified, quote_ident, quote_literal


class SequenceEmitter(Emitter):
    """``CREATE SEQUENCE`` plus its current value.

    ``OWNED BY`` needs the owning table, so it is deferred to the end of the
    post-pass.
    """

    kind = ObjectKind.SEQUENCE
    kind_sql = "SEQUENCE"

    def emit(self, seq: SequenceInfo) -> None:
        target = self.target(seq)

        if self.options.with_structure:
            self.out.banner("Sequence", seq.qualified_name)
            if self.options.clean:
                self.out.drop(self.kind_sql, target)
            head = "CREATE SEQUENCE IF NOT EXISTS" if self.options.if_not_exists else "CREATE SEQUENCE"
            lines = [
                f"{head} {target}",
                f"    AS {seq.data_type}",
                f"    START WITH {seq.start}",
                f"    INCREMENT BY {seq.increment}",
                f"    MINVALUE {seq.min_value}",
                f"    MAXVALUE {seq.max_value}",
                f"    CACHE {seq.cache}",
            ]
            if seq.cycle:
                lines.append("    CYCLE")
            self.out.statement("\n".join(lines))
            self.trailer(target, seq.owner, seq.comment, seq.privileges)

            if seq.owned_by and seq.owned_by_column:
                owner_target = qualified(seq.owned_by_schema, seq.owned_by_table)
                self.ctx.defer(
                    DeferredStatement(
                        kind=DeferredKind.SEQUENCE_OWNERSHIP,
                        target=seq.qualified_name,
                        sql=(
                            f"ALTER SEQUENCE {target} OWNED BY "
                            f"{owner_target}.{quote_ident(seq.owned_by_column)}"
                        ),
                        requires=(seq.qualified_name, seq.owned_by),
                    )
                )

        self.ctx.emitted.add(seq.qualified_name)

        if self.options.with_data and seq.last_value is not None:
            regclass = quote_literal(target)
            called = "true" if seq.is_called else "false"
            self.out.statement(f"SELECT pg_catalog.setval({regclass}, {seq.last_value}, {called})")
