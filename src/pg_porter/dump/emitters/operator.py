"""Operator emitter."""

from pg_porter.catalog.models import ObjectKind, OperatorInfo
from pg_porter.dump.emitters.base import Emitter
from pg_porter.dump.writer import quote_ident


class OperatorEmitter(Emitter):
    kind = ObjectKind.OPERATOR
    kind_sql = "OPERATOR"

    def target(self, op: OperatorInfo) -> str:
        return f"{quote_ident(op.schema_name)}.{op.name}"

    def signature(self, op: OperatorInfo) -> str:
        return f"{self.target(op)} ({op.left_type or 'NONE'}, {op.right_type or 'NONE'})"

    def emit(self, op: OperatorInfo) -> None:
        if not self.options.with_structure:
            return
        signature = self.signature(op)
        self.out.banner("Operator", f"{op.schema_name}.{op.name}")
        if self.options.clean:
            self.out.drop(self.kind_sql, signature)

        fields = [f"FUNCTION = {op.procedure}"]
        if op.left_type:
            fields.append(f"LEFTARG = {op.left_type}")
        if op.right_type:
            fields.append(f"RIGHTARG = {op.right_type}")
        for label, value in (
            ("COMMUTATOR", op.commutator),
            ("NEGATOR", op.negator),
            ("RESTRICT", op.restrict),
            ("JOIN", op.join),
        ):
            if value:
                fields.append(f"{label} = {value}")
        if op.hashes:
            fields.append("HASHES")
        if op.merges:
            fields.append("MERGES")

        body = ",\n".join(f"    {f}" for f in fields)
        self.out.statement(f"CREATE OPERATOR {self.target(op)} (\n{body}\n)")
        self.trailer(signature, op.owner, op.comment)
