"""Domain and user-defined type emitters.

Domains and composite types are emitted before any function exists, so a
domain CHECK or DEFAULT that calls a user function is added afterwards by
the post-pass.
"""

from pg_porter.catalog.models import DomainInfo, ObjectKind, TypeInfo
from pg_porter.dump.emitters.base import Emitter
from pg_porter.dump.models import DeferredKind, DeferredStatement
from pg_porter.dump.writer import quote_ident, quote_literal


class DomainEmitter(Emitter):
    kind = ObjectKind.DOMAIN
    kind_sql = "DOMAIN"

    def emit(self, domain: DomainInfo) -> None:
        if not self.options.with_structure:
            return
        target = self.target(domain)
        name = f"{domain.schema_name}.{domain.name}"

        self.out.banner("Domain", name)
        if self.options.clean:
            self.out.drop(self.kind_sql, target)

        lines = [f"CREATE DOMAIN {target} AS {domain.base_type}"]
        if domain.collation:
            lines.append(f"    COLLATE {domain.collation}")
        if domain.default is not None:
            if self.ctx.references(domain.default, domain.schema_name):
                self.ctx.defer(
                    DeferredStatement(
                        kind=DeferredKind.GENERATED_DEFAULT,
                        target=name,
                        sql=f"ALTER DOMAIN {target} SET DEFAULT {domain.default}",
                    )
                )
            else:
                lines.append(f"    DEFAULT {domain.default}")
        if domain.not_null:
            lines.append("    NOT NULL")

        for con in domain.constraints:
            con_name = quote_ident(con.name)
            if self.ctx.references(con.definition, domain.schema_name):
                self.ctx.defer(
                    DeferredStatement(
                        kind=DeferredKind.CHECK_VALIDATE,
                        target=name,
                        sql=(
                            f"ALTER DOMAIN {target} ADD CONSTRAINT {con_name} "
                            f"{con.definition} NOT VALID;\n"
                            f"ALTER DOMAIN {target} VALIDATE CONSTRAINT {con_name}"
                        ),
                    )
                )
            else:
                lines.append(f"    CONSTRAINT {con_name} {con.definition}")

        self.out.statement("\n".join(lines))
        self.trailer(target, domain.owner, domain.comment)


class TypeEmitter(Emitter):
    """Composite, enum and range types."""

    kind = ObjectKind.TYPE
    kind_sql = "TYPE"

    def emit(self, type_info: TypeInfo) -> None:
        if not self.options.with_structure:
            return
        target = self.target(type_info)
        self.out.banner("Type", f"{type_info.schema_name}.{type_info.name}")
        if self.options.clean:
            self.out.drop(self.kind_sql, target)

        if type_info.category == "composite":
            attrs = ",\n".join(
                f"    {quote_ident(a.name)} {a.data_type}" for a in type_info.attributes
            )
            sql = f"CREATE TYPE {target} AS (\n{attrs}\n)"
        elif type_info.category == "enum":
            labels = ",\n".join(f"    {quote_literal(label)}" for label in type_info.labels)
            sql = f"CREATE TYPE {target} AS ENUM (\n{labels}\n)"
        elif type_info.category == "range":
            sql = f"CREATE TYPE {target} AS RANGE (\n    SUBTYPE = {type_info.subtype}\n)"
        else:
            self.out.comment(f"Unsupported type category {type_info.category!r} for {target}")
            return

        self.out.statement(sql)
        self.trailer(target, type_info.owner, type_info.comment)
