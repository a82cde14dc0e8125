"""View and materialized view emitters."""

from pg_porter.catalog.models import ObjectKind, ViewInfo
from pg_porter.dump.emitters.table import TableEmitter, index_if_not_exists
from pg_porter.dump.models import DeferredKind, DeferredStatement
from pg_porter.dump.writer import quote_ident


class ViewEmitter(TableEmitter):
    """``CREATE OR REPLACE VIEW``; triggers and rules are deferred like a table's."""

    kind = ObjectKind.VIEW
    kind_sql = "VIEW"

    def emit(self, view: ViewInfo) -> None:
        if not self.options.with_structure:
            return
        target = self.target(view)
        self.out.banner("View", view.qualified_name)
        if self.options.clean:
            self.out.drop(self.kind_sql, target)
        self.out.statement(self.create_sql(view, target))
        self.ctx.emitted.add(view.qualified_name)
        self.after_create(view, target)

    def create_sql(self, view: ViewInfo, target: str) -> str:
        return f"CREATE OR REPLACE VIEW {target} AS\n{view.definition.strip().rstrip(';')}"

    def after_create(self, view: ViewInfo, target: str) -> None:
        self.trailer(target, view.owner, view.comment, view.privileges, grant_kind_sql="TABLE")
        if self.options.include_comments:
            for col in view.columns:
                if col.comment:
                    self.out.comment_on("COLUMN", f"{target}.{quote_ident(col.name)}", col.comment)
        self.defer_triggers_and_rules(view)


class MaterializedViewEmitter(ViewEmitter):
    """``CREATE MATERIALIZED VIEW ... WITH NO DATA``; the refresh is deferred."""

    kind = ObjectKind.MATERIALIZED_VIEW
    kind_sql = "MATERIALIZED VIEW"

    def create_sql(self, view: ViewInfo, target: str) -> str:
        head = "CREATE MATERIALIZED VIEW"
        if self.options.if_not_exists:
            head += " IF NOT EXISTS"
        return f"{head} {target} AS\n{view.definition.strip().rstrip(';')}\nWITH NO DATA"

    def after_create(self, view: ViewInfo, target: str) -> None:
        for index in view.indexes:
            definition = index.definition
            if self.options.if_not_exists:
                definition = index_if_not_exists(definition)
            self.out.statement(definition)
        super().after_create(view, target)

        if self.options.with_data:
            self.ctx.defer(
                DeferredStatement(
                    kind=DeferredKind.MV_REFRESH,
                    target=view.qualified_name,
                    sql=f"REFRESH MATERIALIZED VIEW {target}",
                    requires=(view.qualified_name,),
                )
            )
