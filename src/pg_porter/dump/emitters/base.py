"""Emitter base class: one subclass renders one object kind."""

import logging
from typing import Any

from pg_porter.catalog.models import ObjectKind, Privilege
from pg_porter.dump.context import DumpContext
from pg_porter.dump.writer import SqlWriter, qualified

logger = logging.getLogger(__name__)


class Emitter:
    """Renders the DDL for one catalog object.

    Subclasses set ``kind`` / ``kind_sql`` and implement ``emit``. Anything
    that may forward-reference another object goes to the context's deferred
    queue instead of the output.
    """

    kind: ObjectKind
    kind_sql: str = ""

    def __init__(self, ctx: DumpContext):
        self.ctx = ctx

    @property
    def out(self) -> SqlWriter:
        return self.ctx.writer

    @property
    def options(self):
        return self.ctx.options

    def emit(self, obj: Any) -> None:
        raise NotImplementedError

    def target(self, obj: Any) -> str:
        return qualified(obj.schema_name, obj.name)

    def trailer(
        self,
        target: str,
        owner: str | None,
        comment: str | None,
        privileges: list[Privilege] | None = None,
        kind_sql: str | None = None,
        grant_kind_sql: str | None = None,
    ) -> None:
        """Ownership, comment and grants appended after the structural DDL."""
        kind_sql = kind_sql or self.kind_sql
        self.out.owner(kind_sql, target, owner)
        if self.options.include_comments:
            self.out.comment_on(kind_sql, target, comment)
        if privileges and self.options.include_privileges:
            self.out.privileges(grant_kind_sql or kind_sql, target, privileges)
