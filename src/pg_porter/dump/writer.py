"""SQL text helpers shared by every emitter.

``SqlWriter`` is a thin layer over any object with a ``write(str)`` method
(an output sink, an ``io.StringIO``). It knows how to render the statements
that every object kind ends with: ownership, grants and comments.
"""

from typing import Protocol

from pg_porter.catalog.models import Privilege


class TextOutput(Protocol):
    def write(self, text: str) -> object:
        ...


def quote_ident(name: str) -> str:
    """Double-quote an identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def qualified(schema: str, name: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(name)}"


def quote_literal(value: str) -> str:
    """Single-quote a string literal (``standard_conforming_strings`` is on)."""
    return "'" + value.replace("'", "''") + "'"


def quote_grantee(grantee: str) -> str:
    return "PUBLIC" if grantee.upper() == "PUBLIC" else quote_ident(grantee)


class SqlWriter:
    """Writes SQL statements and comments to a text output."""

    def __init__(self, out: TextOutput):
        self._out = out

    def write(self, text: str) -> None:
        self._out.write(text)

    def line(self, text: str = "") -> None:
        self._out.write(text + "\n")

    def statement(self, sql: str) -> None:
        """Write ``sql`` terminated by exactly one semicolon and a newline."""
        sql = sql.rstrip()
        if not sql.endswith(";"):
            sql += ";"
        self._out.write(sql + "\n")

    def comment(self, text: str) -> None:
        for part in text.splitlines() or [""]:
            self._out.write(f"-- {part}".rstrip() + "\n")

    def banner(self, kind: str, name: str) -> None:
        self._out.write(f"\n--\n-- {kind}: {name}\n--\n\n")

    # ------------------------------------------------------------------
    # Trailing statements common to every object kind
    # ------------------------------------------------------------------

    def drop(self, kind_sql: str, target: str) -> None:
        self.statement(f"DROP {kind_sql} IF EXISTS {target} CASCADE")

    def owner(self, kind_sql: str, target: str, owner: str | None) -> None:
        if owner:
            self.statement(f"ALTER {kind_sql} {target} OWNER TO {quote_ident(owner)}")

    def comment_on(self, kind_sql: str, target: str, comment: str | None) -> None:
        if comment:
            self.statement(comment_sql(kind_sql, target, comment))

    def privileges(self, kind_sql: str, target: str, privileges: list[Privilege]) -> None:
        for priv in privileges:
            if priv.privileges:
                self.statement(grant_sql(kind_sql, target, priv))


def comment_sql(kind_sql: str, target: str, comment: str) -> str:
    return f"COMMENT ON {kind_sql} {target} IS {quote_literal(comment)}"


def grant_sql(kind_sql: str, target: str, priv: Privilege) -> str:
    """One ``GRANT`` statement; column grants name the column after each privilege."""
    names = ", ".join(priv.privileges)
    if priv.column:
        names = ", ".join(f"{p} ({quote_ident(priv.column)})" for p in priv.privileges)
    sql = f"GRANT {names} ON {kind_sql} {target} TO {quote_grantee(priv.grantee)}"
    if priv.grantable:
        sql += " WITH GRANT OPTION"
    return sql
