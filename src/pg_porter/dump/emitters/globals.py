"""Cluster-wide objects: roles and tablespaces."""

from pg_porter.catalog.models import RoleInfo, TablespaceInfo
from pg_porter.dump.writer import SqlWriter, quote_ident, quote_literal

ROLE_FLAGS = [
    ("superuser", "SUPERUSER", "NOSUPERUSER"),
    ("inherit", "INHERIT", "NOINHERIT"),
    ("createrole", "CREATEROLE", "NOCREATEROLE"),
    ("createdb", "CREATEDB", "NOCREATEDB"),
    ("login", "LOGIN", "NOLOGIN"),
    ("replication", "REPLICATION", "NOREPLICATION"),
    ("bypassrls", "BYPASSRLS", "NOBYPASSRLS"),
]


class RoleEmitter:
    """``CREATE ROLE`` + ``ALTER ROLE ... WITH`` and role memberships."""

    def __init__(self, writer: SqlWriter, clean: bool = False, include_comments: bool = True):
        self.out = writer
        self.clean = clean
        self.include_comments = include_comments

    def emit(self, role: RoleInfo) -> None:
        name = quote_ident(role.name)
        if self.clean:
            # Roles can not be dropped CASCADE.
            self.out.statement(f"DROP ROLE IF EXISTS {name}")
        self.out.statement(f"CREATE ROLE {name}")

        options = [on if getattr(role, attr) else off for attr, on, off in ROLE_FLAGS]
        if role.connection_limit != -1:
            options.append(f"CONNECTION LIMIT {role.connection_limit}")
        if role.valid_until:
            options.append(f"VALID UNTIL {quote_literal(role.valid_until)}")
        self.out.statement(f"ALTER ROLE {name} WITH {' '.join(options)}")

        if self.include_comments:
            self.out.comment_on("ROLE", name, role.comment)

    def emit_memberships(self, role: RoleInfo) -> None:
        for group in role.member_of:
            self.out.statement(f"GRANT {quote_ident(group)} TO {quote_ident(role.name)}")


class TablespaceEmitter:
    def __init__(self, writer: SqlWriter, clean: bool = False, include_comments: bool = True):
        self.out = writer
        self.clean = clean
        self.include_comments = include_comments

    def emit(self, tablespace: TablespaceInfo) -> None:
        name = quote_ident(tablespace.name)
        if self.clean:
            self.out.statement(f"DROP TABLESPACE IF EXISTS {name}")
        self.out.statement(
            f"CREATE TABLESPACE {name} OWNER {quote_ident(tablespace.owner)} "
            f"LOCATION {quote_literal(tablespace.location)}"
        )
        if tablespace.options:
            self.out.statement(f"ALTER TABLESPACE {name} SET ({', '.join(tablespace.options)})")
        if self.include_comments:
            self.out.comment_on("TABLESPACE", name, tablespace.comment)
        if tablespace.privileges:
            self.out.privileges("TABLESPACE", name, tablespace.privileges)
