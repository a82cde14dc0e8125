"""Tests for PgCatalog helpers that do not need a live server."""

from unittest.mock import MagicMock, patch

import psycopg
import pytest
from conftest import make_table

from pg_porter.catalog.introspector import PgCatalog, decode_acl
from pg_porter.errors import CatalogQueryError
from pg_porter.stream.chunking import ERROR_ROW_BYTES

CONNECT = "pg_porter.catalog.introspector.psycopg.connect"


def _catalog(conn: MagicMock) -> PgCatalog:
    with patch(CONNECT, return_value=conn):
        return PgCatalog("postgresql://u@h/appdb").__enter__()


# ============================================================================
# Test: ACL decoding
# ============================================================================


class TestDecodeAcl:
    def test_public_and_grant_option(self):
        privileges = decode_acl(["=r/alice", "bob=r*w/alice"], owner="alice")

        assert [(p.grantee, p.privileges, p.grantable) for p in privileges] == [
            ("PUBLIC", ["SELECT"], False),
            ("bob", ["UPDATE"], False),
            ("bob", ["SELECT"], True),
        ]

    def test_owner_entries_skipped(self):
        assert decode_acl(["alice=arwdDxt/alice"], owner="alice") == []

    def test_quoted_grantee_and_column(self):
        privileges = decode_acl(['"Report Users"=r/alice'], column="email")
        assert privileges[0].grantee == "Report Users"
        assert privileges[0].column == "email"

    def test_function_and_schema_letters(self):
        assert decode_acl(["bob=X/alice"])[0].privileges == ["EXECUTE"]
        assert decode_acl(["bob=UC/alice"])[0].privileges == ["USAGE", "CREATE"]

    def test_null_acl(self):
        assert decode_acl(None) == []


# ============================================================================
# Test: Connection handling
# ============================================================================


class TestConnection:
    def test_connect_timeout_appended(self):
        with patch(CONNECT) as connect:
            with PgCatalog("postgresql://u@h/appdb?sslmode=require"):
                pass
        url = connect.call_args[0][0]
        assert url == "postgresql://u@h/appdb?sslmode=require&connect_timeout=10"
        assert connect.call_args.kwargs["autocommit"] is True
        connect.return_value.close.assert_called_once()

    def test_existing_timeout_kept(self):
        with patch(CONNECT) as connect:
            with PgCatalog("postgresql://u@h/appdb?connect_timeout=3"):
                pass
        assert connect.call_args[0][0] == "postgresql://u@h/appdb?connect_timeout=3"

    def test_conn_requires_context(self):
        with pytest.raises(RuntimeError, match="Use with statement"):
            PgCatalog("postgresql://u@h/appdb").conn


# ============================================================================
# Test: Per-object lookups
# ============================================================================


class TestLookups:
    def test_get_sequence(self):
        conn = MagicMock()
        cur = conn.cursor.return_value.__enter__.return_value
        cur.fetchone.side_effect = [
            (
                "orders_id_seq", "public", "bigint", 1, 1, 1, 9223372036854775807, 1, False,
                "public", "orders", "id", "alice", None, ["bob=r/alice"],
            ),
            (42, True),
        ]
        sequence = _catalog(conn).get_sequence(7001)

        assert sequence.qualified_name == "public.orders_id_seq"
        assert sequence.last_value == 42
        assert sequence.is_called is True
        assert sequence.owned_by_column == "id"
        assert sequence.privileges[0].grantee == "bob"
        conn.transaction.assert_called_once()

    def test_missing_object_wrapped(self):
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value.fetchone.return_value = None

        with pytest.raises(CatalogQueryError) as exc_info:
            _catalog(conn).get_sequence(7001)
        assert exc_info.value.kind == "sequence"
        assert exc_info.value.name == "7001"

    def test_driver_error_wrapped(self):
        conn = MagicMock()
        cur = conn.cursor.return_value.__enter__.return_value
        cur.execute.side_effect = psycopg.errors.InsufficientPrivilege("permission denied for sequence\n")

        with pytest.raises(CatalogQueryError, match="permission denied for sequence$"):
            _catalog(conn).get_sequence(7001)

    def test_row_width_falls_back_on_error(self):
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value.execute.side_effect = psycopg.OperationalError("x")
        table = make_table(100, "accounts", ["id", "name"])
        assert _catalog(conn).estimate_row_width(table) == ERROR_ROW_BYTES

    def test_open_cursor_uses_catalog_connection(self):
        conn = MagicMock()
        table = make_table(100, "accounts", ["id", "name"])
        cursor = _catalog(conn).open_cursor(table, batch_size=500)
        assert cursor.batch_size == 500
        assert cursor.conn is conn
