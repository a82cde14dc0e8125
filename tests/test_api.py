"""Tests for the HTTP API: chunk import, export download, auth and error mapping."""

import gzip
from unittest.mock import patch

import pytest
from conftest import FakeImportTarget
from fastapi.testclient import TestClient

from pg_porter.api import create_app
from pg_porter.config.models import ApiSettings, DatabaseProfile, PorterConfig
from pg_porter.dump.models import ExportResult
from pg_porter.importer.checksum import fnv1a64
from pg_porter.importer.sessions import MemorySessionStore

CHUNK = "/import/chunk"
PARAMS = {"import_session_id": "s1", "schema": "public", "table": "accounts", "format": "csv"}


@pytest.fixture(autouse=True)
def no_profile_env(monkeypatch):
    monkeypatch.delenv("PG_PORTER_DB_PROFILE", raising=False)


@pytest.fixture
def config() -> PorterConfig:
    return PorterConfig(
        profiles={"local": DatabaseProfile(url="postgresql://u:p@localhost/appdb")}
    )


@pytest.fixture
def client(config, target: FakeImportTarget) -> TestClient:
    app = create_app(config, session_store=MemorySessionStore(), open_target=lambda server: target)
    return TestClient(app)


# ============================================================================
# Import chunks
# ============================================================================


class TestImportChunk:
    def test_accepted_chunk(self, client, target):
        response = client.post(CHUNK, params=PARAMS, content=b"1,ann,a@x\n2,b")

        assert response.status_code == 200
        data = response.json()
        assert data["offset"] == 13
        assert data["remainder"] == "2,b"
        assert data["remainder_len"] == 3
        assert data["errors"] == 0
        assert data["state"] == "streaming"
        assert data["logEntries"][0]["type"] == "info"
        assert target.rows["public.accounts"] == [["1", "ann", "a@x"]]
        assert target.closed == 1

    def test_follow_up_chunk(self, client, target):
        first = client.post(CHUNK, params=PARAMS, content=b"1,ann,a@x\n2,b").json()
        response = client.post(
            CHUNK,
            params={**PARAMS, "offset": first["offset"], "remainder_len": first["remainder_len"], "eof": "true"},
            content=b"2,bob,b@x\n",
        )
        assert response.status_code == 200
        assert response.json()["state"] == "complete"
        assert len(target.rows["public.accounts"]) == 2

    def test_chunk_boundary_inside_character(self, client, target):
        first = client.post(CHUNK, params=PARAMS, content=b"1,zo\xc3").json()
        assert (first["remainder"], first["remainder_len"], first["offset"]) == ("1,zo", 4, 5)

        echoed = first["remainder"].encode("utf-8")
        response = client.post(
            CHUNK,
            params={**PARAMS, "offset": first["offset"], "remainder_len": len(echoed), "eof": "true"},
            content=echoed + b"\xab,z@x\n",
        )
        assert response.status_code == 200
        assert response.json()["state"] == "complete"
        assert target.rows["public.accounts"] == [["1", "zoë", "z@x"]]

    def test_subject_alias_and_repeated_nulls(self, client, target):
        params = [
            ("import_session_id", "s1"), ("schema", "public"), ("subject", "accounts"),
            ("format", "csv"), ("allowed_nulls", "NULL"), ("allowed_nulls", '""'),
        ]
        response = client.post(CHUNK, params=params, content=b"1,NULL,\n")
        assert response.status_code == 200
        assert target.rows["public.accounts"] == [["1", None, None]]

    def test_missing_table(self, client):
        response = client.post(CHUNK, params={"import_session_id": "s1", "schema": "public"}, content=b"")
        assert response.status_code == 400
        assert response.json() == {"error": "schema and table parameters required"}

    def test_missing_session_id(self, client):
        response = client.post(CHUNK, params={"schema": "public", "table": "accounts"}, content=b"")
        assert response.status_code == 400
        assert response.json()["error"] == "import_session_id parameter required"

    def test_negative_offset(self, client):
        response = client.post(CHUNK, params={**PARAMS, "offset": -1}, content=b"")
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid parameter offset")

    def test_unknown_format(self, client):
        response = client.post(CHUNK, params={**PARAMS, "format": "yaml"}, content=b"")
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid parameter format")

    def test_checksum_mismatch(self, client):
        body = b"1,ann,a@x\n"
        response = client.post(
            CHUNK, params={**PARAMS, "chunk_hash": "0000000000000000"}, content=body
        )
        assert response.status_code == 400
        assert response.json() == {
            "error": "Checksum mismatch: chunk corrupted during transmission",
            "expected": "0000000000000000",
            "received": fnv1a64(body),
        }

    def test_out_of_order(self, client):
        client.post(CHUNK, params=PARAMS, content=b"1,ann,a@x\n")
        response = client.post(CHUNK, params={**PARAMS, "offset": 4}, content=b"x")
        assert response.status_code == 400
        assert response.json()["error"] == "Out-of-order chunk: offset=4 expected=10"

    def test_stall(self, client):
        client.post(CHUNK, params=PARAMS, content=b'1,"abc')
        stuck = {**PARAMS, "offset": 6, "remainder_len": 6}
        for _ in range(2):
            assert client.post(CHUNK, params=stuck, content=b'1,"abc').status_code == 200

        response = client.post(CHUNK, params=stuck, content=b'1,"abc')
        assert response.status_code == 400
        assert response.json()["state"] == "stalled_error"
        assert response.json()["session_id"] == "s1"

    def test_unknown_server_profile(self, config):
        client = TestClient(create_app(config, session_store=MemorySessionStore()))
        response = client.post(CHUNK, params={**PARAMS, "server": "nope"}, content=b"1,a,b\n")
        assert response.status_code == 400
        assert response.json()["error"].startswith("Profile 'nope' not found")

    def test_internal_error(self, config):
        def broken(server):
            raise RuntimeError("connection refused")

        app = create_app(config, session_store=MemorySessionStore(), open_target=broken)
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post(CHUNK, params=PARAMS, content=b"1,a,b\n")

        assert response.status_code == 500
        assert response.json() == {"error": "process_chunk failed", "detail": "connection refused"}


# ============================================================================
# Authentication
# ============================================================================


class TestAuth:
    @pytest.fixture
    def secured(self, config, target) -> TestClient:
        config.api = ApiSettings(token="s3cret")
        app = create_app(config, session_store=MemorySessionStore(), open_target=lambda s: target)
        return TestClient(app)

    def test_missing_token(self, secured):
        response = secured.post(CHUNK, params=PARAMS, content=b"1,ann,a@x\n")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    def test_wrong_token(self, secured):
        response = secured.post(
            CHUNK, params=PARAMS, content=b"", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_valid_token(self, secured):
        response = secured.post(
            CHUNK, params=PARAMS, content=b"1,ann,a@x\n", headers={"Authorization": "Bearer s3cret"}
        )
        assert response.status_code == 200

    def test_export_requires_token(self, secured):
        assert secured.get("/export").status_code == 401


# ============================================================================
# Export download
# ============================================================================


def fake_run_export(profile, options, sink, database=None, schema=None):
    framing = sink.begin("dump_appdb.sql")
    sink.write("CREATE TABLE public.accounts ();\n")
    sink.finish()
    return ExportResult(success=True, objects_emitted=1), framing


class TestExport:
    def test_gzip_download(self, client):
        with patch("pg_porter.api.exports.run_export", side_effect=fake_run_export) as run:
            response = client.get(
                "/export", params={"database": "appdb", "compression": "gzip", "drop_objects": "true"}
            )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/gzip"
        assert response.headers["content-disposition"] == 'attachment; filename="dump_appdb.sql.gz"'
        assert gzip.decompress(response.content) == b"CREATE TABLE public.accounts ();\n"

        profile, options, _, database, schema = run.call_args[0]
        assert profile.url == "postgresql://u:p@localhost/appdb"
        assert options.clean is True
        assert (database, schema) == ("appdb", None)

    def test_default_compression_from_config(self, client, config):
        config.export.compression = "plain"
        with patch("pg_porter.api.exports.run_export", side_effect=fake_run_export):
            response = client.get("/export", params={"database": "appdb"})
        assert response.headers["content-disposition"] == 'attachment; filename="dump_appdb.sql"'
        assert response.content == b"CREATE TABLE public.accounts ();\n"

    def test_object_subset(self, client):
        with patch("pg_porter.api.exports.run_export", side_effect=fake_run_export) as run:
            client.get(
                "/export",
                params=[("database", "appdb"), ("schema", "public"), ("objects", "accounts"), ("objects", "orders")],
            )
        options = run.call_args[0][1]
        assert options.objects == ["accounts", "orders"]

    def test_csv_table_download(self, client):
        def csv_export(profile, options, sink, database=None, schema=None):
            framing = sink.begin("dump_appdb_public_accounts.csv", "text/csv; charset=utf-8")
            sink.write("id,name\r\n1,ann\r\n")
            sink.finish()
            return ExportResult(success=True, objects_emitted=1, rows_exported=1), framing

        with patch("pg_porter.api.exports.run_export", side_effect=csv_export) as run:
            response = client.get(
                "/export",
                params={"database": "appdb", "schema": "public", "objects": "accounts",
                        "format": "csv", "null_text": "NULL", "compression": "plain"},
            )

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/csv; charset=utf-8"
        assert response.content == b"id,name\r\n1,ann\r\n"
        options = run.call_args[0][1]
        assert (options.format, options.null_text, options.objects) == ("csv", "NULL", ["accounts"])

    def test_unknown_data_format(self, client):
        response = client.get("/export", params={"format": "yaml"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid export options")

    def test_data_format_without_table(self, client):
        response = client.get("/export", params={"database": "appdb", "format": "json"})
        assert response.status_code == 400
        assert "exactly one object" in response.json()["error"]

    def test_unknown_compression(self, client):
        response = client.get("/export", params={"compression": "lz4"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Unknown compression 'lz4'")

    def test_conflicting_options(self, client):
        response = client.get("/export", params={"data_only": "true", "structure_only": "true"})
        assert response.status_code == 400
        assert "mutually exclusive" in response.json()["error"]

    def test_export_failure(self, config):
        client = TestClient(create_app(config, session_store=MemorySessionStore()), raise_server_exceptions=False)
        with patch("pg_porter.api.exports.run_export", side_effect=RuntimeError("catalog gone")):
            response = client.get("/export")
        assert response.status_code == 500
        assert response.json() == {"error": "export failed", "detail": "catalog gone"}
