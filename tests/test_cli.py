"""Tests for the pg-porter command line."""

import gzip
import sys
import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FakeImportTarget

from pg_porter.cli import main
from pg_porter.dump.models import ExportResult


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "db.toml"
    path.write_text(textwrap.dedent("""\
        [profiles.dev]
        url = "postgresql://u@localhost/appdb"
        description = "Local development"

        [profiles.prod]
        url = "postgresql://u@db.example.com/appdb"
    """))
    monkeypatch.delenv("PG_PORTER_DB_PROFILE", raising=False)
    return path


def run_cli(monkeypatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["pg-porter", *argv])
    return main()


# ============================================================================
# Test: profiles
# ============================================================================


class TestProfiles:
    def test_lists_profiles_and_marks_active(self, monkeypatch, capsys, config_file):
        monkeypatch.setenv("PG_PORTER_DB_PROFILE", "dev")

        assert run_cli(monkeypatch, "--config", str(config_file), "profiles") == 0

        out = capsys.readouterr().out
        assert "Database Profiles" in out
        assert "Local development" in out
        assert "prod" in out
        assert "active profile" in out

    def test_missing_config(self, monkeypatch, capsys, tmp_path):
        assert run_cli(monkeypatch, "--config", str(tmp_path / "none.toml"), "profiles") == 1
        assert "Database config not found" in capsys.readouterr().out

    def test_command_required(self, monkeypatch):
        with pytest.raises(SystemExit):
            run_cli(monkeypatch)


# ============================================================================
# Test: export
# ============================================================================


def fake_run_export(profile, options, sink, database=None, schema=None):
    framing = sink.begin("dump.sql")
    sink.write("CREATE TABLE public.accounts ();\n")
    sink.finish()
    return ExportResult(success=True, objects_emitted=1, rows_exported=3), framing


class TestExport:
    def test_writes_compressed_file(self, monkeypatch, capsys, config_file, tmp_path):
        output = tmp_path / "out.sql.gz"
        with patch("pg_porter.cli.run_export", side_effect=fake_run_export) as run:
            code = run_cli(
                monkeypatch, "--config", str(config_file), "export", "-p", "dev",
                "-d", "appdb", "-n", "public", "--objects", "accounts, orders",
                "--compression", "gzip", "-o", str(output), "--no-privileges",
            )

        assert code == 0
        assert gzip.decompress(output.read_bytes()) == b"CREATE TABLE public.accounts ();\n"
        profile, options, _, database, schema = run.call_args[0]
        assert profile.url == "postgresql://u@localhost/appdb"
        assert options.objects == ["accounts", "orders"]
        assert options.include_privileges is False
        assert (database, schema) == ("appdb", "public")
        assert "Export Summary" in capsys.readouterr().out

    def test_default_output_name(self, monkeypatch, config_file, tmp_path):
        monkeypatch.chdir(tmp_path)
        with patch("pg_porter.cli.run_export", side_effect=fake_run_export):
            code = run_cli(
                monkeypatch, "--config", str(config_file), "export", "-p", "dev",
                "-d", "appdb", "--compression", "bzip2",
            )
        assert code == 0
        assert (tmp_path / "dump_appdb.sql.bz2").exists()

    def test_table_as_csv_default_name(self, monkeypatch, config_file, tmp_path):
        monkeypatch.chdir(tmp_path)
        with patch("pg_porter.cli.run_export", side_effect=fake_run_export) as run:
            code = run_cli(
                monkeypatch, "--config", str(config_file), "export", "-p", "dev",
                "-d", "appdb", "-n", "public", "--objects", "accounts",
                "--format", "csv", "--null-text", "NULL", "--compression", "plain",
            )
        assert code == 0
        assert (tmp_path / "dump_appdb_public_accounts.csv").exists()
        options = run.call_args[0][1]
        assert (options.format, options.null_text) == ("csv", "NULL")

    def test_data_format_needs_one_table(self, monkeypatch, capsys, config_file, tmp_path):
        monkeypatch.chdir(tmp_path)
        with patch("pg_porter.cli.run_export") as run:
            code = run_cli(
                monkeypatch, "--config", str(config_file), "export", "-p", "dev",
                "-d", "appdb", "--format", "json",
            )
        assert code == 1
        assert "exports one table" in capsys.readouterr().out
        run.assert_not_called()
        assert list(tmp_path.iterdir()) == [config_file]

    def test_failed_objects_exit_nonzero(self, monkeypatch, capsys, config_file, tmp_path):
        def partial(profile, options, sink, database=None, schema=None):
            result, framing = fake_run_export(profile, options, sink, database, schema)
            return result.model_copy(update={"failed_objects": ["public.secret"]}), framing

        with patch("pg_porter.cli.run_export", side_effect=partial):
            code = run_cli(
                monkeypatch, "--config", str(config_file), "export", "-p", "dev",
                "-d", "appdb", "-o", str(tmp_path / "x.sql"),
            )
        assert code == 1
        assert "public.secret" in capsys.readouterr().out

    def test_ambiguous_profile(self, monkeypatch, capsys, config_file):
        assert run_cli(monkeypatch, "--config", str(config_file), "export", "-d", "appdb") == 1
        assert "No database profile selected" in capsys.readouterr().out

    def test_data_only_and_structure_only_conflict(self, monkeypatch, config_file):
        with pytest.raises(SystemExit):
            run_cli(
                monkeypatch, "--config", str(config_file), "export",
                "--data-only", "--structure-only",
            )


# ============================================================================
# Test: import
# ============================================================================


class TestImport:
    def test_imports_file_in_small_chunks(
        self, monkeypatch, capsys, config_file, tmp_path, target: FakeImportTarget
    ):
        data = tmp_path / "accounts.csv"
        data.write_bytes(b"1,ann,a@x\n2,bob,b@x\n3,cy,c@x\n")

        with patch("pg_porter.cli.open_import_target", return_value=target):
            code = run_cli(
                monkeypatch, "--config", str(config_file), "import", str(data),
                "-p", "dev", "-n", "public", "-t", "accounts", "--chunk-size", "7",
            )

        assert code == 0
        assert target.rows["public.accounts"] == [
            ["1", "ann", "a@x"], ["2", "bob", "b@x"], ["3", "cy", "c@x"]
        ]
        assert target.closed == 1
        assert "Import complete" in capsys.readouterr().out

    def test_record_errors_reported(self, monkeypatch, capsys, config_file, tmp_path, target):
        data = tmp_path / "accounts.csv"
        data.write_bytes(b"1,ann,a@x\n2,bob\n")

        with patch("pg_porter.cli.open_import_target", return_value=target):
            code = run_cli(
                monkeypatch, "--config", str(config_file), "import", str(data),
                "-p", "dev", "-n", "public", "-t", "accounts", "--format", "csv",
            )

        out = capsys.readouterr().out
        assert code == 1
        assert "Problems" in out
        assert "finished with errors" in out

    def test_truncated_file(self, monkeypatch, capsys, config_file, tmp_path, target):
        data = tmp_path / "accounts.csv"
        data.write_bytes(b'1,ann,a@x\n2,"bob')

        with patch("pg_porter.cli.open_import_target", return_value=target):
            code = run_cli(
                monkeypatch, "--config", str(config_file), "import", str(data),
                "-p", "dev", "-n", "public", "-t", "accounts",
            )

        assert code == 1
        assert "truncated_error" in capsys.readouterr().out

    def test_missing_file(self, monkeypatch, capsys, config_file, tmp_path):
        code = run_cli(
            monkeypatch, "--config", str(config_file), "import", str(tmp_path / "nope.csv"),
            "-p", "dev", "-n", "public", "-t", "accounts",
        )
        assert code == 1
        assert "file not found" in capsys.readouterr().out
