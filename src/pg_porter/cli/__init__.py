"""CLI module for PostgreSQL export and chunked import.

Provides commands for profile listing, SQL dumps, file imports through the
chunk protocol, and running the HTTP API.

Usage:
    PG_PORTER_DB_PROFILE=local pg-porter export --database appdb --compression gzip
    pg-porter profiles
    pg-porter export --profile local --database appdb --schema public --objects accounts,orders
    pg-porter import --profile local --schema public --table accounts accounts.csv --header
    pg-porter serve --host 127.0.0.1 --port 8000

Commands:
    profiles  - List available profiles
    export    - Dump a server, database or schema as SQL
    import    - Load a CSV/TSV/JSON/XML file into a table
    serve     - Run the HTTP API (import chunks, export downloads)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import pydantic
from rich.console import Console
from rich.table import Table

from pg_porter.config.loader import load_config
from pg_porter.config.models import PorterConfig
from pg_porter.dump.models import ExportOptions
from pg_porter.errors import PgPorterError, ProfileNotFoundError, ValidationError
from pg_porter.factory import (
    DEFAULT_ENV_PREFIX,
    get_active_profile_name,
    get_profile,
    open_import_target,
)
from pg_porter.importer.models import ByteaEncoding, ImportFormat, ImportState
from pg_porter.importer.processor import ChunkProcessor
from pg_porter.importer.sessions import MemorySessionStore
from pg_porter.runner import (
    DEFAULT_CHUNK_SIZE,
    data_export_table,
    export_filename,
    import_file,
    run_export,
)
from pg_porter.stream.sinks import SINKS, open_sink

console = Console()


def _load(args: argparse.Namespace) -> PorterConfig:
    return load_config(Path(args.config) if args.config else None)


# ============================================================================
# Export
# ============================================================================


def _export_options(args: argparse.Namespace, config: PorterConfig) -> ExportOptions:
    objects = [o.strip() for o in args.objects.split(",") if o.strip()] if args.objects else None
    return ExportOptions(
        clean=args.clean,
        if_not_exists=args.if_not_exists,
        data_only=args.data_only,
        structure_only=args.structure_only,
        batch_size=args.batch_size,
        insert_format=args.insert_format,
        insert_mode=args.insert_mode,
        format=args.format,
        null_text=args.null_text,
        include_comments=not args.no_comments,
        include_privileges=not args.no_privileges,
        objects=objects,
        include_dependencies=args.include_dependencies,
        add_create_database=args.create_database,
        add_create_schema=args.create_schema,
        suppress_preliminaries=args.suppress_preliminaries,
        memory_ceiling_bytes=config.export.memory_ceiling_bytes,
    )


def cmd_export(args: argparse.Namespace) -> int:
    """Dump a server, database or schema to a file.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load(args)
        name, profile = get_profile(config, args.profile, args.env_prefix)
        options = _export_options(args, config)
    except (FileNotFoundError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except pydantic.ValidationError as e:
        console.print(f"[red]Error: {e.errors()[0]['msg']}[/red]")
        return 1

    compression = args.compression or config.export.compression
    if compression not in SINKS:
        console.print(
            f"[red]Error: unknown compression '{compression}'. "
            f"Available: {', '.join(sorted(SINKS))}[/red]"
        )
        return 1
    data_table = None
    if options.format != "sql":
        try:
            data_table = data_export_table(options, args.schema)
        except ValidationError as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1
    output = Path(
        args.output
        or export_filename(args.database, args.schema, data_table, options.format)
        + SINKS[compression].extension
    )

    scope = args.schema or args.database or "all databases"
    console.print(f"Exporting [bold]{scope}[/bold] from [cyan]{name}[/cyan]...", style="dim")
    try:
        with open(output, "wb") as fh:
            result, _ = run_export(
                profile, options, open_sink(compression, fh), args.database, args.schema
            )
    except Exception as e:
        console.print(f"[bold red]x[/bold red] Export failed: {e}")
        return 1

    table = Table(title="Export Summary", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Output", str(output))
    table.add_row("Objects", str(result.objects_emitted))
    table.add_row("Rows", str(result.rows_exported))
    table.add_row(
        "Deferred statements",
        f"{result.deferred_emitted} written, {result.deferred_skipped} skipped",
    )
    if result.circular_objects:
        table.add_row("Circular", f"[yellow]{', '.join(result.circular_objects)}[/yellow]")
    if result.failed_objects:
        table.add_row("Failed", f"[red]{', '.join(result.failed_objects)}[/red]")
    console.print(table)

    if result.failed_objects:
        console.print("[bold yellow]![/bold yellow] Some objects could not be dumped; see comments in the output.")
        return 1
    console.print("[bold green]v[/bold green] Export complete.")
    return 0


# ============================================================================
# Import
# ============================================================================


async def _async_import(args: argparse.Namespace) -> int:
    try:
        config = _load(args)
        name, profile = get_profile(config, args.profile, args.env_prefix)
    except (FileNotFoundError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    path = Path(args.file)
    if not path.exists():
        console.print(f"[red]Error: file not found: {path}[/red]")
        return 1

    console.print(
        f"Importing [bold]{path.name}[/bold] into [cyan]{name}[/cyan] "
        f"{args.schema}.{args.table}...",
        style="dim",
    )
    target = open_import_target(profile, args.database)
    processor = ChunkProcessor(
        MemorySessionStore(ttl_seconds=config.import_.session_ttl_seconds),
        target,
        stall_limit=config.import_.stall_limit,
        streaming_logs=not args.verbose,
    )
    try:
        with open(path, "rb") as fh:
            summary = await import_file(
                processor,
                fh,
                schema=args.schema,
                table=args.table,
                chunk_size=args.chunk_size,
                format=args.format,
                use_header=args.header,
                allowed_nulls=args.null or [],
                opt_truncate=args.truncate,
                bytea_encoding=args.bytea_encoding,
            )
    finally:
        await target.close()

    table = Table(title="Import Summary", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Session", summary.session_id)
    table.add_row("State", summary.state.value if summary.state else "-")
    table.add_row("Bytes", str(summary.offset))
    table.add_row("Chunks", str(summary.chunks))
    table.add_row("Errors", f"[red]{summary.errors}[/red]" if summary.errors else "0")
    console.print(table)

    problems = [e for e in summary.log_entries if e.type in ("error", "warning")]
    if problems:
        log_table = Table(title="Problems", show_header=True, header_style="bold")
        log_table.add_column("Time", style="dim")
        log_table.add_column("Type")
        log_table.add_column("Message")
        for entry in problems:
            style = "red" if entry.type == "error" else "yellow"
            log_table.add_row(entry.time, f"[{style}]{entry.type}[/{style}]", entry.message)
        console.print(log_table)

    if summary.error:
        console.print(f"[bold red]x[/bold red] {summary.error}")
        return 1
    if summary.success:
        console.print("[bold green]v[/bold green] Import complete.")
        return 0
    if summary.state == ImportState.COMPLETE:
        console.print("[bold yellow]![/bold yellow] Import finished with errors.")
    else:
        console.print(f"[bold red]x[/bold red] Import ended in state {summary.state.value}.")
    return 1


def cmd_import(args: argparse.Namespace) -> int:
    """Load a data file into a table.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure or when any record failed.
    """
    try:
        return asyncio.run(_async_import(args))
    except PgPorterError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1


# ============================================================================
# Profiles / serve
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = _load(args)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        current = get_active_profile_name(config, args.env_prefix)
    except ProfileNotFoundError:
        current = None

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = active profile")

    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API with uvicorn.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 after the server shuts down, 1 if db.toml not found.
    """
    import uvicorn

    from pg_porter.api import create_app

    try:
        config = _load(args)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not config.api.token and args.host not in ("127.0.0.1", "localhost", "::1"):
        console.print("[yellow]Warning: no [api] token configured; the API is unauthenticated.[/yellow]")
    uvicorn.run(create_app(config), host=args.host, port=args.port)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def _configure_logging(verbose: int) -> None:
    if verbose == 0:
        log_level = logging.WARNING
    elif verbose == 1:
        log_level = logging.INFO
    else:
        log_level = logging.DEBUG

    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="pg-porter",
        description="PostgreSQL export and chunked import toolkit",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: $PG_PORTER_CONFIG or ./db.toml)",
    )
    parser.add_argument(
        "--env-prefix",
        default=DEFAULT_ENV_PREFIX,
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # export command
    p_export = subparsers.add_parser("export", help="Dump a server, database or schema as SQL, or one table as data")
    p_export.add_argument("--profile", "-p", help="Profile from db.toml")
    p_export.add_argument("--database", "-d", help="Database to dump (default: every database)")
    p_export.add_argument("--schema", "-n", help="Schema to dump")
    p_export.add_argument(
        "--objects",
        help="Comma-separated subset: relations with --schema, schemas with --database, "
        "databases otherwise",
    )
    p_export.add_argument("--compression", choices=sorted(SINKS), help="Output compression")
    p_export.add_argument("--output", "-o", help="Output file (default: named after the scope)")
    p_export.add_argument("--clean", action="store_true", help="Emit DROP ... IF EXISTS first")
    p_export.add_argument("--if-not-exists", action="store_true", help="Use IF NOT EXISTS where supported")
    mode = p_export.add_mutually_exclusive_group()
    mode.add_argument("--data-only", action="store_true", help="Table data only")
    mode.add_argument("--structure-only", action="store_true", help="DDL only")
    p_export.add_argument("--batch-size", type=int, help="Rows per fetch (default: auto)")
    p_export.add_argument("--insert-format", choices=["copy", "insert"], default="copy")
    p_export.add_argument("--insert-mode", choices=["multi", "single"], default="multi")
    p_export.add_argument(
        "--format",
        choices=["sql", "csv", "tsv", "json", "xml"],
        default="sql",
        help="sql dump, or the rows of the one table given in --objects",
    )
    p_export.add_argument("--null-text", default="", help="NULL marker for csv and tsv output")
    p_export.add_argument("--no-comments", action="store_true", help="Skip COMMENT ON statements")
    p_export.add_argument("--no-privileges", action="store_true", help="Skip GRANT statements")
    p_export.add_argument(
        "--include-dependencies",
        action="store_true",
        help="With --objects, also dump functions, types and domains they use",
    )
    p_export.add_argument("--create-database", action="store_true", help="Emit CREATE DATABASE")
    p_export.add_argument("--create-schema", action="store_true", help="Emit CREATE SCHEMA")
    p_export.add_argument(
        "--suppress-preliminaries", action="store_true", help="Omit the SET header and footer"
    )
    p_export.set_defaults(func=cmd_export)

    # import command
    p_import = subparsers.add_parser("import", help="Load a CSV/TSV/JSON/XML file into a table")
    p_import.add_argument("file", help="Data file (optionally gzip or bzip2 compressed per chunk)")
    p_import.add_argument("--profile", "-p", help="Profile from db.toml")
    p_import.add_argument("--database", "-d", help="Database (default: the profile's)")
    p_import.add_argument("--schema", "-n", required=True, help="Target schema")
    p_import.add_argument("--table", "-t", required=True, help="Target table")
    p_import.add_argument(
        "--format", choices=[f.value for f in ImportFormat], default=ImportFormat.AUTO.value
    )
    p_import.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Bytes per chunk")
    p_import.add_argument("--header", action="store_true", help="First record holds column names")
    p_import.add_argument("--truncate", action="store_true", help="Empty the table before loading")
    p_import.add_argument(
        "--null",
        action="append",
        help='Token loaded as NULL (repeatable): NULL, \\N or "" for empty fields',
    )
    p_import.add_argument(
        "--bytea-encoding",
        choices=[e.value for e in ByteaEncoding],
        default=ByteaEncoding.HEX.value,
    )
    p_import.set_defaults(func=cmd_import)

    # serve command
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
