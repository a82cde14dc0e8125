"""
Export download endpoint.
"""

import tempfile
from collections.abc import Iterator

import pydantic
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from pg_porter.api.auth import require_token
from pg_porter.dump.models import ExportOptions
from pg_porter.errors import ValidationError
from pg_porter.factory import get_profile
from pg_porter.runner import run_export
from pg_porter.stream.sinks import open_sink

router = APIRouter()

READ_SIZE = 64 * 1024


def _iter_file(spool) -> Iterator[bytes]:
    try:
        spool.seek(0)
        while block := spool.read(READ_SIZE):
            yield block
    finally:
        spool.close()


@router.get("/export", dependencies=[Depends(require_token)])
async def export_dump(
    request: Request,
    server: str | None = Query(None, description="db.toml profile"),
    database: str | None = Query(None, description="Dump one database"),
    schema: str | None = Query(None, description="Dump one schema"),
    objects: list[str] | None = Query(None, description="Explicit object subset"),
    compression: str | None = Query(None, description="plain, gzip, bzip2 or zip"),
    clean: bool = Query(False),
    drop_objects: bool = Query(False),
    if_not_exists: bool = Query(False),
    data_only: bool = Query(False),
    structure_only: bool = Query(False),
    batch_size: int | None = Query(None),
    insert_format: str = Query("copy"),
    insert_mode: str = Query("multi"),
    format: str = Query("sql", description="sql, or csv, tsv, json or xml for one table"),
    null_text: str = Query(""),
    include_comments: bool = Query(True),
    include_dependencies: bool = Query(False),
    add_create_database: bool = Query(False),
    add_create_schema: bool = Query(False),
    suppress_preliminaries: bool = Query(False),
):
    """
    Stream a SQL dump of a server, a database or one schema, or the rows
    of one table as csv, tsv, json or xml.

    The dump is written to a spooled temporary file through the chosen
    compression sink, then streamed back with matching content headers.
    """
    config = request.app.state.config
    _, profile = get_profile(config, server)

    try:
        options = ExportOptions(
            clean=clean or drop_objects,
            if_not_exists=if_not_exists,
            data_only=data_only,
            structure_only=structure_only,
            batch_size=batch_size,
            insert_format=insert_format,
            insert_mode=insert_mode,
            format=format,
            null_text=null_text,
            include_comments=include_comments,
            objects=objects or None,
            include_dependencies=include_dependencies,
            add_create_database=add_create_database,
            add_create_schema=add_create_schema,
            suppress_preliminaries=suppress_preliminaries,
            memory_ceiling_bytes=config.export.memory_ceiling_bytes,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid export options: {e.errors()[0]['msg']}") from e

    spool = tempfile.SpooledTemporaryFile(max_size=config.export.memory_ceiling_bytes)
    try:
        sink = open_sink(compression or config.export.compression, spool)
    except ValueError as e:
        spool.close()
        raise ValidationError(str(e)) from e

    try:
        _, framing = await run_in_threadpool(run_export, profile, options, sink, database, schema)
    except Exception:
        spool.close()
        raise

    return StreamingResponse(
        _iter_file(spool),
        media_type=framing.content_type,
        headers={"Content-Disposition": framing.content_disposition},
    )
