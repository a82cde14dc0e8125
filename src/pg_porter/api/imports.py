"""
Chunked import endpoint.
"""

import pydantic
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from pg_porter.api.auth import require_token
from pg_porter.errors import ValidationError
from pg_porter.importer.models import ChunkRequest
from pg_porter.importer.processor import ChunkProcessor

router = APIRouter()


@router.post("/import/chunk", dependencies=[Depends(require_token)], responses={
    200: {
        "description": "Chunk accepted",
        "content": {
            "application/json": {
                "example": {
                    "offset": 1048576,
                    "remainder_len": 17,
                    "remainder": "42,\"partial row",
                    "errors": 0,
                    "logEntries": [
                        {"time": "2026-01-01T00:00:00+00:00", "type": "info",
                         "message": "Chunk inserted rows=5210"}
                    ],
                    "state": "streaming",
                }
            }
        }
    },
    400: {"description": "Missing parameters, checksum mismatch or protocol violation"},
    401: {"description": "Not authenticated"},
})
async def import_chunk(
    request: Request,
    import_session_id: str | None = Query(None),
    schema: str | None = Query(None, description="Target schema"),
    table: str | None = Query(None, description="Target table"),
    subject: str | None = Query(None, description="Alias of table"),
    server: str | None = Query(None, description="db.toml profile of the target database"),
    format: str = Query("auto", description="auto, csv, tsv, json or xml"),
    use_header: bool = Query(False),
    allowed_nulls: list[str] = Query(default=[]),
    opt_truncate: bool = Query(False),
    bytea_encoding: str = Query("hex", description="hex, base64, escape or octal"),
    offset: int = Query(0, ge=0),
    remainder_len: int = Query(0, ge=0),
    eof: bool = Query(False),
    chunk_hash: str | None = Query(None, description="FNV-1a 64 hex digest of the body"),
):
    """
    Process one chunk of an upload.

    The body is the previous response's remainder followed by the next bytes
    of the file (optionally gzip/bzip2 compressed as a whole). Send the
    returned ``offset`` and ``remainder_len`` with the next chunk; start over
    with ``offset=0``.
    """
    if not schema or not (table or subject):
        raise ValidationError("schema and table parameters required")
    if not import_session_id:
        raise ValidationError("import_session_id parameter required")

    try:
        chunk = ChunkRequest(
            import_session_id=import_session_id,
            schema=schema,
            table=table or subject,
            server=server,
            format=format,
            use_header=use_header,
            allowed_nulls=allowed_nulls,
            opt_truncate=opt_truncate,
            bytea_encoding=bytea_encoding,
            offset=offset,
            remainder_len=remainder_len,
            eof=eof,
            chunk_hash=chunk_hash,
        )
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid parameter {field}: {first['msg']}") from e

    state = request.app.state
    body = await request.body()
    target = state.open_target(chunk.server)
    try:
        processor = ChunkProcessor(
            state.session_store,
            target,
            stall_limit=state.config.import_.stall_limit,
        )
        result = await processor.process(chunk, body)
    finally:
        await target.close()

    return JSONResponse(result.model_dump(mode="json", by_alias=True))
