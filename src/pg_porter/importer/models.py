"""Pydantic models for the chunked import protocol.

Usage:
    from pg_porter.importer.models import ChunkRequest, ImportSession

    request = ChunkRequest(import_session_id="abc", schema="public", table="accounts")
    session = ImportSession.new(request)
"""

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ImportState(str, Enum):
    UNINITIALIZED = "uninitialized"
    DETECTING_FORMAT = "detecting_format"
    STREAMING = "streaming"
    COMPLETE = "complete"
    TRUNCATED_ERROR = "truncated_error"
    STALLED_ERROR = "stalled_error"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {ImportState.COMPLETE, ImportState.TRUNCATED_ERROR, ImportState.STALLED_ERROR}
)


class ImportFormat(str, Enum):
    AUTO = "auto"
    CSV = "csv"
    TSV = "tsv"
    JSON = "json"
    XML = "xml"


class ByteaEncoding(str, Enum):
    HEX = "hex"
    BASE64 = "base64"
    ESCAPE = "escape"
    OCTAL = "octal"


# Tokens callers may list in ``allowed_nulls``; ``""`` stands for the empty string.
NULL_TOKENS = ("NULL", "\\N", '""')


class ChunkRequest(BaseModel):
    """Parameters of one ``POST /import/chunk`` request (the body travels separately).

    Attributes:
        import_session_id: Logical upload identifier.
        schema_name: Target schema (``schema`` on the wire).
        table: Target table (``table`` or ``subject`` on the wire).
        offset: Byte offset of the first new payload byte in the upload.
        remainder_len: Length of the previous remainder prepended to the body.
        eof: Whether this is the upload's final chunk.
        chunk_hash: Optional FNV-1a 64 hex digest of the raw body.
    """

    model_config = ConfigDict(populate_by_name=True)

    import_session_id: str = Field(min_length=1)
    schema_name: str = Field(alias="schema", min_length=1)
    table: str = Field(min_length=1)
    server: str | None = None
    format: ImportFormat = ImportFormat.AUTO
    use_header: bool = False
    allowed_nulls: list[str] = Field(default_factory=list)
    opt_truncate: bool = False
    bytea_encoding: ByteaEncoding = ByteaEncoding.HEX
    offset: int = Field(default=0, ge=0)
    remainder_len: int = Field(default=0, ge=0)
    eof: bool = False
    chunk_hash: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _subject_alias(cls, data):
        if isinstance(data, dict) and "table" not in data and data.get("subject"):
            data = {**data, "table": data["subject"]}
        return data

    @property
    def is_reset(self) -> bool:
        return self.offset == 0

    @property
    def qualified_table(self) -> str:
        return f"{self.schema_name}.{self.table}"


class ImportSession(BaseModel):
    """Resumable parser state for one logical upload.

    Persisted between requests as JSON; byte fields are stored base64-encoded.
    ``remainder`` holds exactly the bytes the client echoes back; ``pending``
    is an incomplete UTF-8 sequence cut off at the end of the last chunk,
    already counted in ``offset``.
    """

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    session_id: str
    state: ImportState = ImportState.UNINITIALIZED
    schema_name: str
    table: str
    format: ImportFormat | None = None
    offset: int = 0
    remainder: bytes = b""
    errors: int = 0
    stalled_chunks: int = 0

    # Parser state
    pending: bytes = b""
    header: list[str] | None = None
    header_seen: bool = False
    json_wrapped: bool | None = None
    json_closed: bool = False

    # Column mapping, resolved once per session
    header_validated: bool = False
    column_mapping: list[str] = Field(default_factory=list)
    serial_omitted: bool = False

    truncated_tables: list[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    def touch(self) -> None:
        self.updated_at = time.time()

    @classmethod
    def new(cls, request: ChunkRequest) -> "ImportSession":
        return cls(
            session_id=request.import_session_id,
            state=ImportState.DETECTING_FORMAT,
            schema_name=request.schema_name,
            table=request.table,
        )


class LogEntry(BaseModel):
    """One timestamped entry of a chunk's execution log."""

    time: str
    type: str
    message: str


class ChunkResult(BaseModel):
    """Response body of an accepted chunk.

    Attributes:
        offset: Byte offset the next chunk's new bytes start at.
        remainder_len: Byte length of ``remainder``.
        remainder: Unconsumed tail to prepend to the next chunk.
        errors: Running error count for the session.
        log_entries: This chunk's log (``logEntries`` on the wire).
        state: Session state after the chunk.
    """

    model_config = ConfigDict(populate_by_name=True)

    offset: int
    remainder_len: int
    remainder: str
    errors: int
    log_entries: list[LogEntry] = Field(default_factory=list, alias="logEntries")
    state: ImportState
