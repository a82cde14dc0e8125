"""Chunk processor: the import session state machine.

One ``process()`` call handles one chunk of a logical upload:

1. Verify the optional FNV-1a checksum of the raw body.
2. Inflate gzip/bzip2 bodies.
3. Load (or, at offset 0, reset) the session and check the chunk continues it.
4. Detect the format on the first chunk when it is ``auto``.
5. Parse complete records, map them to table columns and COPY them.
6. Report the new offset, the unconsumed remainder and the chunk's log.

States::

    UNINITIALIZED -> DETECTING_FORMAT -> STREAMING -> COMPLETE
                                                   -> TRUNCATED_ERROR  (EOF, remainder left)
                                                   -> STALLED_ERROR    (no progress)

Usage:
    processor = ChunkProcessor(MemorySessionStore(), PsycopgImportTarget(url))
    result = await processor.process(request, body)
"""

import codecs
import logging

from pg_porter.adapters.base import ImportTarget, TargetColumn
from pg_porter.errors import (
    PartialRecordAtEOF,
    RecordApplyError,
    StallDetected,
    ValidationError,
)
from pg_porter.importer.checksum import verify_chunk
from pg_porter.importer.converter import RowConverter
from pg_porter.importer.detect import UTF8_BOM, decompress, detect_format
from pg_porter.importer.log import LogCollector
from pg_porter.importer.mapping import ColumnMapping, build_column_mapping
from pg_porter.importer.models import (
    ChunkRequest,
    ChunkResult,
    ImportFormat,
    ImportSession,
    ImportState,
)
from pg_porter.importer.parsers import make_parser
from pg_porter.importer.sessions import ImportSessionStore

logger = logging.getLogger(__name__)

DEFAULT_STALL_LIMIT = 3


class ChunkProcessor:
    """Apply upload chunks to a target table, one request at a time.

    Args:
        store: Where sessions live between requests.
        target: Table the records are copied into.
        stall_limit: Consecutive no-progress chunks that end a session.
        streaming_logs: Drop ``success`` entries from chunk logs.
    """

    def __init__(
        self,
        store: ImportSessionStore,
        target: ImportTarget,
        stall_limit: int = DEFAULT_STALL_LIMIT,
        streaming_logs: bool = True,
    ):
        self.store = store
        self.target = target
        self.stall_limit = stall_limit
        self.streaming_logs = streaming_logs

    async def process(self, request: ChunkRequest, body: bytes) -> ChunkResult:
        """Process one chunk.

        Args:
            request: Chunk parameters.
            body: Raw request body: the previous remainder followed by new bytes,
                optionally gzip/bzip2 compressed as a whole.

        Returns:
            ``ChunkResult`` with the offset the next chunk starts at.

        Raises:
            ChecksumMismatch: If ``chunk_hash`` does not match (nothing is changed).
            FormatDetectionFailure: If ``format=auto`` cannot tell the format.
            ValidationError: On protocol violations or an unmappable header.
            StallDetected: When the session stops making progress.
        """
        if request.chunk_hash:
            verify_chunk(body, request.chunk_hash)
        payload = decompress(body)

        await self.store.purge_expired()
        session = await self._load_session(request, payload)
        log = LogCollector(streaming=self.streaming_logs)

        text_remainder, pending = await self._consume(session, request, payload, log)
        # The client echoes the text remainder back, so store exactly those bytes
        remainder_text = text_remainder.decode("utf-8", "replace")
        remainder = remainder_text.encode("utf-8")
        offset = request.offset + max(0, len(payload) - request.remainder_len)

        if request.eof:
            if remainder:
                log.error(str(PartialRecordAtEOF(len(remainder))))
                session.state = ImportState.TRUNCATED_ERROR
                logger.warning(
                    "Import session %s ended with %d unparsed bytes",
                    session.session_id,
                    len(remainder),
                )
            else:
                session.state = ImportState.COMPLETE
        elif self._stalled(request, offset, remainder):
            session.stalled_chunks += 1
        else:
            session.stalled_chunks = 0

        session.offset = offset
        session.remainder = remainder
        session.pending = pending
        session.errors += log.error_count
        session.touch()

        if session.stalled_chunks >= self.stall_limit:
            session.state = ImportState.STALLED_ERROR
            await self.store.save(session)
            logger.warning("Import session %s stalled", session.session_id)
            raise StallDetected(session.session_id, session.stalled_chunks)

        await self.store.save(session)
        logger.debug(
            "Session %s: offset=%d remainder_len=%d state=%s",
            session.session_id,
            offset,
            len(remainder),
            session.state.value,
        )
        return ChunkResult(
            offset=offset,
            remainder_len=len(remainder),
            remainder=remainder_text,
            errors=session.errors,
            log_entries=log.entries,
            state=session.state,
        )

    @staticmethod
    def _stalled(request: ChunkRequest, offset: int, remainder: bytes) -> bool:
        return (
            not request.is_reset
            and offset == request.offset
            and len(remainder) >= request.remainder_len
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def _load_session(self, request: ChunkRequest, payload: bytes) -> ImportSession:
        sid = request.import_session_id
        if request.is_reset:
            if request.remainder_len:
                raise ValidationError("remainder_len must be 0 when offset is 0")
            return ImportSession.new(request)

        session = await self.store.get(sid)
        if session is None:
            raise ValidationError(f"Unknown or expired import session: {sid}; restart from offset 0")
        if session.state.terminal:
            raise ValidationError(
                f"Import session {sid} is {session.state.value}; restart from offset 0"
            )
        if (session.schema_name, session.table) != (request.schema_name, request.table):
            raise ValidationError(
                f"Import session {sid} targets {session.schema_name}.{session.table}"
            )
        if request.offset != session.offset:
            raise ValidationError(
                f"Out-of-order chunk: offset={request.offset} expected={session.offset}"
            )
        if request.remainder_len != len(session.remainder) or not payload.startswith(
            session.remainder
        ):
            raise ValidationError(
                f"Chunk does not start with the previous remainder: "
                f"remainder_len={request.remainder_len} expected={len(session.remainder)}"
            )
        return session

    # ------------------------------------------------------------------
    # Parse and apply
    # ------------------------------------------------------------------

    async def _consume(
        self,
        session: ImportSession,
        request: ChunkRequest,
        payload: bytes,
        log: LogCollector,
    ) -> tuple[bytes, bytes]:
        """Apply every complete record in ``payload``.

        Returns:
            ``(remainder, pending)``: the unconsumed whole characters, and a
            trailing incomplete UTF-8 sequence that stays server-side and is
            spliced in ahead of the next chunk's new bytes.
        """
        cut = request.remainder_len
        data = payload[:cut] + session.pending + payload[cut:]
        if request.is_reset:
            data = data.removeprefix(UTF8_BOM)

        decoder = codecs.getincrementaldecoder("utf-8")("surrogateescape")
        text = decoder.decode(data, final=request.eof)
        pending = decoder.getstate()[0]

        if session.format is None:
            fmt = request.format
            if fmt == ImportFormat.AUTO:
                fmt = detect_format(data, final=request.eof)
                if fmt is None:
                    return text.encode("utf-8", "surrogateescape"), pending
                log.info(f"Detected format: {fmt.value}")
            session.format = fmt
            session.state = ImportState.STREAMING

        result = make_parser(session.format, request.use_header).parse(
            text, session, final=request.eof
        )
        for message in result.warnings:
            log.warning(message)
        for message in result.errors:
            log.error(message)

        await self._apply(session, request, result.rows, log)
        return text[result.consumed:].encode("utf-8", "surrogateescape"), pending

    async def _apply(
        self,
        session: ImportSession,
        request: ChunkRequest,
        rows: list[list],
        log: LogCollector,
    ) -> None:
        columns = await self.target.columns(session.schema_name, session.table)
        mapping = self._mapping(session, columns, rows, log)
        if mapping is None:
            return

        qualified = f"{session.schema_name}.{session.table}"
        if request.opt_truncate and qualified not in session.truncated_tables:
            await self.target.truncate(session.schema_name, session.table)
            session.truncated_tables.append(qualified)
            log.truncated(f"Truncated table {qualified}")

        converter = RowConverter(mapping.columns, request.allowed_nulls, request.bytea_encoding)
        converted = []
        for row in rows:
            try:
                converted.append(converter.convert(row))
            except ValidationError as e:
                log.error(f"Record skipped: {e}")
        if not converted:
            return

        try:
            written = await self.target.copy_rows(
                session.schema_name, session.table, mapping.names, converted
            )
        except RecordApplyError as e:
            log.error(str(e))
            logger.warning("COPY into %s failed: %s", qualified, e)
            return
        log.info(f"Chunk inserted rows={written}")

    @staticmethod
    def _mapping(
        session: ImportSession,
        columns: list[TargetColumn],
        rows: list[list],
        log: LogCollector,
    ) -> ColumnMapping | None:
        """Resolve the column mapping once per session and rebuild it from names afterwards."""
        if session.header_validated:
            by_name = {c.name: c for c in columns}
            for name in session.column_mapping:
                if name not in by_name:
                    raise ValidationError(f"Header column not found in table: {name}")
            return ColumnMapping(
                [by_name[name] for name in session.column_mapping], session.serial_omitted
            )

        mapping = build_column_mapping(columns, session.header, rows[0] if rows else None)
        if mapping is None:
            return None

        session.header_validated = True
        session.column_mapping = mapping.names
        session.serial_omitted = mapping.serial_omitted
        if session.header is not None:
            log.info(f"Header mapped to table columns: {', '.join(mapping.names)}")
        elif mapping.serial_omitted:
            log.info(f"Serial column {columns[0].name} omitted; values come from its sequence")
        return mapping
