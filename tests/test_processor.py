"""Tests for ChunkProcessor: the resumable chunk import state machine."""

import gzip

import pytest
from conftest import FakeImportTarget, accounts_columns

from pg_porter.errors import ChecksumMismatch, StallDetected, ValidationError
from pg_porter.importer.checksum import fnv1a64
from pg_porter.importer.log import LogCollector
from pg_porter.importer.models import ChunkRequest, ImportState
from pg_porter.importer.processor import ChunkProcessor
from pg_porter.importer.sessions import MemorySessionStore


def _request(**kwargs) -> ChunkRequest:
    params = {
        "import_session_id": "s1",
        "schema": "public",
        "table": "accounts",
        "format": "csv",
    }
    params.update(kwargs)
    return ChunkRequest(**params)


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def processor(store, target: FakeImportTarget) -> ChunkProcessor:
    return ChunkProcessor(store, target)


def _messages(result, entry_type: str) -> list[str]:
    return [e.message for e in result.log_entries if e.type == entry_type]


# ------------------------------------------------------------------
# Record boundaries across chunks
# ------------------------------------------------------------------


class TestPartialRecords:
    async def test_partial_trailing_line_becomes_remainder(self, processor, target):
        lines = b"".join(b"%d,name%d,e%d@x\n" % (i, i, i) for i in range(1, 11))
        body = lines + b"11,na"

        result = await processor.process(_request(), body)

        assert result.remainder == "11,na"
        assert result.remainder_len == 5
        assert result.offset == len(body)
        assert len(target.rows["public.accounts"]) == 10
        assert result.state == ImportState.STREAMING
        assert _messages(result, "info") == ["Chunk inserted rows=10"]

    async def test_remainder_prepended_to_next_chunk(self, processor, target):
        first = await processor.process(_request(), b"1,ann,a@x\n2,b")
        body = b"2,b" + b"ob,b@x\n"

        second = await processor.process(
            _request(offset=first.offset, remainder_len=first.remainder_len, eof=True), body
        )

        assert second.offset == len(b"1,ann,a@x\n2,bob,b@x\n")
        assert second.remainder_len == 0
        assert second.state == ImportState.COMPLETE
        assert target.rows["public.accounts"] == [["1", "ann", "a@x"], ["2", "bob", "b@x"]]

    async def test_split_multibyte_character(self, processor, target, store):
        data = "1,zoë,z@x\n".encode("utf-8")
        cut = data.index(b"\xc3") + 1
        first = await processor.process(_request(), data[:cut])

        assert first.remainder == "1,zo"
        assert first.remainder_len == 4
        assert first.offset == cut
        assert (await store.get("s1")).pending == b"\xc3"

        echoed = first.remainder.encode("utf-8")
        second = await processor.process(
            _request(offset=first.offset, remainder_len=len(echoed), eof=True),
            echoed + data[cut:],
        )
        assert second.state == ImportState.COMPLETE
        assert second.offset == len(data)
        assert target.rows["public.accounts"] == [["1", "zoë", "z@x"]]

    async def test_echoed_remainder_with_split_character_mid_upload(self, processor, target):
        data = "1,ann,a@x\n2,zoë,z@x\n3,ünal,u@x\n".encode("utf-8")
        cuts = [data.index(b"\xc3") + 1, data.rindex(b"\xc3") + 1, len(data)]
        offset, remainder, start = 0, b"", 0
        for end in cuts:
            result = await processor.process(
                _request(offset=offset, remainder_len=len(remainder), eof=end == len(data)),
                remainder + data[start:end],
            )
            offset, start = result.offset, end
            remainder = result.remainder.encode("utf-8")
            assert result.remainder_len == len(remainder)
            assert "\ufffd" not in result.remainder

        assert result.state == ImportState.COMPLETE
        assert [row[1] for row in target.rows["public.accounts"]] == ["ann", "zoë", "ünal"]

    async def test_json_array_across_chunks(self, processor, target):
        first = await processor.process(
            _request(format="json"), b'[{"name": "ann", "email": "a@x"}, {"name": "b'
        )
        body = b'{"name": "b' + b'ob", "email": "b@x"}]'
        second = await processor.process(
            _request(format="json", offset=first.offset, remainder_len=first.remainder_len, eof=True),
            body,
        )

        assert second.state == ImportState.COMPLETE
        assert target.copies == [
            ("public.accounts", ["name", "email"], 1),
            ("public.accounts", ["name", "email"], 1),
        ]
        assert _messages(first, "info")[0] == "Header mapped to table columns: name, email"


# ------------------------------------------------------------------
# End of file
# ------------------------------------------------------------------


class TestEndOfFile:
    async def test_leftover_bytes_at_eof_truncate_session(self, processor, store):
        result = await processor.process(_request(eof=True), b'1,ann,a@x\n2,"bob')

        assert result.state == ImportState.TRUNCATED_ERROR
        assert result.errors == 1
        assert result.remainder_len == len(b'2,"bob')
        assert _messages(result, "error") == [
            "Unexpected end of file: trailing data not parsed. remainder_len=6"
        ]
        session = await store.get("s1")
        assert session.state == ImportState.TRUNCATED_ERROR

    async def test_terminal_session_rejects_more_chunks(self, processor):
        result = await processor.process(_request(eof=True), b"1,ann,a@x\n")
        assert result.state == ImportState.COMPLETE

        with pytest.raises(ValidationError, match="is complete; restart from offset 0"):
            await processor.process(_request(offset=result.offset), b"2,bob,b@x\n")

    async def test_reset_after_terminal_state(self, processor, target):
        await processor.process(_request(eof=True), b"1,ann,a@x\n")
        result = await processor.process(_request(eof=True), b"2,bob,b@x\n")
        assert result.state == ImportState.COMPLETE
        assert len(target.rows["public.accounts"]) == 2

    async def test_final_line_without_newline(self, processor, target):
        result = await processor.process(_request(eof=True), b"1,ann,a@x")
        assert result.state == ImportState.COMPLETE
        assert target.rows["public.accounts"] == [["1", "ann", "a@x"]]


# ------------------------------------------------------------------
# Stall detection
# ------------------------------------------------------------------


class TestStall:
    async def test_third_chunk_without_progress_raises(self, processor, store):
        stuck = b'1,"abc'
        first = await processor.process(_request(), stuck)
        assert first.offset == 6
        assert first.remainder_len == 6

        repeat = _request(offset=6, remainder_len=6)
        await processor.process(repeat, stuck)
        second = await processor.process(repeat, stuck)
        assert second.state == ImportState.STREAMING

        with pytest.raises(StallDetected, match="stalled: 3 consecutive chunks"):
            await processor.process(repeat, stuck)
        session = await store.get("s1")
        assert session.state == ImportState.STALLED_ERROR

    async def test_progress_resets_stall_count(self, processor, store):
        await processor.process(_request(), b'1,"abc')
        repeat = _request(offset=6, remainder_len=6)
        await processor.process(repeat, b'1,"abc')
        await processor.process(repeat, b'1,"abc')

        await processor.process(repeat, b'1,"abc",e@x\n')
        session = await store.get("s1")
        assert session.stalled_chunks == 0

    async def test_custom_stall_limit(self, store, target):
        processor = ChunkProcessor(store, target, stall_limit=1)
        await processor.process(_request(), b'1,"abc')
        with pytest.raises(StallDetected):
            await processor.process(_request(offset=6, remainder_len=6), b'1,"abc')


# ------------------------------------------------------------------
# Protocol violations
# ------------------------------------------------------------------


class TestProtocol:
    async def test_checksum_mismatch_leaves_session_untouched(self, processor, store):
        first = await processor.process(_request(), b"1,ann,a@x\n")
        chunk = b"2,bob,b@x\n"

        with pytest.raises(ChecksumMismatch) as exc_info:
            await processor.process(
                _request(offset=first.offset, chunk_hash="0000000000000000"), chunk
            )
        assert exc_info.value.received == fnv1a64(chunk)
        session = await store.get("s1")
        assert session.offset == first.offset

        retried = await processor.process(
            _request(offset=first.offset, chunk_hash=fnv1a64(chunk)), chunk
        )
        assert retried.offset == first.offset + len(chunk)

    async def test_out_of_order_chunk(self, processor):
        await processor.process(_request(), b"1,ann,a@x\n")
        with pytest.raises(ValidationError, match="Out-of-order chunk: offset=3 expected=10"):
            await processor.process(_request(offset=3), b"x")

    async def test_unknown_session(self, processor):
        with pytest.raises(ValidationError, match="Unknown or expired import session: s1"):
            await processor.process(_request(offset=10), b"1,ann,a@x\n")

    async def test_remainder_on_reset(self, processor):
        with pytest.raises(ValidationError, match="remainder_len must be 0 when offset is 0"):
            await processor.process(_request(remainder_len=3), b"abc")

    async def test_body_must_repeat_remainder(self, processor):
        first = await processor.process(_request(), b"1,ann,a@x\n2,b")
        with pytest.raises(ValidationError, match="does not start with the previous remainder"):
            await processor.process(
                _request(offset=first.offset, remainder_len=3), b"XXXob,b@x\n"
            )

    async def test_each_chunk_touches_session(self, processor, store):
        first = await processor.process(_request(), b"1,ann,a@x\n")
        session = await store.get("s1")
        created = session.created_at
        assert session.updated_at >= created
        await store.save(session.model_copy(update={"updated_at": 0.0}))

        await processor.process(_request(offset=first.offset), b"2,bob,b@x\n")

        session = await store.get("s1")
        assert session.updated_at >= created
        assert session.created_at == created

    async def test_session_bound_to_table(self, processor):
        first = await processor.process(_request(), b"1,ann,a@x\n")
        with pytest.raises(ValidationError, match="targets public.accounts"):
            await processor.process(_request(offset=first.offset, table="orders"), b"")


# ------------------------------------------------------------------
# Options
# ------------------------------------------------------------------


class TestOptions:
    async def test_truncate_happens_once_per_session(self, processor, target):
        target.rows["public.accounts"] = [["0", "old", "o@x"]]
        first = await processor.process(_request(opt_truncate=True), b"1,ann,a@x\n")
        await processor.process(
            _request(offset=first.offset, opt_truncate=True), b"2,bob,b@x\n"
        )

        assert target.truncations == ["public.accounts"]
        assert len(target.rows["public.accounts"]) == 2
        assert _messages(first, "truncated") == ["Truncated table public.accounts"]

    async def test_gzip_body(self, processor, target):
        body = gzip.compress(b"1,ann,a@x\n2,bob,b@x\n")
        result = await processor.process(_request(chunk_hash=fnv1a64(body)), body)
        assert result.offset == len(b"1,ann,a@x\n2,bob,b@x\n")
        assert len(target.rows["public.accounts"]) == 2

    async def test_auto_detect_logged(self, processor):
        result = await processor.process(_request(format="auto"), b"1,ann,a@x\n")
        assert "Detected format: csv" in _messages(result, "info")

    async def test_auto_detect_waits_for_first_line(self, processor, store, target):
        first = await processor.process(_request(format="auto"), b"1,ann")
        assert first.remainder == "1,ann"
        assert first.state == ImportState.DETECTING_FORMAT

        await processor.process(
            _request(format="auto", offset=5, remainder_len=5, eof=True), b"1,ann,a@x\n"
        )
        session = await store.get("s1")
        assert session.format.value == "csv"
        assert target.rows["public.accounts"] == [["1", "ann", "a@x"]]

    async def test_header_maps_columns(self, processor, target):
        result = await processor.process(_request(use_header=True), b"email,name\na@x,ann\n")
        assert target.copies == [("public.accounts", ["email", "name"], 1)]
        assert "Header mapped to table columns: email, name" in _messages(result, "info")

    async def test_unknown_header_column(self, processor):
        with pytest.raises(ValidationError, match="Header column not found in table: phone"):
            await processor.process(_request(use_header=True), b"name,phone\nann,1\n")

    async def test_serial_column_omitted(self, processor, target):
        result = await processor.process(_request(), b"ann,a@x\n")
        assert target.copies == [("public.accounts", ["name", "email"], 1)]
        assert any("Serial column id omitted" in m for m in _messages(result, "info"))

    async def test_null_tokens(self, processor, target):
        await processor.process(_request(allowed_nulls=["NULL", '""']), b"1,NULL,\n")
        assert target.rows["public.accounts"] == [["1", None, None]]

    async def test_bad_record_skipped(self, processor, target):
        result = await processor.process(_request(), b"1,ann,a@x\n2,bob\n")
        assert result.errors == 1
        assert _messages(result, "error") == ["Record skipped: Row has 2 fields, expected 3"]
        assert len(target.rows["public.accounts"]) == 1

    async def test_copy_failure_is_logged(self, processor, target):
        target.fail_copy = "duplicate key value violates unique constraint"
        result = await processor.process(_request(), b"1,ann,a@x\n")

        assert result.errors == 1
        assert result.offset == 10
        assert _messages(result, "error") == ["duplicate key value violates unique constraint"]

    async def test_response_uses_wire_names(self, processor):
        result = await processor.process(_request(), b"1,ann,a@x\n")
        payload = result.model_dump(by_alias=True, mode="json")
        assert set(payload) == {"offset", "remainder_len", "remainder", "errors", "logEntries", "state"}


# ------------------------------------------------------------------
# Determinism
# ------------------------------------------------------------------


class TestDeterminism:
    async def _run(self) -> list[tuple[int, str]]:
        processor = ChunkProcessor(
            MemorySessionStore(), FakeImportTarget({"public.accounts": accounts_columns()})
        )
        progress = []
        offset, remainder = 0, b""
        for piece, eof in ((b"1,ann,a@", False), (b"x\n2,bob", False), (b",b@x\n", True)):
            body = remainder + piece
            result = await processor.process(
                _request(offset=offset, remainder_len=len(remainder), eof=eof), body
            )
            progress.append((result.offset, result.remainder))
            offset = result.offset
            remainder = result.remainder.encode("utf-8")
        return progress

    async def test_same_chunks_same_progress(self):
        first = await self._run()
        assert first == await self._run()
        assert first == [(8, "1,ann,a@"), (15, "2,bob"), (20, "")]


# ------------------------------------------------------------------
# Chunk log
# ------------------------------------------------------------------


class TestLogCollector:
    def test_streaming_drops_success_but_counts_it(self):
        log = LogCollector(streaming=True)
        log.success("row 1")
        log.error("row 2 bad")
        assert [e.type for e in log.entries] == ["error"]
        assert log.counts["success"] == 1
        assert log.error_count == 1

    def test_non_streaming_keeps_everything(self):
        log = LogCollector(streaming=False)
        log.success("row 1")
        log.skipped("row 2")
        assert [e.type for e in log.entries] == ["success", "skipped"]

    def test_cap_keeps_newest_without_losing_counts(self):
        log = LogCollector(max_entries=2)
        for i in range(5):
            log.error(f"e{i}")
        assert [e.message for e in log.entries] == ["e3", "e4"]
        assert log.error_count == 5

    def test_unknown_type(self):
        log = LogCollector()
        with pytest.raises(ValueError, match="Unknown log entry type: fatal"):
            log.append("fatal", "x")
