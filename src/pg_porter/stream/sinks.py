"""Output sinks: plain, gzip, bzip2 and zip framing for dump output.

A sink wraps a caller-owned binary file object (a file, a spooled temp
file, a response body). ``begin()`` opens the compression filter and returns
the framing the caller should advertise; ``finish()`` closes the filter
(and for zip, writes the archive's central directory) without closing the
caller's file object.

Usage:
    with open("dump.sql.gz", "wb") as fh:
        sink = open_sink("gzip", fh)
        framing = sink.begin("dump.sql")
        try:
            sink.write("SELECT 1;\\n")
        finally:
            sink.finish()
"""

import bz2
import gzip
import zipfile
from dataclasses import dataclass
from typing import BinaryIO


@dataclass(frozen=True)
class SinkFraming:
    """What a response or file should advertise for a sink's output."""

    content_type: str
    filename: str

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'


class OutputSink:
    """Uncompressed output. Base class for the compressing strategies."""

    name = "plain"
    content_type = "application/octet-stream"
    extension = ""

    def __init__(self, fileobj: BinaryIO, encoding: str = "utf-8"):
        self._fileobj = fileobj
        self._encoding = encoding
        self._stream: BinaryIO | None = None
        self._finished = False
        self.bytes_written = 0

    def begin(self, filename: str, content_type: str | None = None) -> SinkFraming:
        """Open the filtered stream and return the output framing.

        ``content_type`` describes the uncompressed payload; it is used only
        by the plain sink, compressing sinks report their archive type.
        """
        if self._stream is not None:
            raise RuntimeError(f"{self.name} sink already started")
        self._stream = self._open_stream(filename)
        if content_type is None or self.extension:
            content_type = self.content_type
        return SinkFraming(content_type, filename + self.extension)

    def write(self, text: str) -> None:
        if self._stream is None:
            raise RuntimeError(f"{self.name} sink not started; call begin() first")
        data = text.encode(self._encoding)
        self._stream.write(data)
        self.bytes_written += len(data)

    def finish(self) -> None:
        """Flush and close the filter. Runs once; later calls are no-ops."""
        if self._finished or self._stream is None:
            self._finished = True
            return
        self._finished = True
        try:
            self._close_stream()
        finally:
            self._stream = None
            self._fileobj.flush()

    def _open_stream(self, filename: str) -> BinaryIO:
        return self._fileobj

    def _close_stream(self) -> None:
        assert self._stream is not None
        self._stream.flush()


class GzipSink(OutputSink):
    name = "gzip"
    content_type = "application/gzip"
    extension = ".gz"

    def _open_stream(self, filename: str) -> BinaryIO:
        return gzip.GzipFile(filename=filename, mode="wb", fileobj=self._fileobj)

    def _close_stream(self) -> None:
        assert self._stream is not None
        self._stream.close()


class Bzip2Sink(OutputSink):
    name = "bzip2"
    content_type = "application/x-bzip2"
    extension = ".bz2"

    def _open_stream(self, filename: str) -> BinaryIO:
        return bz2.BZ2File(self._fileobj, mode="wb")

    def _close_stream(self) -> None:
        assert self._stream is not None
        self._stream.close()


class ZipSink(OutputSink):
    """Single-entry zip archive; the entry is named after ``filename``."""

    name = "zip"
    content_type = "application/zip"
    extension = ".zip"

    def __init__(self, fileobj: BinaryIO, encoding: str = "utf-8"):
        super().__init__(fileobj, encoding)
        self._archive: zipfile.ZipFile | None = None

    def _open_stream(self, filename: str) -> BinaryIO:
        self._archive = zipfile.ZipFile(self._fileobj, mode="w", compression=zipfile.ZIP_DEFLATED)
        return self._archive.open(filename, mode="w", force_zip64=True)

    def _close_stream(self) -> None:
        assert self._stream is not None and self._archive is not None
        try:
            self._stream.close()
        finally:
            self._archive.close()
            self._archive = None


SINKS: dict[str, type[OutputSink]] = {
    "plain": OutputSink,
    "none": OutputSink,
    "gzip": GzipSink,
    "bzip2": Bzip2Sink,
    "zip": ZipSink,
}


def open_sink(kind: str, fileobj: BinaryIO) -> OutputSink:
    """Return the sink strategy named ``kind`` writing into ``fileobj``.

    Raises:
        ValueError: If ``kind`` is not a known strategy.
    """
    try:
        return SINKS[kind](fileobj)
    except KeyError:
        raise ValueError(
            f"Unknown compression '{kind}'. Available: {', '.join(sorted(SINKS))}"
        ) from None
