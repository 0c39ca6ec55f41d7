"""
Fixed-width record reader.

Streams raw records out of a binary source in bounded chunks; a file is
never held in memory as a whole.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO, NamedTuple

from opi_loader.config import DEFAULT_CHUNK_SIZE
from opi_loader.core.models.record_layout import RecordLayout
from opi_loader.observability.logger import get_logger

logger = get_logger(__name__)

# Bytes an exporter may leave after the last record (padding, line ends, DOS EOF)
BLANK_BYTES = b" \t\r\n\x00\x1a"


class RawRecord(NamedTuple):
    """One framed record and where it starts in the file."""

    offset: int
    data: bytes
    truncated: bool = False


class FixedWidthReader:
    """
    Frames records according to a layout.

    Framing modes:
    - fixed: records follow each other back to back, record_width bytes each.
      A short final chunk of blank bytes is ignored; any other short chunk is
      yielded as a truncated record.
    - newline: one record per LF-terminated line (a trailing CR is dropped).
      Blank lines are skipped, short lines are padded with spaces, long lines
      are cut to record_width.
    """

    def __init__(self, layout: RecordLayout, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.layout = layout
        self.chunk_size = chunk_size

    def iter_records(self, stream: BinaryIO) -> Iterator[RawRecord]:
        """
        Yield the records of a stream in file order.

        Args:
            stream: Binary stream positioned at the start of the data
        """
        if self.layout.framing == "fixed":
            return self._iter_fixed(stream)
        return self._iter_lines(stream)

    def _iter_fixed(self, stream: BinaryIO) -> Iterator[RawRecord]:
        width = self.layout.record_width
        read_size = max(self.chunk_size // width, 1) * width
        buffer = b""
        offset = 0

        while True:
            chunk = stream.read(read_size)
            if not chunk:
                break
            buffer += chunk

            usable = len(buffer) - len(buffer) % width
            for start in range(0, usable, width):
                yield RawRecord(offset + start, buffer[start:start + width])
            offset += usable
            buffer = buffer[usable:]

        if buffer:
            if buffer.strip(BLANK_BYTES):
                logger.warning(
                    "Trailing partial record",
                    extra={"file_id": self.layout.file_id, "byte_offset": offset, "length": len(buffer)},
                )
                yield RawRecord(offset, buffer, truncated=True)

    def _iter_lines(self, stream: BinaryIO) -> Iterator[RawRecord]:
        width = self.layout.record_width
        # Longest line still framed as a whole: the record plus a CR
        limit = width + 1

        line = bytearray()
        line_start = 0
        position = 0
        # Set once the current line passed the limit; only its first
        # record_width bytes are kept and the rest is skipped up to the LF
        overlong = False
        emitted = False

        while True:
            chunk = stream.read(self.chunk_size)
            if not chunk:
                break

            start = 0
            while True:
                end = chunk.find(b"\n", start)
                stop = len(chunk) if end < 0 else end

                if not overlong:
                    line += chunk[start:stop]
                    if len(line) > limit:
                        overlong = True
                        emitted = bool(line.strip(BLANK_BYTES))
                        del line[width:]
                        if emitted:
                            yield self._cut_line(line_start, line)
                elif not emitted and chunk[start:stop].strip(BLANK_BYTES):
                    emitted = True
                    yield self._cut_line(line_start, line)

                if end < 0:
                    break
                if not overlong:
                    record = self._frame_line(line_start, bytes(line))
                    if record is not None:
                        yield record
                line.clear()
                overlong = emitted = False
                start = end + 1
                line_start = position + start

            position += len(chunk)

        if line and not overlong:
            record = self._frame_line(line_start, bytes(line))
            if record is not None:
                yield record

    def _cut_line(self, offset: int, head: bytearray) -> RawRecord:
        logger.debug(
            "Line longer than record width, extra bytes ignored",
            extra={"file_id": self.layout.file_id, "byte_offset": offset},
        )
        return RawRecord(offset, bytes(head))

    def _frame_line(self, offset: int, line: bytes) -> RawRecord | None:
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line.strip(BLANK_BYTES):
            return None

        width = self.layout.record_width
        if len(line) > width:
            logger.debug(
                "Line longer than record width, extra bytes ignored",
                extra={"file_id": self.layout.file_id, "byte_offset": offset, "length": len(line)},
            )
            line = line[:width]
        return RawRecord(offset, line.ljust(width, b" "))


def open_records(
    path: str | Path,
    layout: RecordLayout,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[RawRecord]:
    """Open a file and stream its records; each call starts a fresh pass."""
    reader = FixedWidthReader(layout, chunk_size)
    with open(path, "rb") as stream:
        yield from reader.iter_records(stream)
