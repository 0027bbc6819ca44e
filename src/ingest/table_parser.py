"""
Tolerant parser for header-indexed delimited export files.

Export tools change column order between versions, so every field is looked
up by its (lower-cased) header name, never by position. The header is the
first non-empty line and is read exactly once per export.

Handles encoding detection (UTF-8, UTF-16, Latin-1) and malformed lines
gracefully: a line whose field count differs from the header's is recorded
and skipped, and parsing continues with the next line.
"""
from __future__ import annotations

import codecs
import csv
import re
from dataclasses import dataclass, field
from itertools import chain
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Iterable, Iterator, List, Optional, Union

import chardet

from core.logging import get_logger

from .exceptions import MalformedRowError

__all__ = [
    "ExportDialect",
    "RESULTS_DIALECT",
    "TABLE_DIALECT",
    "ExportRow",
    "TableExport",
    "TableExportParser",
    "decode_hex_field",
    "split_line",
]

LOGGER = get_logger("ingest.table_parser")

_HEX_TOKEN_RE = re.compile(r"[0-9A-Fa-f]+")
_READ_CHUNK = 64 * 1024


@dataclass(frozen=True, slots=True)
class ExportDialect:
    """Field delimiter and whether double-quoted spans are atomic."""

    delimiter: str
    quoted: bool


# Line-oriented results files: tab separated, every tab is a boundary
RESULTS_DIALECT = ExportDialect(delimiter="\t", quoted=False)
# Dumped database tables: comma separated, quoted commas are not boundaries
TABLE_DIALECT = ExportDialect(delimiter=",", quoted=True)


def split_line(line: str, dialect: ExportDialect) -> List[str]:
    """Split one physical line into fields according to the dialect."""
    if not dialect.quoted:
        return line.split(dialect.delimiter)
    return next(csv.reader([line], delimiter=dialect.delimiter, quotechar='"'), [])


def decode_hex_field(value: Optional[str]) -> Optional[str]:
    """
    Decode a space-separated string of hex byte values.

    Only printable characters (code point > 31) are kept. Any token that is
    not a hex number makes the whole field absent.

    Returns:
        Decoded string, or None if a non-hex token was found
    """
    if value is None:
        return None
    chars = []
    for token in value.split(" "):
        if not _HEX_TOKEN_RE.fullmatch(token):
            return None
        code = int(token, 16)
        if code > 31:
            try:
                chars.append(chr(code))
            except (ValueError, OverflowError):
                return None
    return "".join(chars)


@dataclass(frozen=True)
class ExportRow:
    """One data line of an export, keyed by lower-cased column name."""

    source: str
    line_number: int
    values: Dict[str, str] = field(default_factory=dict)

    def get(self, column: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(column, default)

    def __getitem__(self, column: str) -> str:
        return self.values[column]

    def __contains__(self, column: object) -> bool:
        return column in self.values

    def decoded(self, column: str) -> Optional[str]:
        """Return the hex-decoded value of a column, or None when absent or not hex."""
        value = self.values.get(column)
        return decode_hex_field(value.strip() if value is not None else None)


class TableExport:
    """
    Lazy, one-shot sequence of rows from a single export.

    The header is consumed on construction. Iterating yields ExportRow values;
    malformed lines are collected on ``malformed``. When ``is_cancelled``
    returns True the sequence simply ends (``cancelled`` is set).
    """

    def __init__(
        self,
        lines: Iterable[str],
        dialect: ExportDialect,
        source: str,
        *,
        is_cancelled: Optional[Callable[[], bool]] = None,
        on_malformed: Optional[Callable[[MalformedRowError], None]] = None,
        closer: Optional[Callable[[], None]] = None,
    ):
        self.source = source
        self.dialect = dialect
        self.malformed: List[MalformedRowError] = []
        self.rows_read = 0
        self.cancelled = False
        self._lines = enumerate(lines, start=1)
        self._is_cancelled = is_cancelled or (lambda: False)
        self._on_malformed = on_malformed
        self._closer = closer
        self.header: List[str] = []
        self.columns: Dict[str, int] = {}
        self._read_header()
        self._rows = self._iter_rows()

    def _read_header(self) -> None:
        for _line_number, line in self._lines:
            if not line.strip():
                continue
            self.header = [name.strip().lower() for name in split_line(line.lstrip("\ufeff"), self.dialect)]
            for index, name in enumerate(self.header):
                # First occurrence wins for duplicated column names
                self.columns.setdefault(name, index)
            LOGGER.debug("%s header: %s", self.source, self.header)
            return
        LOGGER.info("%s is empty (no header line)", self.source)

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def missing_columns(self, required: Iterable[str]) -> List[str]:
        return [name for name in required if name not in self.columns]

    def _iter_rows(self) -> Iterator[ExportRow]:
        expected = len(self.header)
        try:
            if not expected:
                return
            for line_number, line in self._lines:
                if self._is_cancelled():
                    self.cancelled = True
                    LOGGER.info("Parsing of %s cancelled after %d row(s)", self.source, self.rows_read)
                    return
                if not line.strip():
                    continue
                fields = split_line(line, self.dialect)
                if len(fields) != expected:
                    error = MalformedRowError(self.source, line_number, len(fields), expected)
                    LOGGER.warning("%s", error)
                    self.malformed.append(error)
                    if self._on_malformed is not None:
                        self._on_malformed(error)
                    continue
                self.rows_read += 1
                yield ExportRow(
                    source=self.source,
                    line_number=line_number,
                    values={name: fields[index] for name, index in self.columns.items()},
                )
        finally:
            self.close()

    def __iter__(self) -> Iterator[ExportRow]:
        return self

    def __next__(self) -> ExportRow:
        return next(self._rows)

    def close(self) -> None:
        if self._closer is not None:
            closer, self._closer = self._closer, None
            closer()

    def __enter__(self) -> "TableExport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._rows.close()
        self.close()


class TableExportParser:
    """Opens delimited exports from paths or byte streams."""

    SAMPLE_SIZE = 100000  # bytes inspected for encoding detection

    def __init__(self, dialect: ExportDialect = TABLE_DIALECT, encoding: Optional[str] = None):
        self.dialect = dialect
        self.encoding = encoding

    def detect_encoding(self, raw_data: bytes) -> str:
        """
        Auto-detect the encoding of an export sample using chardet.

        Returns:
            Detected encoding (e.g., 'utf-8', 'utf-16-le', 'latin-1')
        """
        if not raw_data:
            return "utf-8"
        if raw_data[:3] == codecs.BOM_UTF8:
            return "utf-8-sig"
        result = chardet.detect(raw_data)
        encoding = result["encoding"]
        LOGGER.debug("Detected encoding: %s (confidence: %.2f)", encoding, result["confidence"] or 0.0)

        if encoding and encoding.lower().startswith("utf-16"):
            # Python needs the byte order when the BOM is handled explicitly
            if raw_data[:2] == b"\xff\xfe":
                return "utf-16-le"
            elif raw_data[:2] == b"\xfe\xff":
                return "utf-16-be"
            return "utf-16"
        if not encoding or encoding.lower() == "ascii":
            # ASCII samples may be followed by UTF-8 further down the file
            return "utf-8"
        return encoding

    def open(
        self,
        source: Union[Path, str, BinaryIO],
        *,
        name: Optional[str] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
        on_malformed: Optional[Callable[[MalformedRowError], None]] = None,
    ) -> TableExport:
        """
        Open an export for lazy row iteration.

        Args:
            source: Path to the export, or a binary stream positioned at its start
            name: Display name used in messages (defaults to the file name)
            is_cancelled: Polled before each row; True ends the sequence early
            on_malformed: Called for each malformed line

        Returns:
            TableExport with the header already read
        """
        closer = None
        if isinstance(source, (str, Path)):
            path = Path(source)
            stream: BinaryIO = path.open("rb")
            closer = stream.close
            name = name or path.name
        else:
            stream = source
            name = name or getattr(source, "name", "<stream>")

        try:
            sample = stream.read(self.SAMPLE_SIZE)
            encoding = self.encoding or self.detect_encoding(sample)
            chunks = chain([sample], iter(lambda: stream.read(_READ_CHUNK), b""))
            lines = _iter_text_lines(codecs.iterdecode(chunks, encoding, errors="replace"))
            return TableExport(
                lines,
                self.dialect,
                str(name),
                is_cancelled=is_cancelled,
                on_malformed=on_malformed,
                closer=closer,
            )
        except Exception:
            if closer is not None:
                closer()
            raise


def _iter_text_lines(chunks: Iterable[str]) -> Iterator[str]:
    """Split decoded text chunks into physical lines without line terminators."""
    pending = ""
    for chunk in chunks:
        pending += chunk
        lines = pending.split("\n")
        pending = lines.pop()
        for line in lines:
            yield line.rstrip("\r")
    if pending:
        yield pending.rstrip("\r")
