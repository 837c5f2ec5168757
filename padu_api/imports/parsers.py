"""CSV parsing using pandas chunked reads."""

from __future__ import annotations

import codecs
import itertools
import logging
import os
import re
from dataclasses import dataclass
from io import BytesIO
from typing import IO, Callable, Iterator, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)

CSVSource = Union[bytes, str, os.PathLike, IO[bytes]]
ProgressCallback = Callable[[int, int], None]

UTF8 = "utf-8-sig"
LATIN1 = "latin-1"
ENCODING_CHECK_BLOCK = 1024 * 1024

FIELD_COUNT_ERROR = re.compile(r"Expected (\d+) fields in line (\d+), saw (\d+)")


class MalformedInput(Exception):
    """The file cannot be read as a CSV with a header and at least one data row."""


class FileTooLarge(Exception):
    """The file exceeds the configured upload ceiling."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"File size {size} bytes exceeds maximum of {limit / (1024 * 1024):.0f}MB"
        )


@dataclass(frozen=True)
class ParsedRow:
    """One data row: 1-based position (header excluded) and header-keyed values."""

    row_number: int
    values: dict[str, str]

    def get(self, header: Optional[str], default: str = "") -> str:
        if header is None:
            return default
        return self.values.get(header, default)

    def as_list(self, headers: list[str]) -> list[str]:
        return [self.values.get(header, "") for header in headers]


@dataclass
class ParsedFile:
    """Headers plus a lazy row sequence."""

    headers: list[str]
    rows: Iterator[ParsedRow]
    total_bytes: int


def check_upload(filename: str, size: int, max_bytes: int) -> None:
    """Reject non-CSV names and oversized files before reading anything.

    Raises:
        MalformedInput: extension is not ``.csv``
        FileTooLarge: ``size`` is above ``max_bytes``
    """
    if not filename.lower().endswith(".csv"):
        raise MalformedInput(f"Unsupported file type: {filename} (expected .csv)")
    if size > max_bytes:
        raise FileTooLarge(size, max_bytes)


def source_size(source: CSVSource) -> int:
    """Size in bytes of a CSV source without reading it into memory."""
    if isinstance(source, (bytes, bytearray)):
        return len(source)
    if isinstance(source, (str, os.PathLike)):
        return os.path.getsize(source)
    if source.seekable():
        position = source.tell()
        size = source.seek(0, os.SEEK_END)
        source.seek(position)
        return size - position
    return 0


def _iter_blocks(source: CSVSource) -> Iterator[bytes]:
    if isinstance(source, (bytes, bytearray)):
        yield bytes(source)
        return
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as fh:
            for block in iter(lambda: fh.read(ENCODING_CHECK_BLOCK), b""):
                yield block
        return
    position = source.tell()
    try:
        for block in iter(lambda: source.read(ENCODING_CHECK_BLOCK), b""):
            yield block
    finally:
        source.seek(position)


def detect_encoding(source: CSVSource) -> str:
    """``utf-8-sig`` when the whole source is valid UTF-8, otherwise ``latin-1``.

    Spreadsheet exports on Windows are often Latin-1; every byte sequence is
    valid Latin-1, so the fallback never fails to decode.
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        for block in _iter_blocks(source):
            decoder.decode(block)
        decoder.decode(b"", final=True)
    except UnicodeDecodeError:
        return LATIN1
    return UTF8


def header_names(values) -> list[str]:
    """Clean header cells the way pandas names columns (blank and duplicate names)."""
    headers: list[str] = []
    seen: dict[str, int] = {}
    for index, value in enumerate(values):
        name = str(value).strip() or f"Unnamed: {index}"
        count = seen.get(name, 0)
        seen[name] = count + 1
        headers.append(f"{name}.{count}" if count else name)
    return headers


def describe_parser_error(error: Exception) -> str:
    """Readable message for a pandas tokenizer error."""
    match = FIELD_COUNT_ERROR.search(str(error))
    if match:
        expected, line, saw = match.groups()
        return f"Line {line} has {saw} fields but the header has {expected}"
    return f"Malformed CSV: {error}"


class CSVParser:
    """CSV parser using pandas chunksize for memory efficiency.

    The header line is read as an ordinary row so that every data line,
    including the first, is held to the header's field count: a line with
    more fields than the header makes the whole file malformed, reported
    with its line number. Every value is read as a string; pandas' NA
    detection is disabled so an empty cell stays ``""``. Quoted fields may
    contain delimiters and line breaks. Rows whose cells are all blank are
    skipped and do not consume a row number.
    """

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        chunk_size: int = 1000,
        progress_every: int = 1000,
    ):
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size
        self.progress_every = progress_every

    def _open(self, source: CSVSource):
        if isinstance(source, (bytes, bytearray)):
            return BytesIO(bytes(source))
        return source

    def _read_csv(self, source: CSVSource, encoding: str, **kwargs):
        return pd.read_csv(
            self._open(source),
            header=None,  # Header is row 0 and sets the field count
            dtype=str,  # Keep everything as string for import
            keep_default_na=False,  # Don't treat "NA", "null", ... as missing
            na_values=[],
            skip_blank_lines=True,
            index_col=False,
            encoding=encoding,
            encoding_errors="replace",
            **kwargs,
        )

    def _check_size(self, source: CSVSource) -> int:
        size = source_size(source)
        if self.max_bytes is not None and size > self.max_bytes:
            raise FileTooLarge(size, self.max_bytes)
        return size

    def parse_headers(self, source: CSVSource, encoding: Optional[str] = None) -> list[str]:
        """Parse CSV headers."""
        encoding = encoding or detect_encoding(source)
        try:
            df = self._read_csv(source, encoding, nrows=1)
        except pd.errors.EmptyDataError as e:
            raise MalformedInput("File is empty") from e
        except pd.errors.ParserError as e:
            raise MalformedInput(describe_parser_error(e)) from e
        if df.empty:
            raise MalformedInput("File is empty")
        return header_names(df.fillna("").iloc[0].tolist())

    def iter_rows(
        self,
        source: CSVSource,
        on_progress: Optional[ProgressCallback] = None,
        total_bytes: int = 0,
    ) -> Iterator[ParsedRow]:
        """
        Stream rows chunk by chunk.

        Args:
            source: CSV bytes, path or binary file object
            on_progress: Called as ``(rows_parsed, total_bytes)`` every
                ``progress_every`` rows and once at the end
            total_bytes: Size reported to ``on_progress``

        Yields:
            ParsedRow with 1-based ``row_number``

        Raises:
            MalformedInput: unterminated quotes or a line with more fields
                than the header
        """
        if not isinstance(source, (bytes, bytearray, str, os.PathLike)) and not source.seekable():
            source = source.read()
        encoding = detect_encoding(source)
        if encoding == LATIN1:
            logger.info("CSV is not valid UTF-8, reading it as Latin-1")

        headers: Optional[list[str]] = None
        row_number = 0
        try:
            with self._read_csv(source, encoding, chunksize=self.chunk_size) as reader:
                for chunk in reader:
                    chunk = chunk.fillna("")  # Short rows pad with NaN
                    for values in chunk.itertuples(index=False, name=None):
                        if headers is None:
                            headers = header_names(values)
                            continue
                        cleaned = {
                            header: str(value).strip()
                            for header, value in zip(headers, values)
                        }
                        if not any(cleaned.values()):
                            continue
                        row_number += 1
                        yield ParsedRow(row_number=row_number, values=cleaned)
                        if on_progress and row_number % self.progress_every == 0:
                            on_progress(row_number, total_bytes)
        except pd.errors.EmptyDataError as e:
            raise MalformedInput("File is empty") from e
        except pd.errors.ParserError as e:
            raise MalformedInput(describe_parser_error(e)) from e

        if on_progress:
            on_progress(row_number, total_bytes)

    def parse(
        self,
        source: CSVSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ParsedFile:
        """
        Parse headers and return a lazy row sequence.

        The first data row is read eagerly so that a file with only a header
        fails here rather than mid-iteration.

        Raises:
            FileTooLarge: source is above ``max_bytes``
            MalformedInput: unreadable file, or fewer than two lines
        """
        total_bytes = self._check_size(source)
        if isinstance(source, (bytes, bytearray, str, os.PathLike)):
            data = source
        elif source.seekable():
            data = source
        else:
            # Non-seekable streams can only be consumed once
            data = source.read()

        if isinstance(data, (bytes, bytearray, str, os.PathLike)):
            headers = self.parse_headers(data)
        else:
            position = data.tell()
            headers = self.parse_headers(data)
            data.seek(position)

        rows = self.iter_rows(data, on_progress=on_progress, total_bytes=total_bytes)
        first = next(rows, None)
        if first is None:
            raise MalformedInput("CSV must contain a header row and at least one data row")

        logger.debug(f"Parsed CSV header with {len(headers)} columns")
        return ParsedFile(
            headers=headers,
            rows=itertools.chain([first], rows),
            total_bytes=total_bytes,
        )
