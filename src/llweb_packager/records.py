from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import ParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFile:
    """An uploaded buffer plus the filename it arrived with (for logs only)."""

    filename: str
    data: bytes


@dataclass(frozen=True)
class BindingRecord:
    name: str
    address: str
    format: str = ""


def _normalize_headers(raw_headers: Sequence[str]) -> list[str]:
    return [h.strip().lower() for h in raw_headers]


def _pick_column(
    headers: Sequence[str],
    *,
    exact: str,
    contains: tuple[str, ...] = (),
) -> int | None:
    """Index of the ``exact`` header, else the first header containing a hint."""

    if exact in headers:
        return headers.index(exact)
    for i, header in enumerate(headers):
        if any(hint in header for hint in contains):
            return i
    return None


def _cell(row: Sequence[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    return (row[index] or "").strip()


def parse_record_source(source: SourceFile) -> list[BindingRecord]:
    """Parse one CSV buffer into binding records.

    Rules:
    - The first non-empty row is the header; headers are trimmed and matched
      case-insensitively.
    - ``address`` falls back to any header containing "address" or
      "variable"; ``format`` falls back to any header containing "format".
    - A row is dropped only when both its name and its address are empty.

    Raises ParseError on undecodable bytes or malformed quoting.
    """

    try:
        text = source.data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(source.filename, f"not valid UTF-8 ({e.reason})") from e

    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    records: list[BindingRecord] = []
    headers: list[str] | None = None
    name_col = address_col = format_col = None

    try:
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue

            if headers is None:
                headers = _normalize_headers(row)
                name_col = _pick_column(headers, exact="name")
                address_col = _pick_column(
                    headers, exact="address", contains=("address", "variable")
                )
                format_col = _pick_column(headers, exact="format", contains=("format",))
                logger.debug(
                    "CSV %s columns: %s", source.filename, ", ".join(headers)
                )
                continue

            name = _cell(row, name_col)
            address = _cell(row, address_col)
            if not name and not address:
                logger.debug(
                    "CSV %s line %d: skipping, no name or address",
                    source.filename,
                    reader.line_num,
                )
                continue

            records.append(
                BindingRecord(name=name, address=address, format=_cell(row, format_col))
            )
    except csv.Error as e:
        raise ParseError(
            source.filename, f"line {reader.line_num}: {e}"
        ) from e

    return records


def parse_record_sources(
    sources: Iterable[SourceFile],
    *,
    strict: bool = False,
) -> list[BindingRecord]:
    """Parse every source in order; a bad source is skipped unless ``strict``."""

    records: list[BindingRecord] = []
    for source in sources:
        try:
            parsed = parse_record_source(source)
        except ParseError as e:
            if strict:
                raise
            logger.warning("Skipping CSV %s: %s", source.filename, e.reason)
            continue
        logger.info("Parsed CSV %s: %d rows", source.filename, len(parsed))
        records.extend(parsed)
    return records


class RecordIndex:
    """Case-insensitive address lookup; the first record wins."""

    def __init__(self, records: Iterable[BindingRecord]) -> None:
        self._by_address: dict[str, BindingRecord] = {}
        for record in records:
            if not record.address:
                continue
            self._by_address.setdefault(record.address.lower(), record)

    def __len__(self) -> int:
        return len(self._by_address)

    def __contains__(self, marker: object) -> bool:
        return isinstance(marker, str) and self.lookup(marker) is not None

    def lookup(self, marker: str | None) -> BindingRecord | None:
        if not marker:
            return None
        return self._by_address.get(marker.lower())
