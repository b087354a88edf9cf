"""Utility helpers for the availability engine."""
from __future__ import annotations

import unicodedata
from datetime import date, datetime
from hashlib import sha256
from typing import Iterable, Iterator, List, Tuple


_DATE_FORMATS = [
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
]


class ValidationError(ValueError):
    """Raised when an incident or a window violates its contract."""


class PipelineError(RuntimeError):
    """Raised when the pipeline encounters a fatal error."""


def parse_date(value: str) -> date:
    value = (value or "").strip()
    if not value:
        raise ValueError("blank date")
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"could not parse date '{value}'")


def normalize_text(value: str | None) -> str:
    """Trim, strip accents and casefold, for matching French labels."""
    text = unicodedata.normalize("NFKD", (value or "").strip())
    return "".join(ch for ch in text if not unicodedata.combining(ch)).casefold()


def parse_optional_date(value: str | None) -> date | None:
    if value is None or not value.strip():
        return None
    return parse_date(value)


def check_window(window_start: date, window_end: date) -> None:
    if window_end < window_start:
        raise ValidationError(
            f"window end {window_end.isoformat()} precedes window start {window_start.isoformat()}"
        )


def year_windows(window_start: date, window_end: date) -> List[Tuple[int, date, date]]:
    """Split ``[window_start, window_end]`` into calendar-year pieces, ascending."""
    check_window(window_start, window_end)
    pieces: List[Tuple[int, date, date]] = []
    for year in range(window_start.year, window_end.year + 1):
        start = max(window_start, date(year, 1, 1))
        end = min(window_end, date(year, 12, 31))
        pieces.append((year, start, end))
    return pieces


def add_months(value: date, months: int) -> date:
    """Shift the first day of ``value``'s month by ``months`` months."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_starts(window_start: date, window_end: date) -> Iterator[date]:
    current = date(window_start.year, window_start.month, 1)
    if current < window_start:
        current = add_months(current, 1)
    while current <= window_end:
        yield current
        current = add_months(current, 1)


def sha256_hexdigest(rows: Iterable[str]) -> str:
    digest = sha256()
    for row in rows:
        digest.update(row.encode("utf-8"))
    return digest.hexdigest()
