"""Journal date recognition and normalization.

Journals in the wild use several date shapes. All of them normalize to ISO
``YYYY-MM-DD`` before they reach the semantic model:

- year first: ``2024-01-05``, ``2024/1/5``, ``2024.01.05``
- year last: ``05.01.2024`` (always day first), ``05/01/2024`` and
  ``05-01-2024`` (day or month first depending on the configured order)
- no year: ``01-05`` / ``1/5`` (month first, year from a ``Y`` directive or
  the current year)

Helpers raise ``ValueError`` for text that looks like a date but is not a
valid calendar day; callers in the parser turn that into a warning.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, timedelta

from .config import DateOrder

# Source text for embedding in larger patterns (lexer, position analyzer).
# Longest shapes first so ``05.01.2024`` is not read as ``05.01``.
DATE_PATTERN = (
    r"\d{4}[-/.]\d{1,2}[-/.]\d{1,2}"
    r"|\d{1,2}[-/.]\d{1,2}[-/.]\d{4}"
    r"|\d{1,2}[-/.]\d{1,2}"
)

_YEAR_FIRST_RE = re.compile(r"^(\d{4})([-/.])(\d{1,2})\2(\d{1,2})$")
_YEAR_LAST_RE = re.compile(r"^(\d{1,2})([-/.])(\d{1,2})\2(\d{4})$")
_NO_YEAR_RE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})$")


def _iso(year: int, month: int, day: int, raw: str) -> str:
    try:
        d = date(year, month, day)
    except ValueError as exc:
        raise ValueError(f"invalid date: {raw!r}") from exc
    return d.isoformat()


def normalize_date(
    raw: str,
    *,
    order: DateOrder = "dmy",
    default_year: int | None = None,
) -> str:
    """Return ``raw`` as ``YYYY-MM-DD``.

    Parameters
    ----------
    raw:
        Date text as written in the journal.
    order:
        How to read year-last dates separated by ``/`` or ``-``. Dotted
        year-last dates are always day first. When one component exceeds 12
        the unambiguous reading wins regardless of ``order``.
    default_year:
        Year for dates written without one; defaults to the current year.
    """

    if order not in ("dmy", "mdy"):
        raise ValueError(f"unknown date order: {order!r}")
    s = (raw or "").strip()

    m = _YEAR_FIRST_RE.match(s)
    if m:
        return _iso(int(m.group(1)), int(m.group(3)), int(m.group(4)), raw)

    m = _YEAR_LAST_RE.match(s)
    if m:
        a, sep, b, year = int(m.group(1)), m.group(2), int(m.group(3)), int(m.group(4))
        day_first = sep == "." or order == "dmy"
        if a > 12 >= b:
            day_first = True
        elif b > 12 >= a:
            day_first = False
        day, month = (a, b) if day_first else (b, a)
        return _iso(year, month, day, raw)

    m = _NO_YEAR_RE.match(s)
    if m:
        year = default_year if default_year is not None else date.today().year
        return _iso(year, int(m.group(1)), int(m.group(2)), raw)

    raise ValueError(f"unrecognized date: {raw!r}")


def detect_date_order(samples: Iterable[str]) -> DateOrder | None:
    """Guess whether year-last dates in ``samples`` are day or month first.

    Counts samples whose first or second component can only be a day (>12).
    Returns ``None`` when the samples carry no evidence either way, e.g. only
    ISO dates or only components ≤12.
    """

    day_first = 0
    month_first = 0
    for raw in samples:
        m = _YEAR_LAST_RE.match((raw or "").strip())
        if not m:
            continue
        a, b = int(m.group(1)), int(m.group(3))
        if m.group(2) == ".":
            day_first += 1
        elif a > 12 >= b:
            day_first += 1
        elif b > 12 >= a:
            month_first += 1
    if day_first == month_first:
        return None
    return "dmy" if day_first > month_first else "mdy"


def format_short(d: date) -> str:
    """``MM-DD`` form used when the user is typing a yearless date."""

    return f"{d.month:02d}-{d.day:02d}"


def month_start(d: date, *, months_back: int = 0) -> date:
    y, m = d.year, d.month - months_back
    while m < 1:
        m += 12
        y -= 1
    return date(y, m, 1)


def week_ago(d: date) -> date:
    return d - timedelta(days=7)


__all__ = [
    "DATE_PATTERN",
    "detect_date_order",
    "format_short",
    "month_start",
    "normalize_date",
    "week_ago",
]
