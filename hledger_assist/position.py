"""Cursor-position classification for completion.

``classify(line, column)`` looks only at the text left of the cursor and
returns one :class:`LineContext`. Rules run in a fixed priority order and the
first match wins; anything unrecognised is ``FORBIDDEN`` so the editor offers
nothing rather than something wrong:

1. ``IN_TAG_VALUE``: inside a comment, after ``key:`` and before the next
   comma/semicolon.
2. ``IN_COMMENT``: inside a comment (after ``;`` or ``#``).
3. ``FORBIDDEN``: after a posting amount followed by two or more spaces
   (the column where inline comments get aligned).
4. ``AFTER_AMOUNT``: after a posting amount and exactly one space, possibly
   with a partly typed commodity.
5. ``IN_POSTING``: indented line, cursor before any amount.
6. ``AFTER_DATE``: a full date, optional status/code, whitespace, payee.
7. ``LINE_START``: column 0, nothing typed yet, or a partial date.

Evaluation is a pure function of its arguments; nothing is remembered
between keystrokes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .amounts import COMMODITY_PATTERN, QUANTITY_PATTERN
from .dates import DATE_PATTERN


class LineContext(Enum):
    LINE_START = "line_start"
    AFTER_DATE = "after_date"
    IN_POSTING = "in_posting"
    AFTER_AMOUNT = "after_amount"
    IN_COMMENT = "in_comment"
    IN_TAG_VALUE = "in_tag_value"
    FORBIDDEN = "forbidden"


class CompletionDomain(Enum):
    DATE = "date"
    PAYEE = "payee"
    ACCOUNT = "account"
    COMMODITY = "commodity"
    TAG = "tag"
    TAG_VALUE = "tag_value"


# Every context maps to exactly one domain or to ``None`` (no completions).
CONTEXT_DOMAINS: dict[LineContext, CompletionDomain | None] = {
    LineContext.LINE_START: CompletionDomain.DATE,
    LineContext.AFTER_DATE: CompletionDomain.PAYEE,
    LineContext.IN_POSTING: CompletionDomain.ACCOUNT,
    LineContext.AFTER_AMOUNT: CompletionDomain.COMMODITY,
    LineContext.IN_COMMENT: CompletionDomain.TAG,
    LineContext.IN_TAG_VALUE: CompletionDomain.TAG_VALUE,
    LineContext.FORBIDDEN: None,
}


@dataclass(frozen=True, slots=True)
class PositionInfo:
    context: LineContext
    before: str
    after: str

    @property
    def domain(self) -> CompletionDomain | None:
        return CONTEXT_DOMAINS[self.context]


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_DATE = rf"(?:{DATE_PATTERN})"
_AMOUNT = (
    rf"[-+]?(?:(?:{COMMODITY_PATTERN})[ ]?)?{QUANTITY_PATTERN}(?:[ ]?(?:{COMMODITY_PATTERN}))?"
)

# Last comma/semicolon-separated segment of a comment ends in ``key: value``.
_TAG_VALUE_RE = re.compile(r"^\s*([\w\s-]+):\s*([^,;]*)$")
_INDENTED_RE = re.compile(r"^[ \t]+")
# Indent, optional status, account name (single spaces allowed), separator.
POSTING_RE = re.compile(
    r"^[ \t]+(?:[*!][ \t]+)?(?P<account>[^\s;](?:[^\s;]|[ ](?=[^\s;]))*)(?P<sep>\t[ \t]*|[ ]{2,}[ \t]*)"
)
_FORBIDDEN_RE = re.compile(rf"^{_AMOUNT}(?:[ \t]*@@?[ \t]*{_AMOUNT})?(?:[ \t]*==?\*?[ \t]*{_AMOUNT})?(?:\t|\s{{2,}})")
_AFTER_AMOUNT_RE = re.compile(
    rf"^[-+]?(?:(?:{COMMODITY_PATTERN})[ ]?)?{QUANTITY_PATTERN} (?P<partial>[^\s\d;@=.,+-]*)$"
)
AFTER_DATE_RE = re.compile(
    rf"^{_DATE}(?:={_DATE})?(?:[ \t]+[*!])?(?:[ \t]+\([^)]*\))?[ \t]+(?P<payee>(?![*!]$).*)$"
)
_PARTIAL_DATE_RE = re.compile(r"^\d{1,4}(?:[-/.]\d{0,2}(?:[-/.]\d{0,4})?)?$")
_DATE_WITH_STATUS_RE = re.compile(rf"^{_DATE}[ \t]*[*!]?$")


def _comment_start(before: str) -> int:
    """Index of the first ``;``/``#`` left of the cursor, or ``-1``."""

    idx = [i for i in (before.find(";"), before.find("#")) if i != -1]
    return min(idx) if idx else -1


def _in_tag_value(comment: str) -> bool:
    segment = re.split(r"[,;]", comment)[-1]
    if not segment:
        return False
    return _TAG_VALUE_RE.match(segment) is not None


def _posting_context(before: str) -> LineContext:
    m = POSTING_RE.match(before)
    if m is None:
        # Still typing the account name (or nothing yet).
        return LineContext.IN_POSTING
    rest = before[m.end() :]
    if not rest:
        return LineContext.IN_POSTING
    if _FORBIDDEN_RE.match(rest):
        return LineContext.FORBIDDEN
    if _AFTER_AMOUNT_RE.match(rest):
        return LineContext.AFTER_AMOUNT
    # Cursor inside the amount or after a cost/assertion operator.
    return LineContext.FORBIDDEN


def classify(line: str, column: int) -> LineContext:
    """Classify the editing context at ``column`` of ``line``.

    Raises ``ValueError`` for a negative column. A column past the end of the
    line yields ``FORBIDDEN``.
    """

    if column < 0:
        raise ValueError(f"column must be >= 0, got {column}")
    if column > len(line):
        return LineContext.FORBIDDEN
    before = line[:column]

    start = _comment_start(before)
    if start != -1:
        if _in_tag_value(before[start + 1 :]):
            return LineContext.IN_TAG_VALUE
        return LineContext.IN_COMMENT

    if _INDENTED_RE.match(before):
        return _posting_context(before)

    if not before.strip():
        return LineContext.LINE_START
    if AFTER_DATE_RE.match(before):
        return LineContext.AFTER_DATE
    if _PARTIAL_DATE_RE.match(before) or _DATE_WITH_STATUS_RE.match(before):
        return LineContext.LINE_START
    return LineContext.FORBIDDEN


def analyze(line: str, column: int) -> PositionInfo:
    """``classify`` plus the text on both sides of the cursor."""

    context = classify(line, column)
    if column > len(line):
        return PositionInfo(context, line, "")
    return PositionInfo(context, line[:column], line[column:])


__all__ = [
    "AFTER_DATE_RE",
    "CONTEXT_DOMAINS",
    "POSTING_RE",
    "CompletionDomain",
    "LineContext",
    "PositionInfo",
    "analyze",
    "classify",
]
