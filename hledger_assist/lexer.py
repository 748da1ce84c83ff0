"""Line-oriented journal lexer.

Each source line is matched against :data:`LINE_RULES`, an ordered table of
``(line kind, compiled pattern)`` pairs; the first rule that matches wins.
Named groups in the winning pattern become tokens through
:data:`GROUP_KINDS`. Amount groups are split further into ``AMOUNT`` and
``COMMODITY`` tokens, and comment/note groups yield ``TAG_KEY``/``TAG_VALUE``
pairs for every ``key:value`` inside them. Supporting a new directive or
amount shape means adding a row to the table.

The lexer never raises on content: a line no rule recognises becomes one
``TEXT`` token, and an amount that cannot be split becomes ``TEXT`` so the
model builder can drop that posting. Every line, blank ones included, ends
with a ``NEWLINE`` token.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from .amounts import COMMODITY_PATTERN, split_amount, split_commodity
from .dates import DATE_PATTERN
from .models import Token, TokenKind


class LineKind(Enum):
    BLANK = "blank"
    COMMENT = "comment"
    TRANSACTION = "transaction"
    DIRECTIVE = "directive"
    POSTING = "posting"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class LineRule:
    kind: LineKind
    pattern: re.Pattern[str]
    # Amount groups of this rule may hold a bare commodity symbol.
    symbol_only_amounts: bool = False


# Account names: runs of non-space characters joined by single spaces. Two
# spaces or a tab end the name.
ACCOUNT_PATTERN = r"[^\s;](?:[^\s;]|[ ](?=[^\s;]))*"
_SEP = r"(?:\t|[ ]{2,})"
_TAIL = r"[ \t]*(?:;(?P<comment>.*))?$"
_DATE = rf"(?:{DATE_PATTERN})"


def _rule(kind: LineKind, pattern: str, *, symbol_only_amounts: bool = False) -> LineRule:
    return LineRule(kind, re.compile(pattern), symbol_only_amounts)


LINE_RULES: tuple[LineRule, ...] = (
    _rule(LineKind.BLANK, r"^[ \t]*$"),
    _rule(LineKind.COMMENT, r"^(?P<indent>[ \t]*)[;#](?P<comment>.*)$"),
    _rule(LineKind.COMMENT, r"^\*(?P<comment>.*)$"),
    _rule(
        LineKind.TRANSACTION,
        rf"^(?P<date>{_DATE})(?:=(?P<date2>{_DATE}))?(?=[ \t;]|$)"
        r"(?:[ \t]+(?P<status>[*!]))?"
        r"(?:[ \t]+(?P<code>\([^)]*\)))?"
        r"(?:[ \t]+(?P<payee>[^;|]*?))?"
        r"(?:[ \t]*\|[ \t]*(?P<note>[^;]*?))?" + _TAIL,
    ),
    _rule(
        LineKind.DIRECTIVE,
        rf"^(?P<directive>account)[ \t]+(?P<account>{ACCOUNT_PATTERN})(?:{_SEP}[^;]*?)?" + _TAIL,
    ),
    _rule(
        LineKind.DIRECTIVE,
        r"^(?P<directive>commodity)[ \t]+(?P<amount>[^;]*?)" + _TAIL,
        symbol_only_amounts=True,
    ),
    _rule(
        LineKind.DIRECTIVE,
        r"^(?P<indent>[ \t]+)(?P<directive>format)[ \t]+(?P<amount>[^;]*?)" + _TAIL,
    ),
    _rule(LineKind.DIRECTIVE, r"^(?P<directive>D)[ \t]+(?P<amount>[^;]*?)" + _TAIL),
    _rule(LineKind.DIRECTIVE, r"^(?P<directive>decimal-mark)[ \t]+(?P<text>\S+)" + _TAIL),
    _rule(LineKind.DIRECTIVE, r"^(?P<directive>include)[ \t]+(?P<text>[^;]*?)" + _TAIL),
    _rule(
        LineKind.DIRECTIVE,
        rf"^(?P<directive>P)[ \t]+(?P<date>{_DATE})(?:[ \t]+\d{{1,2}}:\d{{2}}(?::\d{{2}})?)?"
        rf"[ \t]+(?P<commodity>{COMMODITY_PATTERN})[ \t]+(?P<amount>[^;]*?)" + _TAIL,
    ),
    _rule(LineKind.DIRECTIVE, r"^(?P<directive>payee)[ \t]+(?P<payee>[^;]*?)" + _TAIL),
    _rule(LineKind.DIRECTIVE, r"^(?P<directive>tag)[ \t]+(?P<tag_key>[^\s;]+)[^;]*?" + _TAIL),
    _rule(
        LineKind.DIRECTIVE,
        r"^(?P<directive>alias)[ \t]+(?P<account>[^=;]*?)[ \t]*(?P<operator>=)"
        r"[ \t]*(?P<account2>[^;]*?)" + _TAIL,
    ),
    _rule(LineKind.DIRECTIVE, r"^(?P<directive>Y|year)[ \t]+(?P<text>\d{4})" + _TAIL),
    _rule(
        LineKind.POSTING,
        rf"^(?P<indent>[ \t]+)(?:(?P<status>[*!])[ \t]+)?(?P<account>[(\[]?{ACCOUNT_PATTERN})"
        rf"(?:{_SEP}[ \t]*(?P<amount>[^@=;]*?))?"
        r"(?:[ \t]*(?P<operator>@@?)[ \t]*(?P<amount2>[^=;]*?))?"
        r"(?:[ \t]*(?P<operator2>==?\*?)[ \t]*(?P<amount3>[^;]*?))?" + _TAIL,
    ),
    _rule(LineKind.UNKNOWN, r"^(?P<text>.+)$"),
)

GROUP_KINDS: dict[str, TokenKind] = {
    "indent": TokenKind.INDENT,
    "date": TokenKind.DATE,
    "date2": TokenKind.DATE,
    "status": TokenKind.STATUS,
    "code": TokenKind.CODE,
    "payee": TokenKind.PAYEE,
    "note": TokenKind.NOTE,
    "comment": TokenKind.COMMENT,
    "directive": TokenKind.DIRECTIVE,
    "account": TokenKind.ACCOUNT,
    "account2": TokenKind.ACCOUNT,
    "amount": TokenKind.AMOUNT,
    "amount2": TokenKind.AMOUNT,
    "amount3": TokenKind.AMOUNT,
    "commodity": TokenKind.COMMODITY,
    "tag_key": TokenKind.TAG_KEY,
    "operator": TokenKind.OPERATOR,
    "operator2": TokenKind.OPERATOR,
    "text": TokenKind.TEXT,
}

# ``key:value`` inside comments and notes. A key starts with a letter and
# must sit at the start or after a comma/whitespace; the value runs to the
# next comma.
TAG_RE = re.compile(r"(?:^|(?<=[,\s]))(?P<key>[^\W\d][\w-]*):(?P<value>[^,]*)")


def match_line(line: str) -> tuple[LineRule, re.Match[str]]:
    """Return the first rule matching ``line`` and its match object."""

    for rule in LINE_RULES:
        m = rule.pattern.match(line)
        if m:
            return rule, m
    # The UNKNOWN rule matches any non-empty line and BLANK matches the rest.
    raise AssertionError("unreachable: line rules are exhaustive")


# ---------------------------------------------------------------------------
# Sub-tokenizers
# ---------------------------------------------------------------------------


def _amount_tokens(raw: str, line: int, col: int, *, symbol_only_ok: bool) -> Iterator[Token]:
    stripped = raw.strip()
    if not stripped:
        return
    lead = len(raw) - len(raw.lstrip())
    parts = split_amount(raw)
    if parts is None:
        if symbol_only_ok and split_commodity(raw) is not None:
            yield Token(TokenKind.COMMODITY, stripped, line, col + lead)
        else:
            yield Token(TokenKind.TEXT, stripped, line, col + lead)
        return
    pieces = [(parts.start, Token(TokenKind.AMOUNT, parts.quantity, line, col + parts.start))]
    if parts.commodity_span is not None:
        s, e = parts.commodity_span
        pieces.append((s, Token(TokenKind.COMMODITY, raw[s:e], line, col + s)))
    pieces.sort(key=lambda p: p[0])
    for _, tok in pieces:
        yield tok


def _tagged_text_tokens(kind: TokenKind, raw: str, line: int, col: int) -> Iterator[Token]:
    lead = len(raw) - len(raw.lstrip())
    yield Token(kind, raw.strip(), line, col + lead)
    for m in TAG_RE.finditer(raw):
        yield Token(TokenKind.TAG_KEY, m.group("key"), line, col + m.start("key"))
        value = m.group("value")
        vlead = len(value) - len(value.lstrip())
        yield Token(TokenKind.TAG_VALUE, value.strip(), line, col + m.start("value") + vlead)


def _line_tokens(text: str, line: int) -> Iterator[Token]:
    rule, m = match_line(text)
    if rule.kind is not LineKind.BLANK:
        spans = sorted(
            (m.start(name), name)
            for name, value in m.groupdict().items()
            if value and (value.strip() or name == "indent") or (value is not None and name == "comment")
        )
        for start, name in spans:
            kind = GROUP_KINDS[name]
            value = m.group(name)
            if kind is TokenKind.AMOUNT:
                yield from _amount_tokens(
                    value, line, start, symbol_only_ok=rule.symbol_only_amounts
                )
            elif kind in (TokenKind.COMMENT, TokenKind.NOTE):
                yield from _tagged_text_tokens(kind, value, line, start)
            elif kind is TokenKind.INDENT:
                yield Token(kind, value, line, start)
            else:
                lead = len(value) - len(value.lstrip())
                yield Token(kind, value.strip(), line, start + lead)
    yield Token(TokenKind.NEWLINE, "\n", line, len(text))


def _split_lines(text: str) -> Iterator[str]:
    if not text:
        return
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    for raw in lines:
        yield raw.rstrip("\r")


def tokenize_lines(lines: Iterable[str], first_line: int = 0) -> Iterator[Token]:
    """Lex already-split lines; ``first_line`` numbers the first one."""

    for offset, text in enumerate(lines):
        yield from _line_tokens(text, first_line + offset)


class TokenStream:
    """Lazy, restartable token sequence over one text.

    Every iteration re-lexes from the first line, so iterating twice yields
    equal tokens and nothing is cached between passes.
    """

    __slots__ = ("_text",)

    def __init__(self, text: str) -> None:
        self._text = text

    @property
    def text(self) -> str:
        return self._text

    def __iter__(self) -> Iterator[Token]:
        return tokenize_lines(_split_lines(self._text))

    def lines(self) -> Iterator[str]:
        return _split_lines(self._text)


def tokenize(text: str) -> TokenStream:
    return TokenStream(text)


__all__ = [
    "ACCOUNT_PATTERN",
    "GROUP_KINDS",
    "LINE_RULES",
    "LineKind",
    "LineRule",
    "TAG_RE",
    "TokenStream",
    "match_line",
    "tokenize",
    "tokenize_lines",
]
