"""Amount and commodity text helpers.

The parser keeps amounts as the strings the user wrote; nothing here does
arithmetic beyond validating that a quantity is a number under the journal's
decimal-mark rules. Both ``,`` and ``.`` may act as decimal mark or digit
group separator, decided by (in order) an explicit ``decimal-mark``
directive or commodity format, both separators being present (the last one
is the decimal mark), or a separator occurring several times (grouping).
A single lone separator is read as the decimal mark.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from .models import CommodityFormat

# Quoted symbol, or a run of anything that cannot start/continue a number or
# collide with posting syntax (cost, assertion, comment, virtual brackets).
COMMODITY_PATTERN = r'"[^"\n]*"|[^\s\d\-+.,;@=*()\[\]"|\']+'
QUANTITY_PATTERN = r"[-+]?(?:\d[\d.,']*|[.,]\d+)"

_AMOUNT_RE = re.compile(
    rf"^(?P<sign>[-+])?[ ]*"
    rf"(?:(?P<pre>{COMMODITY_PATTERN})(?P<pre_space>[ ]*))?"
    rf"(?P<qty>{QUANTITY_PATTERN})"
    rf"(?:(?P<post_space>[ ]*)(?P<post>{COMMODITY_PATTERN}))?$"
)
_COMMODITY_ONLY_RE = re.compile(rf"^(?:{COMMODITY_PATTERN})$")
_PLAIN_SYMBOL_RE = re.compile(r"^[^\W\d_]+$|^[^\w\s\"]$")

_GROUP_CHARS = frozenset(",.' ")


@dataclass(frozen=True, slots=True)
class AmountParts:
    """An amount split into its textual pieces.

    ``quantity`` carries the sign (``-$5`` becomes ``-5``). ``start``/``end``
    give the quantity span and ``commodity_span`` the symbol span (quotes
    included) within the text handed to :func:`split_amount`.
    """

    quantity: str
    commodity: str | None
    symbol_before: bool
    spaced: bool
    start: int
    end: int
    commodity_span: tuple[int, int] | None = None


def unquote_commodity(symbol: str) -> str:
    s = symbol.strip()
    if len(s) >= 2 and s.startswith('"') and s.endswith('"'):
        return s[1:-1]
    return s


def quote_commodity(symbol: str) -> str:
    """Return ``symbol`` in the form it must take inside a journal."""

    if not symbol or _PLAIN_SYMBOL_RE.match(symbol):
        return symbol
    return f'"{symbol}"'


def split_commodity(text: str) -> str | None:
    """Return the unquoted symbol when ``text`` is a bare commodity symbol."""

    s = text.strip()
    if not s or not _COMMODITY_ONLY_RE.match(s):
        return None
    return unquote_commodity(s)


def split_amount(text: str) -> AmountParts | None:
    """Split ``text`` into quantity and commodity, or ``None`` when malformed.

    Accepts ``100``, ``-100.50``, ``$100``, ``-$1,000.00``, ``$-5``,
    ``100 EUR``, ``1.000,00€`` and ``10 "My Currency"``. A symbol on both
    sides, an unterminated quote or stray characters make the amount
    malformed.
    """

    lead = len(text) - len(text.lstrip())
    s = text.strip()
    m = _AMOUNT_RE.match(s)
    if not m:
        return None
    pre, post = m.group("pre"), m.group("post")
    if pre and post:
        return None
    qty = m.group("qty")
    sign = m.group("sign")
    if sign:
        if qty[0] in "+-":
            return None
        if sign == "-":
            qty = "-" + qty
    start, end = m.span("qty")
    if sign and not pre:
        start = m.start("sign")
    if pre:
        symbol, spaced, span = pre, bool(m.group("pre_space")), m.span("pre")
    elif post:
        symbol, spaced, span = post, bool(m.group("post_space")), m.span("post")
    else:
        symbol, spaced, span = None, False, None
    return AmountParts(
        quantity=qty,
        commodity=unquote_commodity(symbol) if symbol else None,
        symbol_before=bool(pre),
        spaced=spaced,
        start=start + lead,
        end=end + lead,
        commodity_span=(span[0] + lead, span[1] + lead) if span else None,
    )


# ---------------------------------------------------------------------------
# Decimal-mark handling
# ---------------------------------------------------------------------------


def _detect_marks(body: str, decimal_mark: str | None) -> tuple[str | None, str | None]:
    """Return ``(decimal_mark, group_separator)`` as used in ``body``."""

    if decimal_mark is not None:
        groups = [c for c in body if c in _GROUP_CHARS and c != decimal_mark]
        return (decimal_mark if decimal_mark in body else None, groups[0] if groups else None)

    dots, commas = body.count("."), body.count(",")
    apostrophe = "'" if "'" in body else None
    if dots and commas:
        dm = "." if body.rfind(".") > body.rfind(",") else ","
        return dm, ("," if dm == "." else ".")
    if dots > 1:
        return None, "."
    if commas > 1:
        return None, ","
    if dots == 1:
        return ".", apostrophe
    if commas == 1:
        return ",", apostrophe
    return None, apostrophe


def parse_quantity(text: str, *, decimal_mark: str | None = None) -> Decimal:
    """Validate and convert a quantity string (no commodity) to ``Decimal``.

    Raises ``ValueError`` when the text is not a number under the given (or
    inferred) decimal mark, for instance ``1.2.3`` with ``decimal_mark="."``.
    """

    if decimal_mark is not None and decimal_mark not in (".", ","):
        raise ValueError(f"unsupported decimal mark: {decimal_mark!r}")
    s = (text or "").strip()
    if not s:
        raise ValueError("quantity is empty")
    negative = s.startswith("-")
    if s[0] in "+-":
        s = s[1:]
    dm, group = _detect_marks(s, decimal_mark)
    if dm is not None and s.count(dm) > 1:
        raise ValueError(f"invalid quantity: {text!r}")
    body = s
    if group is not None:
        body = body.replace(group, "")
    if dm is not None:
        body = body.replace(dm, ".")
    if any(c in _GROUP_CHARS for c in body.replace(".", "")) or body.count(".") > 1:
        raise ValueError(f"invalid quantity: {text!r}")
    try:
        d = Decimal(body)
    except InvalidOperation as exc:
        raise ValueError(f"invalid quantity: {text!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid quantity: {text!r}")
    return -d if negative else d


def parse_commodity_format(sample: str, *, decimal_mark: str | None = None) -> CommodityFormat | None:
    """Derive a display format from a sample amount such as ``1.000,00 EUR``.

    Returns ``None`` when ``sample`` is not an amount with a commodity (a
    bare ``commodity EUR`` declaration carries no format).
    """

    parts = split_amount(sample)
    if parts is None or parts.commodity is None:
        return None
    body = parts.quantity.lstrip("+-")
    dm, group = _detect_marks(body, decimal_mark)
    places = len(body) - body.rfind(dm) - 1 if dm is not None and dm in body else 0
    return CommodityFormat(
        symbol=parts.commodity,
        decimal_mark=dm or decimal_mark or ".",
        group_separator=group,
        decimal_places=places,
        symbol_before=parts.symbol_before,
        symbol_spacing=parts.spaced,
        sample=sample.strip(),
    )


def render_amount(quantity: str, commodity: str | None, fmt: CommodityFormat | None = None) -> str:
    """Write ``quantity`` with its commodity the way the journal declares it.

    Without a declared format, non-letter symbols such as ``$`` go in front
    with no space and named commodities go after one space.
    """

    if not commodity:
        return quantity
    sym = quote_commodity(commodity)
    if fmt is not None:
        before, spaced = fmt.symbol_before, fmt.symbol_spacing
    else:
        before = not commodity[0].isalpha()
        spaced = not before
    gap = " " if spaced else ""
    if before:
        sign = "-" if quantity.startswith("-") else ""
        return f"{sign}{sym}{gap}{quantity.lstrip('+-')}"
    return f"{quantity}{gap}{sym}"


__all__ = [
    "AmountParts",
    "COMMODITY_PATTERN",
    "QUANTITY_PATTERN",
    "parse_commodity_format",
    "parse_quantity",
    "quote_commodity",
    "render_amount",
    "split_amount",
    "split_commodity",
    "unquote_commodity",
]
