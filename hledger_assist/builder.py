"""Semantic model builder: token stream → :class:`ParsedData` snapshot.

The builder walks tokens line by line. A transaction opens on a date line and
collects the indented posting and comment lines beneath it; a blank or
non-indented line closes it. Closing a transaction records payee, account,
commodity and tag usage and, for transactions with at least two postings,
updates the payee's transaction template and recent-template buffer.

Content problems never raise. A bad date drops its whole block, a bad posting
empties its transaction's posting list, and both leave a
:class:`~hledger_assist.models.ParseWarning` on the snapshot.

``merge`` combines snapshots (multi-file journals, incremental re-parse)
without touching either input.
"""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import unicodedata
from collections.abc import Generator, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .amounts import parse_commodity_format, parse_quantity, unquote_commodity
from .config import DateOrder
from .dates import normalize_date
from .lexer import TokenStream, tokenize, tokenize_lines
from .logging_setup import get_logger
from .models import (
    MAX_TEMPLATES_PER_PAYEE,
    Account,
    Commodity,
    CommodityFormat,
    ParsedData,
    ParseWarning,
    Posting,
    RecentTemplateBuffer,
    TemplateKey,
    TemplatePosting,
    Token,
    TokenKind,
    Transaction,
    TransactionStatus,
    TransactionTemplate,
    make_template_key,
    template_eviction_order,
)

_logger = get_logger("hledger_assist.builder")


def normalize_payee(payee: str) -> str:
    """NFC-compose and trim a payee so equal-looking names share one key."""

    return unicodedata.normalize("NFC", payee).strip()


def _clean_account(name: str) -> str | None:
    """Strip virtual-posting brackets; reject empty names and bare parents."""

    s = name.strip()
    if len(s) >= 2 and (s[0], s[-1]) in (("(", ")"), ("[", "]")):
        s = s[1:-1].strip()
    if not s or s.endswith(":"):
        return None
    return s


# ---------------------------------------------------------------------------
# Mutable accumulator (private); frozen into ParsedData at the end
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Accumulator:
    accounts: dict[str, Account] = field(default_factory=dict)
    account_usage: dict[str, int] = field(default_factory=dict)
    commodities: dict[str, Commodity] = field(default_factory=dict)
    commodity_usage: dict[str, int] = field(default_factory=dict)
    payees: set[str] = field(default_factory=set)
    declared_payees: set[str] = field(default_factory=set)
    payee_usage: dict[str, int] = field(default_factory=dict)
    tags: set[str] = field(default_factory=set)
    tag_usage: dict[str, int] = field(default_factory=dict)
    tag_values: dict[str, set[str]] = field(default_factory=dict)
    tag_value_usage: dict[tuple[str, str], int] = field(default_factory=dict)
    payee_accounts: dict[str, set[str]] = field(default_factory=dict)
    payee_account_usage: dict[tuple[str, str], int] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)
    templates: dict[str, dict[TemplateKey, TransactionTemplate]] = field(default_factory=dict)
    recent: dict[str, RecentTemplateBuffer] = field(default_factory=dict)
    transactions: list[Transaction] = field(default_factory=list)
    default_commodity: str | None = None
    decimal_mark: str | None = None
    last_date: str | None = None
    includes: list[str] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)
    sources: set[str] = field(default_factory=set)

    # -- accounts / commodities -------------------------------------------

    def add_account(self, name: str, *, defined: bool = False, used: bool = False) -> None:
        prev = self.accounts.get(name)
        if prev is None:
            self.accounts[name] = Account(name, defined=defined, used=used)
        elif (defined and not prev.defined) or (used and not prev.used):
            self.accounts[name] = Account(name, prev.defined or defined, prev.used or used)
        if used:
            self.account_usage[name] = self.account_usage.get(name, 0) + 1

    def add_commodity(
        self, symbol: str, *, fmt: CommodityFormat | None = None, declared: bool = False
    ) -> None:
        prev = self.commodities.get(symbol)
        if prev is None:
            self.commodities[symbol] = Commodity(symbol, fmt, declared)
        elif (fmt is not None and prev.format is None) or (declared and not prev.declared):
            self.commodities[symbol] = Commodity(
                symbol, prev.format or fmt, prev.declared or declared
            )

    def add_tag(self, key: str, value: str) -> None:
        self.tags.add(key)
        self.tag_usage[key] = self.tag_usage.get(key, 0) + 1
        if value:
            self.tag_values.setdefault(key, set()).add(value)
            self.tag_value_usage[(key, value)] = self.tag_value_usage.get((key, value), 0) + 1

    def bump_last_date(self, iso: str) -> None:
        if self.last_date is None or iso > self.last_date:
            self.last_date = iso

    # -- templates -----------------------------------------------------------

    def record_template(self, payee: str, date: str, postings: tuple[Posting, ...]) -> None:
        key = make_template_key(p.account for p in postings)
        skeleton: dict[str, TemplatePosting] = {}
        for p in postings:
            skeleton[p.account] = TemplatePosting(p.account, p.amount, p.commodity)
        tpls = self.templates.setdefault(payee, {})
        prev = tpls.get(key)
        if prev is None:
            tpls[key] = TransactionTemplate(payee, key, tuple(skeleton.values()), 1, date)
        else:
            tpls[key] = TransactionTemplate(
                payee,
                key,
                tuple(skeleton.values()),
                prev.usage_count + 1,
                max(prev.last_used_date, date),
            )
        buf = self.recent.get(payee)
        if buf is None:
            buf = self.recent[payee] = RecentTemplateBuffer()
        buf.push(key)
        self.prune_templates(payee)

    def prune_templates(self, payee: str) -> None:
        tpls = self.templates.get(payee)
        while tpls and len(tpls) > MAX_TEMPLATES_PER_PAYEE:
            victim = min(tpls.values(), key=template_eviction_order)
            del tpls[victim.key]
            _logger.debug(
                "templates:evict payee=%r key=%r usage=%d last=%s",
                payee,
                victim.key,
                victim.usage_count,
                victim.last_used_date,
            )

    # -- snapshot conversion -------------------------------------------------

    @classmethod
    def from_data(cls, data: ParsedData) -> _Accumulator:
        return cls(
            accounts=dict(data.accounts),
            account_usage=dict(data.account_usage),
            commodities=dict(data.commodities),
            commodity_usage=dict(data.commodity_usage),
            payees=set(data.payees),
            declared_payees=set(data.declared_payees),
            payee_usage=dict(data.payee_usage),
            tags=set(data.tags),
            tag_usage=dict(data.tag_usage),
            tag_values={k: set(v) for k, v in data.tag_values.items()},
            tag_value_usage=dict(data.tag_value_usage),
            payee_accounts={k: set(v) for k, v in data.payee_accounts.items()},
            payee_account_usage=dict(data.payee_account_usage),
            aliases=dict(data.aliases),
            templates={p: dict(t) for p, t in data.templates.items()},
            recent={p: b.copy() for p, b in data.recent_templates.items()},
            transactions=list(data.transactions),
            default_commodity=data.default_commodity,
            decimal_mark=data.decimal_mark,
            last_date=data.last_date,
            includes=list(data.includes),
            warnings=list(data.warnings),
            sources=set(data.sources),
        )

    def absorb(self, other: ParsedData) -> None:
        """Fold ``other`` into this accumulator (``merge`` semantics)."""

        for name, acct in other.accounts.items():
            prev = self.accounts.get(name)
            self.accounts[name] = (
                acct
                if prev is None
                else Account(name, prev.defined or acct.defined, prev.used or acct.used)
            )
        _sum_into(self.account_usage, other.account_usage)
        for sym, com in other.commodities.items():
            self.add_commodity(sym, fmt=com.format, declared=com.declared)
        _sum_into(self.commodity_usage, other.commodity_usage)
        self.payees |= other.payees
        self.declared_payees |= other.declared_payees
        _sum_into(self.payee_usage, other.payee_usage)
        self.tags |= other.tags
        _sum_into(self.tag_usage, other.tag_usage)
        for k, vals in other.tag_values.items():
            self.tag_values.setdefault(k, set()).update(vals)
        _sum_into(self.tag_value_usage, other.tag_value_usage)
        for p, accts in other.payee_accounts.items():
            self.payee_accounts.setdefault(p, set()).update(accts)
        _sum_into(self.payee_account_usage, other.payee_account_usage)
        for src, dst in other.aliases.items():
            self.aliases.setdefault(src, dst)

        for payee, tpls in other.templates.items():
            mine = self.templates.setdefault(payee, {})
            for key, t in tpls.items():
                prev = mine.get(key)
                if prev is None:
                    mine[key] = t
                    continue
                newer = t if t.last_used_date >= prev.last_used_date else prev
                mine[key] = TransactionTemplate(
                    payee,
                    key,
                    newer.postings,
                    prev.usage_count + t.usage_count,
                    newer.last_used_date,
                )
            self.prune_templates(payee)
        for payee, buf in other.recent_templates.items():
            mine_buf = self.recent.get(payee)
            if mine_buf is None:
                mine_buf = self.recent[payee] = RecentTemplateBuffer(buf.capacity)
            for key in buf.keys():
                mine_buf.push(key)

        self.transactions.extend(other.transactions)
        if self.default_commodity is None:
            self.default_commodity = other.default_commodity
        if self.decimal_mark is None:
            self.decimal_mark = other.decimal_mark
        if other.last_date is not None:
            self.bump_last_date(other.last_date)
        for inc in other.includes:
            if inc not in self.includes:
                self.includes.append(inc)
        self.warnings.extend(other.warnings)
        self.sources |= other.sources

    def freeze(self) -> ParsedData:
        return ParsedData(
            accounts=MappingProxyType(dict(self.accounts)),
            account_usage=MappingProxyType(dict(self.account_usage)),
            commodities=MappingProxyType(dict(self.commodities)),
            commodity_usage=MappingProxyType(dict(self.commodity_usage)),
            payees=frozenset(self.payees),
            declared_payees=frozenset(self.declared_payees),
            payee_usage=MappingProxyType(dict(self.payee_usage)),
            tags=frozenset(self.tags),
            tag_usage=MappingProxyType(dict(self.tag_usage)),
            tag_values=MappingProxyType({k: frozenset(v) for k, v in self.tag_values.items()}),
            tag_value_usage=MappingProxyType(dict(self.tag_value_usage)),
            payee_accounts=MappingProxyType(
                {k: frozenset(v) for k, v in self.payee_accounts.items()}
            ),
            payee_account_usage=MappingProxyType(dict(self.payee_account_usage)),
            aliases=MappingProxyType(dict(self.aliases)),
            templates=MappingProxyType(
                {p: MappingProxyType(dict(t)) for p, t in self.templates.items() if t}
            ),
            recent_templates=MappingProxyType(
                {p: b.copy().freeze() for p, b in self.recent.items()}
            ),
            transactions=tuple(self.transactions),
            default_commodity=self.default_commodity,
            decimal_mark=self.decimal_mark,
            last_date=self.last_date,
            includes=tuple(self.includes),
            warnings=tuple(self.warnings),
            sources=frozenset(self.sources),
        )


def _sum_into(dst: dict[Any, int], src: Mapping[Any, int]) -> None:
    for k, n in src.items():
        dst[k] = dst.get(k, 0) + n


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _OpenTransaction:
    line: int
    date: str | None
    payee: str
    status: TransactionStatus = TransactionStatus.NONE
    code: str | None = None
    note: str | None = None
    tags: list[tuple[str, str]] = field(default_factory=list)
    postings: list[Posting] = field(default_factory=list)
    # Line numbers of postings that could not be parsed.
    bad_lines: list[int] = field(default_factory=list)


def _tag_pairs(tokens: Iterable[Token]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    key: str | None = None
    for tok in tokens:
        if tok.kind is TokenKind.TAG_KEY:
            key = tok.text
        elif tok.kind is TokenKind.TAG_VALUE and key is not None:
            pairs.append((key, tok.text))
            key = None
    return pairs


def _format_sample(tokens: list[Token]) -> str | None:
    """Rebuild ``$1,000.00`` / ``1.000,00 EUR`` from amount+commodity tokens."""

    amount = next((t for t in tokens if t.kind is TokenKind.AMOUNT), None)
    commodity = next((t for t in tokens if t.kind is TokenKind.COMMODITY), None)
    if amount is None or commodity is None:
        return None
    if commodity.column < amount.column:
        gap = " " if amount.column > commodity.column + len(commodity.text) else ""
        return f"{commodity.text}{gap}{amount.text}"
    gap = " " if commodity.column > amount.column + len(amount.text) else ""
    return f"{amount.text}{gap}{commodity.text}"


class ModelBuilder:
    """Incremental builder; ``feed`` tokens in any number of calls, then ``finish``.

    Parameters
    ----------
    date_order:
        How year-last dates are read (see :func:`dates.normalize_date`).
    default_year:
        Year for ``MM-DD`` dates until a ``Y``/``year`` directive sets one.
    source:
        Label (usually a path) stamped on warnings and mixed into the content
        digest, so identical text in two different files still counts twice.
    """

    def __init__(
        self,
        *,
        date_order: DateOrder = "dmy",
        default_year: int | None = None,
        source: str | None = None,
    ) -> None:
        self._acc = _Accumulator()
        self._date_order: DateOrder = date_order
        self._default_year = default_year
        self._source = source
        self._pending: list[Token] = []
        self._txn: _OpenTransaction | None = None
        # Open block whose date failed to parse: its postings are skipped.
        self._skipping = False
        self._last_commodity: str | None = None
        self._digest = hashlib.sha256((source or "").encode("utf-8"))
        self._finished = False

    # -- feeding ---------------------------------------------------------------

    def feed(self, tokens: Iterable[Token]) -> None:
        if self._finished:
            raise RuntimeError("ModelBuilder.finish() was already called")
        for tok in tokens:
            self._digest.update(
                f"{tok.kind.value}\x1f{tok.text}\x1f{tok.line}\x1f{tok.column}\x1e".encode()
            )
            if tok.kind is TokenKind.NEWLINE:
                self._handle_line(self._pending, tok.line)
                self._pending = []
            else:
                self._pending.append(tok)

    def finish(self) -> ParsedData:
        if not self._finished:
            if self._pending:
                self._handle_line(self._pending, self._pending[0].line)
                self._pending = []
            self._close_transaction()
            self._acc.sources.add(self._digest.hexdigest())
            self._finished = True
        return self._acc.freeze()

    # -- line dispatch -----------------------------------------------------------

    def _warn(self, line: int, message: str) -> None:
        _logger.debug("parse:dropped source=%s line=%d %s", self._source, line + 1, message)
        self._acc.warnings.append(ParseWarning(line, message, self._source))

    def _handle_line(self, tokens: list[Token], line: int) -> None:
        if not tokens:
            self._close_transaction()
            return
        indented = tokens[0].kind is TokenKind.INDENT
        body = tokens[1:] if indented else tokens
        if not body:
            self._close_transaction()
            return
        head = body[0].kind

        if not indented:
            self._close_transaction()
            if head is TokenKind.DATE:
                self._open_transaction(body, line)
            elif head is TokenKind.DIRECTIVE:
                self._directive(body, line)
            elif head is TokenKind.TEXT:
                self._warn(line, f"unrecognized line: {body[0].text!r}")
            return

        if head is TokenKind.DIRECTIVE:
            self._directive(body, line)
        elif self._skipping:
            return
        elif self._txn is None:
            if head is not TokenKind.COMMENT:
                self._warn(line, "indented line outside a transaction")
        elif head is TokenKind.COMMENT:
            pairs = _tag_pairs(body)
            if self._txn.postings:
                last = self._txn.postings[-1]
                self._txn.postings[-1] = dataclasses.replace(last, tags=last.tags + tuple(pairs))
            else:
                self._txn.tags.extend(pairs)
        else:
            posting = self._posting(body)
            if posting is None:
                self._txn.bad_lines.append(line)
            else:
                self._txn.postings.append(posting)

    # -- transactions ------------------------------------------------------------

    def _open_transaction(self, body: list[Token], line: int) -> None:
        raw_date = body[0].text
        try:
            iso = normalize_date(
                raw_date, order=self._date_order, default_year=self._default_year
            )
        except ValueError:
            self._warn(line, f"invalid date {raw_date!r}; transaction skipped")
            self._skipping = True
            return
        txn = _OpenTransaction(line=line, date=iso, payee="")
        for tok in body[1:]:
            if tok.kind is TokenKind.STATUS:
                txn.status = TransactionStatus(tok.text)
            elif tok.kind is TokenKind.CODE:
                txn.code = tok.text.strip("()").strip() or None
            elif tok.kind is TokenKind.PAYEE:
                txn.payee = normalize_payee(tok.text)
            elif tok.kind is TokenKind.NOTE:
                txn.note = tok.text or None
        txn.tags.extend(_tag_pairs(body))
        self._txn = txn

    def _decimal_mark_for(self, commodity: str | None) -> str | None:
        if self._acc.decimal_mark is not None:
            return self._acc.decimal_mark
        com = self._acc.commodities.get(commodity) if commodity else None
        if com is not None and com.format is not None:
            return com.format.decimal_mark
        return None

    def _posting(self, body: list[Token]) -> Posting | None:
        toks = body[1:] if body[0].kind is TokenKind.STATUS else body
        if not toks or toks[0].kind is not TokenKind.ACCOUNT:
            return None
        account = _clean_account(toks[0].text)
        if account is None:
            return None
        amount: str | None = None
        commodity: str | None = None
        after_operator = False
        side: list[str] = []
        tags: list[tuple[str, str]] = []
        for i, tok in enumerate(toks[1:], start=1):
            if tok.kind is TokenKind.TEXT:
                return None
            if tok.kind is TokenKind.OPERATOR:
                after_operator = True
            elif tok.kind is TokenKind.AMOUNT and not after_operator:
                amount = tok.text
            elif tok.kind is TokenKind.COMMODITY:
                symbol = unquote_commodity(tok.text)
                if not after_operator:
                    commodity = symbol
                elif symbol not in side:
                    side.append(symbol)
            elif tok.kind is TokenKind.COMMENT:
                tags = _tag_pairs(toks[i:])
                break
        if amount is not None:
            try:
                parse_quantity(amount, decimal_mark=self._decimal_mark_for(commodity))
            except ValueError:
                return None
        return Posting(account, amount, commodity, tuple(tags), tuple(side))

    def _close_transaction(self) -> None:
        self._skipping = False
        txn, self._txn = self._txn, None
        if txn is None or txn.date is None:
            return
        acc = self._acc
        postings: tuple[Posting, ...] = tuple(txn.postings)
        if txn.bad_lines:
            lines = ", ".join(str(n + 1) for n in txn.bad_lines)
            self._warn(txn.line, f"unparsable posting(s) on line(s) {lines}; postings dropped")
            postings = ()

        acc.transactions.append(
            Transaction(
                date=txn.date,
                payee=txn.payee,
                postings=postings,
                status=txn.status,
                code=txn.code,
                note=txn.note,
                tags=tuple(txn.tags),
                line=txn.line,
            )
        )
        acc.bump_last_date(txn.date)
        if txn.payee:
            acc.payees.add(txn.payee)
            acc.payee_usage[txn.payee] = acc.payee_usage.get(txn.payee, 0) + 1
        for key, value in txn.tags:
            acc.add_tag(key, value)

        for p in postings:
            acc.add_account(p.account, used=True)
            if p.commodity:
                acc.add_commodity(p.commodity)
                acc.commodity_usage[p.commodity] = acc.commodity_usage.get(p.commodity, 0) + 1
            # Cost and assertion commodities become known without counting as used.
            for symbol in p.side_commodities:
                acc.add_commodity(symbol)
            if txn.payee:
                acc.payee_accounts.setdefault(txn.payee, set()).add(p.account)
                pair = (txn.payee, p.account)
                acc.payee_account_usage[pair] = acc.payee_account_usage.get(pair, 0) + 1
            for key, value in p.tags:
                acc.add_tag(key, value)
                if key == "date" and value:
                    try:
                        acc.bump_last_date(
                            normalize_date(
                                value, order=self._date_order, default_year=self._default_year
                            )
                        )
                    except ValueError:
                        self._warn(txn.line, f"invalid posting date tag {value!r}")

        if len(postings) >= 2 and txn.payee:
            acc.record_template(txn.payee, txn.date, postings)

    # -- directives ----------------------------------------------------------------

    def _directive(self, body: list[Token], line: int) -> None:
        name = body[0].text
        args = body[1:]
        acc = self._acc

        def first(kind: TokenKind) -> Token | None:
            return next((t for t in args if t.kind is kind), None)

        if any(t.kind is TokenKind.TEXT for t in args) and name in ("commodity", "format", "D"):
            self._warn(line, f"malformed {name} directive")
            return

        if name == "account":
            tok = first(TokenKind.ACCOUNT)
            account = _clean_account(tok.text) if tok else None
            if account:
                acc.add_account(account, defined=True)
        elif name == "alias":
            names = [t.text.strip() for t in args if t.kind is TokenKind.ACCOUNT]
            if len(names) == 2 and not names[0].startswith("/"):
                src, dst = _clean_account(names[0]), _clean_account(names[1])
                if src and dst:
                    acc.aliases.setdefault(src, dst)
                    acc.add_account(src, defined=True)
                    acc.add_account(dst, defined=True)
        elif name in ("commodity", "format", "D"):
            self._commodity_directive(name, args)
        elif name == "decimal-mark":
            tok = first(TokenKind.TEXT)
            if tok is not None and tok.text in (".", ","):
                acc.decimal_mark = tok.text
            else:
                self._warn(line, "decimal-mark must be '.' or ','")
        elif name == "include":
            tok = first(TokenKind.TEXT)
            if tok is not None and tok.text not in acc.includes:
                acc.includes.append(tok.text)
        elif name == "P":
            for tok in args:
                if tok.kind is TokenKind.COMMODITY:
                    acc.add_commodity(unquote_commodity(tok.text))
        elif name == "payee":
            tok = first(TokenKind.PAYEE)
            if tok is not None:
                payee = normalize_payee(tok.text)
                if payee:
                    acc.payees.add(payee)
                    acc.declared_payees.add(payee)
        elif name == "tag":
            tok = first(TokenKind.TAG_KEY)
            if tok is not None:
                acc.tags.add(tok.text)
        elif name in ("Y", "year"):
            tok = first(TokenKind.TEXT)
            if tok is not None:
                self._default_year = int(tok.text)

    def _commodity_directive(self, name: str, args: list[Token]) -> None:
        acc = self._acc
        com_tok = next((t for t in args if t.kind is TokenKind.COMMODITY), None)
        sample = _format_sample(args)
        fmt = parse_commodity_format(sample, decimal_mark=acc.decimal_mark) if sample else None

        if name == "format":
            symbol = self._last_commodity or (fmt.symbol if fmt else None)
            if symbol and fmt is not None:
                acc.add_commodity(symbol, fmt=dataclasses.replace(fmt, symbol=symbol), declared=True)
            return

        if com_tok is None:
            return
        symbol = unquote_commodity(com_tok.text)
        acc.add_commodity(symbol, fmt=fmt, declared=True)
        if name == "commodity":
            self._last_commodity = symbol
        elif acc.default_commodity is None:
            acc.default_commodity = symbol


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def build(
    tokens: Iterable[Token],
    *,
    date_order: DateOrder = "dmy",
    default_year: int | None = None,
    source: str | None = None,
) -> ParsedData:
    """Build a snapshot from a token stream in one pass."""

    builder = ModelBuilder(date_order=date_order, default_year=default_year, source=source)
    builder.feed(tokens)
    return builder.finish()


def build_text(text: str, **kwargs: object) -> ParsedData:
    return build(tokenize(text), **kwargs)  # type: ignore[arg-type]


def build_chunked(
    text: str,
    *,
    chunk_size: int = 1000,
    date_order: DateOrder = "dmy",
    default_year: int | None = None,
    source: str | None = None,
) -> Generator[int, None, ParsedData]:
    """Build ``text`` ``chunk_size`` lines at a time.

    Yields the number of lines processed after each chunk so a cooperative
    scheduler can interleave other work; the snapshot is the generator's
    return value (``StopIteration.value``).
    """

    if chunk_size < 1:
        raise ValueError("chunk_size must be a positive integer")
    builder = ModelBuilder(date_order=date_order, default_year=default_year, source=source)
    lines = list(TokenStream(text).lines())
    for start in range(0, len(lines), chunk_size):
        builder.feed(tokenize_lines(lines[start : start + chunk_size], start))
        yield min(start + chunk_size, len(lines))
    return builder.finish()


async def build_async(text: str, **kwargs: object) -> ParsedData:
    """``build_chunked`` driven on the running event loop, yielding between chunks."""

    gen = build_chunked(text, **kwargs)  # type: ignore[arg-type]
    while True:
        try:
            next(gen)
        except StopIteration as stop:
            return stop.value
        await asyncio.sleep(0)


def merge(a: ParsedData, b: ParsedData) -> ParsedData:
    """Combine two snapshots into a new one.

    Usage counts add up, except when every text behind one side has already
    been folded into the other (``sources`` subset): then the result is a
    copy of the larger side, so merging a snapshot with a re-parse of the
    same text does not double count.
    """

    if b.sources and b.sources <= a.sources:
        return _Accumulator.from_data(a).freeze()
    if a.sources and a.sources <= b.sources:
        return _Accumulator.from_data(b).freeze()
    acc = _Accumulator.from_data(a)
    acc.absorb(b)
    return acc.freeze()


def merge_all(snapshots: Iterable[ParsedData]) -> ParsedData:
    acc = _Accumulator()
    for snap in snapshots:
        if snap.sources and snap.sources <= acc.sources:
            continue
        acc.absorb(snap)
    return acc.freeze()


__all__ = [
    "ModelBuilder",
    "build",
    "build_async",
    "build_chunked",
    "build_text",
    "merge",
    "merge_all",
    "normalize_payee",
]
