"""Completion orchestration: cursor position → ranked suggestions.

``CompletionEngine.complete(line, column)`` classifies the cursor with
:mod:`hledger_assist.position`, picks the one completion domain that context
maps to and ranks that domain's candidates from the current
:class:`~hledger_assist.models.ParsedData` snapshot:

- line start: dates (last used, today, yesterday, a week ago, first of this
  and last month)
- after the date: payees, followed by transaction-template snippets for
  payees the query matches exactly or as a prefix
- posting account: accounts, ranked by how often the current payee used
  them
- after an amount: commodities, default commodity first
- comments: tag names; after ``tag:`` the values seen for that tag

Forbidden positions return nothing and never touch the snapshot. The engine
holds one snapshot reference and swaps it wholesale in :meth:`update`, so a
completion request always sees a single consistent snapshot.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from .amounts import quote_commodity, render_amount
from .api import get_transaction_templates, recent_template_count
from .builder import normalize_payee
from .config import Settings
from .dates import format_short, month_start, week_ago
from .fuzzy import PREFIX_BASE, CandidateSet, FuzzyMatch, FuzzyMatcher, collation_key
from .logging_setup import get_logger
from .models import CacheEntry, ParsedData, TransactionTemplate
from .position import AFTER_DATE_RE, POSTING_RE, CompletionDomain, PositionInfo, analyze

if TYPE_CHECKING:
    from pathlib import Path

    from .aggregator import ProjectCache

_logger = get_logger("hledger_assist.completion")

MAX_TEMPLATES_PER_COMPLETION = 3
TEMPLATE_INDENT = "    "


class CompletionKind(Enum):
    DATE = "date"
    PAYEE = "payee"
    TEMPLATE = "template"
    ACCOUNT = "account"
    COMMODITY = "commodity"
    TAG = "tag"
    TAG_VALUE = "tag_value"


@dataclass(frozen=True, slots=True)
class CompletionItem:
    """One suggestion.

    ``replace_start`` is the column where the replaced text begins; the
    editor replaces ``line[replace_start:column]`` with ``insert_text``.
    ``sort_key`` is the zero-padded rank, for editors that sort by string.
    """

    label: str
    kind: CompletionKind
    insert_text: str
    replace_start: int
    score: float = 0.0
    sort_key: str = ""
    detail: str | None = None


class _CancelFlag(Protocol):
    def is_set(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class _Request:
    info: PositionInfo
    payee: str | None
    today: date


# ---------------------------------------------------------------------------
# Query extraction
# ---------------------------------------------------------------------------

_ACCOUNT_QUERY_RE = re.compile(r"^[ \t]+(?:[*!][ \t]+)?(?P<query>.*)$")
_COMMODITY_QUERY_RE = re.compile(r"\"?(?P<query>[^\s\d;@=.,+\-\"]*)$")
_TAG_QUERY_RE = re.compile(r"(?P<query>[\w-]*)$")
_TAG_VALUE_QUERY_RE = re.compile(r"(?P<tag>[\w-]+):\s*(?P<query>[^,;]*)$")
# A bare month (and optionally day) typed without a year.
_SHORT_DATE_QUERY_RE = re.compile(r"^(?:0\d?|1[0-2]?)(?:[-/.]\d{0,2})?$")
_DATE_SEPARATOR_RE = re.compile(r"[-/.]")


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CompletionEngine:
    """Answers completion requests against the current snapshot.

    Parameters
    ----------
    data:
        Initial snapshot; an empty one when omitted.
    settings:
        Result cap, fuzzy cache size, mid-word suppression and template
        toggles; ``Settings()`` when omitted.
    matcher:
        Shared :class:`FuzzyMatcher`; one sized from ``settings`` is created
        when omitted.
    """

    def __init__(
        self,
        data: ParsedData | None = None,
        *,
        settings: Settings | None = None,
        matcher: FuzzyMatcher | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._matcher = matcher or FuzzyMatcher(
            max_results=self.settings.max_results,
            max_cache_size=self.settings.fuzzy_cache_size,
        )
        self._data = data if data is not None else ParsedData()
        self._sets: dict[str, CandidateSet] = {}
        self._disposed = False
        self._handlers: dict[CompletionDomain, Callable[[_Request], list[CompletionItem]]] = {
            CompletionDomain.DATE: self._complete_dates,
            CompletionDomain.PAYEE: self._complete_payees,
            CompletionDomain.ACCOUNT: self._complete_accounts,
            CompletionDomain.COMMODITY: self._complete_commodities,
            CompletionDomain.TAG: self._complete_tags,
            CompletionDomain.TAG_VALUE: self._complete_tag_values,
        }

    # -- lifecycle -------------------------------------------------------------

    @property
    def data(self) -> ParsedData:
        return self._data

    def update(self, data: ParsedData) -> None:
        """Replace the snapshot; candidate indexes are rebuilt lazily."""

        self._sets = {}
        self._data = data

    def refresh(
        self, cache: ProjectCache, path: Path, *, cancel: _CancelFlag | None = None
    ) -> CacheEntry:
        """Pull the aggregated snapshot for ``path`` from ``cache`` and use it."""

        entry = cache.get(path, cancel=cancel)
        if entry.data is not self._data:
            self.update(entry.data)
            _logger.debug("completion:refresh path=%s", path)
        return entry

    def dispose(self) -> None:
        self._sets = {}
        self._data = ParsedData()
        self._matcher.clear_cache()
        self._disposed = True

    # -- requests ----------------------------------------------------------------

    def complete(
        self,
        line: str,
        column: int,
        *,
        payee: str | None = None,
        today: date | None = None,
    ) -> list[CompletionItem]:
        """Suggestions for the cursor at ``column`` of ``line``.

        ``payee`` is the payee of the transaction being edited (used to rank
        posting accounts). ``today`` anchors the date candidates.
        Raises ``ValueError`` for a negative column.
        """

        info = analyze(line, column)
        domain = info.domain
        if domain is None or self._disposed:
            return []
        if (
            self.settings.suppress_mid_word
            and domain not in (CompletionDomain.TAG, CompletionDomain.TAG_VALUE)
            and info.after[:1]
            and _is_word_char(info.after[0])
        ):
            return []
        request = _Request(info=info, payee=payee, today=today or date.today())
        items = self._handlers[domain](request)
        return [
            dataclasses.replace(item, sort_key=f"{rank:05d}")
            for rank, item in enumerate(items[: self.settings.max_results])
        ]

    # -- candidate sets ------------------------------------------------------------

    def _candidates(self, name: str, items: Sequence[str], usage: Mapping[str, int]) -> CandidateSet:
        cs = self._sets.get(name)
        if cs is None:
            # Most used first so an empty query lists the likeliest items.
            ordered = sorted(items, key=collation_key)
            ordered.sort(key=lambda i: usage.get(i, 0), reverse=True)
            cs = self._sets[name] = self._matcher.index(ordered, usage)
        return cs

    def _rank(self, query: str, cs: CandidateSet) -> list[FuzzyMatch]:
        return self._matcher.match(query, cs, limit=self.settings.max_results)

    # -- dates ---------------------------------------------------------------------

    def _complete_dates(self, req: _Request) -> list[CompletionItem]:
        before = req.info.before
        query = before.strip()
        start = len(before) - len(before.lstrip())
        sep_match = _DATE_SEPARATOR_RE.search(query)
        sep = sep_match.group(0) if sep_match else "-"
        short = bool(query) and _SHORT_DATE_QUERY_RE.match(query) is not None

        today = req.today
        candidates: list[tuple[date, str]] = []
        last = self._data.last_date
        if last:
            try:
                candidates.append((date.fromisoformat(last), "last used"))
            except ValueError:
                _logger.debug("completion:bad_last_date value=%r", last)
        candidates += [
            (today, "today"),
            (today - timedelta(days=1), "yesterday"),
            (week_ago(today), "a week ago"),
            (month_start(today), "start of this month"),
            (month_start(today, months_back=1), "start of last month"),
        ]

        out: list[CompletionItem] = []
        seen: set[str] = set()
        for d, detail in candidates:
            text = format_short(d) if short else d.isoformat()
            text = text.replace("-", sep)
            if text in seen or not text.startswith(query):
                continue
            seen.add(text)
            out.append(
                CompletionItem(
                    label=text,
                    kind=CompletionKind.DATE,
                    insert_text=text,
                    replace_start=start,
                    detail=detail,
                )
            )
        return out

    # -- payees and templates ------------------------------------------------------------

    def _complete_payees(self, req: _Request) -> list[CompletionItem]:
        m = AFTER_DATE_RE.match(req.info.before)
        if m is None:
            return []
        typed = m.group("payee")
        if "|" in typed:
            return []
        query = typed.strip()
        start = m.start("payee") + len(typed) - len(typed.lstrip())

        data = self._data
        cs = self._candidates("payees", tuple(data.payees), data.payee_usage)
        matches = sorted(
            self._rank(query, cs),
            key=lambda fm: (
                -fm.score,
                -data.payee_usage.get(fm.item, 0),
                fm.item not in data.declared_payees,
                collation_key(fm.item),
            ),
        )

        out: list[CompletionItem] = []
        for fm in matches:
            out.append(
                CompletionItem(
                    label=fm.item,
                    kind=CompletionKind.PAYEE,
                    insert_text=fm.item,
                    replace_start=start,
                    score=fm.score,
                    detail=f"used {data.payee_usage.get(fm.item, 0)}x",
                )
            )
            if self.settings.template_completions and query and fm.score >= PREFIX_BASE:
                out.extend(self._template_items(fm, start))
        return out

    def _template_items(self, fm: FuzzyMatch, start: int) -> list[CompletionItem]:
        templates = get_transaction_templates(self._data, fm.item)[:MAX_TEMPLATES_PER_COMPLETION]
        return [
            CompletionItem(
                label=f"{fm.item} ({', '.join(p.account for p in t.postings)})",
                kind=CompletionKind.TEMPLATE,
                insert_text=self.render_template(t),
                replace_start=start,
                score=fm.score,
                detail=(
                    f"template, used {t.usage_count}x, "
                    f"{recent_template_count(self._data, t)}x recently, last {t.last_used_date}"
                ),
            )
            for t in templates
        ]

    def render_template(self, template: TransactionTemplate) -> str:
        """Payee line plus one indented line per posting, amounts included."""

        commodities = self._data.commodities
        lines = [template.payee]
        for p in template.postings:
            line = f"{TEMPLATE_INDENT}{p.account}"
            if p.amount is not None:
                com = commodities.get(p.commodity) if p.commodity else None
                fmt = com.format if com is not None else None
                line += f"  {render_amount(p.amount, p.commodity, fmt)}"
            lines.append(line)
        return "\n".join(lines)

    # -- accounts ------------------------------------------------------------------------

    def _complete_accounts(self, req: _Request) -> list[CompletionItem]:
        before = req.info.before
        if POSTING_RE.match(before):
            # Account already followed by its separator; an amount comes next.
            return []
        m = _ACCOUNT_QUERY_RE.match(before)
        if m is None:
            return []
        query = m.group("query")
        start = m.start("query")

        data = self._data
        cs = self._candidates("accounts", tuple(data.accounts), data.account_usage)
        payee = normalize_payee(req.payee) if req.payee else None

        def pair_usage(account: str) -> int:
            if payee is None:
                return 0
            return data.payee_account_usage.get((payee, account), 0)

        def is_defined(account: str) -> bool:
            acct = data.accounts.get(account)
            return acct is not None and acct.defined

        matches = sorted(
            self._rank(query, cs),
            key=lambda fm: (
                -fm.score,
                -pair_usage(fm.item),
                -data.account_usage.get(fm.item, 0),
                not is_defined(fm.item),
                collation_key(fm.item),
            ),
        )
        return [
            CompletionItem(
                label=fm.item,
                kind=CompletionKind.ACCOUNT,
                insert_text=fm.item,
                replace_start=start,
                score=fm.score,
                detail="declared" if is_defined(fm.item) else "used",
            )
            for fm in matches
        ]

    # -- commodities -----------------------------------------------------------------------

    def _complete_commodities(self, req: _Request) -> list[CompletionItem]:
        before = req.info.before
        m = _COMMODITY_QUERY_RE.search(before)
        query = m.group("query") if m else ""
        start = m.start() if m else len(before)

        data = self._data
        default = data.default_commodity
        cs = self._candidates("commodities", tuple(data.commodities), data.commodity_usage)
        matches = sorted(
            self._rank(query, cs),
            key=lambda fm: (
                -fm.score,
                fm.item != default,
                -data.commodity_usage.get(fm.item, 0),
                collation_key(fm.item),
            ),
        )
        out: list[CompletionItem] = []
        for fm in matches:
            com = data.commodities.get(fm.item)
            detail = "default" if fm.item == default else None
            if com is not None and com.format is not None and com.format.sample:
                detail = f"{detail}, {com.format.sample}" if detail else com.format.sample
            out.append(
                CompletionItem(
                    label=fm.item,
                    kind=CompletionKind.COMMODITY,
                    insert_text=quote_commodity(fm.item),
                    replace_start=start,
                    score=fm.score,
                    detail=detail,
                )
            )
        return out

    # -- tags --------------------------------------------------------------------------------

    def _complete_tags(self, req: _Request) -> list[CompletionItem]:
        before = req.info.before
        m = _TAG_QUERY_RE.search(before)
        query = m.group("query") if m else ""
        start = len(before) - len(query)

        data = self._data
        cs = self._candidates("tags", tuple(data.tags), data.tag_usage)
        return [
            CompletionItem(
                label=fm.item,
                kind=CompletionKind.TAG,
                insert_text=f"{fm.item}:",
                replace_start=start,
                score=fm.score,
                detail=f"used {data.tag_usage.get(fm.item, 0)}x",
            )
            for fm in self._rank(query, cs)
        ]

    def _complete_tag_values(self, req: _Request) -> list[CompletionItem]:
        m = _TAG_VALUE_QUERY_RE.search(req.info.before)
        if m is None:
            return []
        tag, query = m.group("tag"), m.group("query")
        data = self._data
        values = data.tag_values.get(tag)
        if not values:
            return []
        usage = {v: data.tag_value_usage.get((tag, v), 0) for v in values}
        cs = self._candidates(f"tag_value:{tag}", tuple(values), usage)
        return [
            CompletionItem(
                label=fm.item,
                kind=CompletionKind.TAG_VALUE,
                insert_text=fm.item,
                replace_start=m.start("query"),
                score=fm.score,
                detail=tag,
            )
            for fm in self._rank(query.strip(), cs)
        ]


__all__ = [
    "CompletionEngine",
    "CompletionItem",
    "CompletionKind",
    "MAX_TEMPLATES_PER_COMPLETION",
]
