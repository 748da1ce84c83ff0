"""Query surface consumed by editor integrations.

Plain functions over a :class:`~hledger_assist.models.ParsedData` snapshot
(obtained from :class:`~hledger_assist.aggregator.ProjectCache`), plus the
position classifier and one-off fuzzy ranking. Lists come back in a stable
order: names by collation key, templates by how recently and how often they
were used.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from .builder import normalize_payee
from .fuzzy import FuzzyMatch, collation_key
from .fuzzy import fuzzy_match as _fuzzy_match
from .models import ParsedData, TransactionTemplate
from .position import LineContext, classify


def _sorted_names(names: Iterable[str]) -> list[str]:
    return sorted(names, key=collation_key)


def get_defined_accounts(data: ParsedData) -> list[str]:
    return _sorted_names(data.defined_accounts)


def get_used_accounts(data: ParsedData) -> list[str]:
    return _sorted_names(data.used_accounts)


def get_all_accounts(data: ParsedData) -> list[str]:
    return _sorted_names(data.accounts)


def get_commodities(data: ParsedData) -> list[str]:
    return _sorted_names(data.commodities)


def get_payees(data: ParsedData) -> list[str]:
    return _sorted_names(data.payees)


def get_tag_keys(data: ParsedData) -> list[str]:
    return _sorted_names(data.tags)


def get_tag_values(data: ParsedData, key: str) -> list[str]:
    return _sorted_names(data.tag_values.get(key, ()))


def get_last_date(data: ParsedData) -> str | None:
    return data.last_date


def get_transaction_templates(data: ParsedData, payee: str) -> list[TransactionTemplate]:
    """Templates for ``payee``, most relevant first.

    Ranked by how often the template's key appears in the payee's 50-entry
    recent buffer, then by total usage, then by last use (newest first).
    """

    name = normalize_payee(payee)
    templates = data.templates.get(name)
    if not templates:
        return []
    buf = data.recent_templates.get(name)

    def recent(t: TransactionTemplate) -> int:
        return buf.count(t.key) if buf is not None else 0

    ordered = sorted(templates.values(), key=lambda t: t.key)
    ordered.sort(key=lambda t: t.last_used_date, reverse=True)
    ordered.sort(key=lambda t: (recent(t), t.usage_count), reverse=True)
    return ordered


def recent_template_count(data: ParsedData, template: TransactionTemplate) -> int:
    buf = data.recent_templates.get(template.payee)
    return buf.count(template.key) if buf is not None else 0


def classify_position(line: str, column: int) -> LineContext:
    return classify(line, column)


def fuzzy_match(
    query: str,
    items: Sequence[str],
    *,
    usage_counts: Mapping[str, int] | None = None,
    max_results: int | None = None,
) -> list[FuzzyMatch]:
    return _fuzzy_match(query, items, usage_counts=usage_counts, max_results=max_results)


__all__ = [
    "classify_position",
    "fuzzy_match",
    "get_all_accounts",
    "get_commodities",
    "get_defined_accounts",
    "get_last_date",
    "get_payees",
    "get_tag_keys",
    "get_tag_values",
    "get_transaction_templates",
    "get_used_accounts",
    "recent_template_count",
]
