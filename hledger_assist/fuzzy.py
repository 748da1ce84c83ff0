"""Fuzzy ranking of completion candidates.

Scores fall into three bands so a weaker kind of match never outranks a
stronger one:

- exact (case-insensitive) equality: ``3000``
- prefix: ``2000 + 900 / len(item)``; shorter items rank higher
- ordered subsequence: ``1000 - total_gap + max(0, 10 - first_pos)``, plus a
  small bonus when the match starts on a word boundary, floored at ``1``

Items matching none of these are dropped. Equal scores are ordered by
descending usage count, then by a locale-neutral collation key.

Text is compared after NFC composition and Unicode case folding, so
``"Маг"`` matches ``"Магазин"`` and ``"STRASSE"`` equals ``"straße"``.

For repeated queries against a stable candidate list, build a
:class:`CandidateSet` once with :meth:`FuzzyMatcher.index`: it keeps folded
forms, per-character position lists and a character → item map, and it
carries a version number the result cache is keyed on.
"""

from __future__ import annotations

import itertools
import math
import unicodedata
from bisect import bisect_right
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .logging_setup import get_logger

_logger = get_logger("hledger_assist.fuzzy")

EXACT_SCORE = 3000.0
PREFIX_BASE = 2000.0
SUBSEQUENCE_BASE = 1000.0
_WORD_BOUNDARY_BONUS = 5
_BOUNDARY_CHARS = frozenset(" -_:/")


def fold(text: str) -> str:
    """Case-insensitive comparison form (NFC + Unicode case folding)."""

    return unicodedata.normalize("NFC", text).casefold()


def collation_key(text: str) -> tuple[str, str]:
    """Ordering key: accent-stripped folded text first, exact folded text second."""

    folded = fold(text)
    base = "".join(
        c for c in unicodedata.normalize("NFKD", folded) if not unicodedata.combining(c)
    )
    return base, folded


@dataclass(frozen=True, slots=True)
class FuzzyMatch:
    item: str
    score: float


@dataclass(frozen=True, slots=True)
class _Entry:
    item: str
    folded: str
    positions: Mapping[str, tuple[int, ...]]
    boundaries: frozenset[int]
    collation: tuple[str, str]


def _entry(item: str) -> _Entry:
    folded = fold(item)
    positions: dict[str, list[int]] = {}
    for i, ch in enumerate(folded):
        positions.setdefault(ch, []).append(i)
    boundaries = frozenset(
        i for i in range(len(folded)) if i == 0 or folded[i - 1] in _BOUNDARY_CHARS
    )
    return _Entry(
        item=item,
        folded=folded,
        positions={k: tuple(v) for k, v in positions.items()},
        boundaries=boundaries,
        collation=collation_key(item),
    )


class CandidateSet:
    """Pre-indexed candidate list; build with :meth:`FuzzyMatcher.index`."""

    __slots__ = ("items", "usage", "version", "_entries", "_char_map")

    def __init__(
        self, items: Sequence[str], usage: Mapping[str, int] | None, version: int
    ) -> None:
        self.items: tuple[str, ...] = tuple(items)
        self.usage: Mapping[str, int] = dict(usage or {})
        self.version = version
        self._entries = tuple(_entry(i) for i in self.items)
        char_map: dict[str, set[int]] = {}
        for idx, e in enumerate(self._entries):
            for ch in e.positions:
                char_map.setdefault(ch, set()).add(idx)
        self._char_map = {k: frozenset(v) for k, v in char_map.items()}

    def __len__(self) -> int:
        return len(self.items)

    def candidates_for(self, folded_query: str) -> list[int]:
        """Indices of items containing every character of the query."""

        pools = []
        for ch in set(folded_query):
            pool = self._char_map.get(ch)
            if not pool:
                return []
            pools.append(pool)
        pools.sort(key=len)
        return sorted(frozenset.intersection(*pools)) if pools else list(range(len(self.items)))


def _score(query: str, e: _Entry) -> float | None:
    f = e.folded
    if f == query:
        return EXACT_SCORE
    if f.startswith(query):
        return PREFIX_BASE + 900.0 / len(f)

    best: float | None = None
    for start in e.positions.get(query[0], ()):
        prev, gap = start, 0
        for ch in query[1:]:
            plist = e.positions.get(ch, ())
            j = bisect_right(plist, prev)
            if j == len(plist):
                break
            gap += plist[j] - prev - 1
            prev = plist[j]
        else:
            s = SUBSEQUENCE_BASE - gap + max(0, 10 - start)
            if start in e.boundaries:
                s += _WORD_BOUNDARY_BONUS
            best = s if best is None else max(best, s)
            continue
        # A later start leaves fewer characters to the right; it fails too.
        break
    if best is None:
        return None
    return max(1.0, best)


class FuzzyMatcher:
    """Scores and ranks candidates; owns a bounded result cache.

    Parameters
    ----------
    max_results:
        Default cap on returned matches.
    max_cache_size:
        Result-cache ceiling. When exceeded, the oldest quarter of entries
        (at least one) is evicted.
    """

    def __init__(self, *, max_results: int = 50, max_cache_size: int = 1000) -> None:
        if max_results < 1:
            raise ValueError("max_results must be a positive integer")
        if max_cache_size < 1:
            raise ValueError("max_cache_size must be a positive integer")
        self.max_results = max_results
        self.max_cache_size = max_cache_size
        self._versions = itertools.count(1)
        self._cache: dict[tuple[str, int, int], tuple[FuzzyMatch, ...]] = {}

    def index(self, items: Sequence[str], usage_counts: Mapping[str, int] | None = None) -> CandidateSet:
        return CandidateSet(items, usage_counts, next(self._versions))

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    def match(
        self,
        query: str,
        items: CandidateSet | Sequence[str],
        usage_counts: Mapping[str, int] | None = None,
        *,
        limit: int | None = None,
    ) -> list[FuzzyMatch]:
        """Rank ``items`` against ``query``; at most ``limit`` (default ``max_results``).

        Plain sequences are indexed for this call only and bypass the result
        cache; pass a :class:`CandidateSet` to reuse the index and cache.
        ``usage_counts`` applies to plain sequences; a candidate set carries
        its own.
        """

        cap = self.max_results if limit is None else limit
        if cap < 1:
            raise ValueError("limit must be a positive integer")
        cached = isinstance(items, CandidateSet)
        cs = items if isinstance(items, CandidateSet) else CandidateSet(items, usage_counts, 0)
        if not len(cs):
            return []

        q = fold(query)
        if not q.strip():
            return [FuzzyMatch(item, 0.0) for item in cs.items[:cap]]

        key = (q, cs.version, cap)
        if cached:
            hit = self._cache.get(key)
            if hit is not None:
                return list(hit)

        scored: list[tuple[float, int, tuple[str, str], str]] = []
        for idx in cs.candidates_for(q):
            e = cs._entries[idx]
            s = _score(q, e)
            if s is not None:
                scored.append((s, cs.usage.get(e.item, 0), e.collation, e.item))
        scored.sort(key=lambda r: (-r[0], -r[1], r[2]))
        result = tuple(FuzzyMatch(item, score) for score, _u, _c, item in scored[:cap])

        if cached:
            self._store(key, result)
        return list(result)

    def _store(self, key: tuple[str, int, int], result: tuple[FuzzyMatch, ...]) -> None:
        self._cache[key] = result
        if len(self._cache) > self.max_cache_size:
            n = max(1, math.ceil(len(self._cache) * 0.25))
            for old in list(itertools.islice(self._cache, n)):
                del self._cache[old]
            _logger.debug("fuzzy:cache_evict removed=%d remaining=%d", n, len(self._cache))


def fuzzy_match(
    query: str,
    items: Sequence[str],
    *,
    usage_counts: Mapping[str, int] | None = None,
    max_results: int | None = None,
) -> list[FuzzyMatch]:
    """One-off ranking with a throwaway matcher (no shared cache)."""

    limit = max_results if max_results is not None else max(1, len(items))
    return FuzzyMatcher(max_results=limit).match(query, items, usage_counts)


__all__ = [
    "CandidateSet",
    "EXACT_SCORE",
    "FuzzyMatch",
    "FuzzyMatcher",
    "PREFIX_BASE",
    "SUBSEQUENCE_BASE",
    "collation_key",
    "fold",
    "fuzzy_match",
]
