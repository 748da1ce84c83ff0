"""Data models for ``hledger_assist``.

Two families live here:

- Frozen dataclasses for everything the parser produces (tokens, postings,
  transactions, templates) and the immutable :class:`ParsedData` snapshot.
  Snapshots are built by :mod:`hledger_assist.builder` and never mutated;
  merging two snapshots produces a third.
- Pydantic DTOs used at the CLI boundary for JSON output.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict

RECENT_BUFFER_CAPACITY = 50
MAX_TEMPLATES_PER_PAYEE = 5

# ---------------------------------------------------------------------------
# Lexer output
# ---------------------------------------------------------------------------


class TokenKind(Enum):
    DATE = "date"
    STATUS = "status"
    CODE = "code"
    PAYEE = "payee"
    NOTE = "note"
    COMMENT = "comment"
    DIRECTIVE = "directive"
    ACCOUNT = "account"
    AMOUNT = "amount"
    COMMODITY = "commodity"
    TAG_KEY = "tag_key"
    TAG_VALUE = "tag_value"
    OPERATOR = "operator"
    # Leading whitespace of an indented line.
    INDENT = "indent"
    # Catch-all: directive arguments and anything the line rules do not know.
    TEXT = "text"
    # Emitted at the end of every source line, blank lines included.
    NEWLINE = "newline"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    line: int
    column: int


@dataclass(frozen=True, slots=True)
class ParseWarning:
    """Content the parser or aggregator skipped, with where it happened."""

    line: int
    message: str
    source: str | None = None

    def __str__(self) -> str:
        where = f"{self.source}:{self.line + 1}" if self.source else f"line {self.line + 1}"
        return f"{where}: {self.message}"


# ---------------------------------------------------------------------------
# Journal records
# ---------------------------------------------------------------------------


class TransactionStatus(Enum):
    NONE = ""
    PENDING = "!"
    CLEARED = "*"


@dataclass(frozen=True, slots=True)
class Posting:
    account: str
    # ``None`` means the amount is left for the journal tool to infer.
    amount: str | None = None
    commodity: str | None = None
    tags: tuple[tuple[str, str], ...] = ()
    # Commodities written after a cost (``@``/``@@``) or assertion (``=``) operator.
    side_commodities: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Transaction:
    date: str
    payee: str
    postings: tuple[Posting, ...] = ()
    status: TransactionStatus = TransactionStatus.NONE
    code: str | None = None
    note: str | None = None
    tags: tuple[tuple[str, str], ...] = ()
    line: int = 0


@dataclass(frozen=True, slots=True)
class Account:
    """An account name; ``defined`` and ``used`` are independent."""

    name: str
    defined: bool = False
    used: bool = False


@dataclass(frozen=True, slots=True)
class CommodityFormat:
    """Display format declared by a ``commodity`` or ``format`` directive."""

    symbol: str
    decimal_mark: str = "."
    group_separator: str | None = None
    decimal_places: int = 0
    symbol_before: bool = False
    symbol_spacing: bool = True
    sample: str = ""


@dataclass(frozen=True, slots=True)
class Commodity:
    symbol: str
    format: CommodityFormat | None = None
    declared: bool = False


# ---------------------------------------------------------------------------
# Transaction templates
# ---------------------------------------------------------------------------

# Sorted, de-duplicated account names joined with "|".
TemplateKey: TypeAlias = str


def make_template_key(accounts: Iterable[str]) -> TemplateKey:
    """Order-independent fingerprint of a transaction's account set."""

    return "|".join(sorted(set(accounts)))


@dataclass(frozen=True, slots=True)
class TemplatePosting:
    account: str
    amount: str | None = None
    commodity: str | None = None


@dataclass(frozen=True, slots=True)
class TransactionTemplate:
    """A payee's recurring account-set shape with its last-seen amounts."""

    payee: str
    key: TemplateKey
    postings: tuple[TemplatePosting, ...]
    usage_count: int
    last_used_date: str


def template_eviction_order(t: TransactionTemplate) -> tuple[int, str, str]:
    """Sort key putting the first template to evict first.

    Least used goes first; equal usage evicts the oldest ``last_used_date``;
    a full tie evicts the lexicographically smallest key.
    """

    return (t.usage_count, t.last_used_date, t.key)


class RecentTemplateBuffer:
    """Fixed-capacity ring of template keys in the order they were used.

    The backing list never grows past ``capacity``; ``write_index`` is where
    the next key lands and wraps modulo ``capacity``.
    """

    __slots__ = ("_slots", "_write_index", "_length", "_frozen")

    def __init__(self, capacity: int = RECENT_BUFFER_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be a positive integer")
        self._slots: list[TemplateKey | None] = [None] * capacity
        self._write_index = 0
        self._length = 0
        self._frozen = False

    @classmethod
    def from_keys(
        cls, keys: Iterable[TemplateKey], capacity: int = RECENT_BUFFER_CAPACITY
    ) -> RecentTemplateBuffer:
        buf = cls(capacity)
        for k in keys:
            buf.push(k)
        return buf

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def write_index(self) -> int:
        return self._write_index

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return self._length

    def push(self, key: TemplateKey) -> None:
        if self._frozen:
            raise RuntimeError("RecentTemplateBuffer is frozen; copy() it to modify")
        self._slots[self._write_index] = key
        self._write_index = (self._write_index + 1) % len(self._slots)
        if self._length < len(self._slots):
            self._length += 1

    def keys(self) -> tuple[TemplateKey, ...]:
        """Keys oldest to newest."""

        if self._length < len(self._slots):
            ordered = self._slots[: self._length]
        else:
            ordered = self._slots[self._write_index :] + self._slots[: self._write_index]
        return tuple(k for k in ordered if k is not None)

    def count(self, key: TemplateKey) -> int:
        return sum(1 for k in self._slots if k == key)

    def copy(self) -> RecentTemplateBuffer:
        out = RecentTemplateBuffer(len(self._slots))
        out._slots = list(self._slots)
        out._write_index = self._write_index
        out._length = self._length
        return out

    def freeze(self) -> RecentTemplateBuffer:
        self._frozen = True
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecentTemplateBuffer):
            return NotImplemented
        return (
            self.capacity == other.capacity
            and self._write_index == other._write_index
            and self.keys() == other.keys()
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"RecentTemplateBuffer(len={self._length}, write_index={self._write_index})"


# ---------------------------------------------------------------------------
# Aggregate snapshot
# ---------------------------------------------------------------------------


def _empty_map() -> Mapping[Any, Any]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class ParsedData:
    """Immutable semantic snapshot of one or more journal texts.

    Mappings are read-only views over private dicts; nested collections are
    frozensets/tuples and recent-template buffers are frozen. ``sources``
    holds digests of the texts folded in, which lets :func:`builder.merge`
    recognise content it has already counted.
    """

    accounts: Mapping[str, Account] = field(default_factory=_empty_map)
    account_usage: Mapping[str, int] = field(default_factory=_empty_map)
    commodities: Mapping[str, Commodity] = field(default_factory=_empty_map)
    commodity_usage: Mapping[str, int] = field(default_factory=_empty_map)
    payees: frozenset[str] = frozenset()
    declared_payees: frozenset[str] = frozenset()
    payee_usage: Mapping[str, int] = field(default_factory=_empty_map)
    tags: frozenset[str] = frozenset()
    tag_usage: Mapping[str, int] = field(default_factory=_empty_map)
    tag_values: Mapping[str, frozenset[str]] = field(default_factory=_empty_map)
    tag_value_usage: Mapping[tuple[str, str], int] = field(default_factory=_empty_map)
    payee_accounts: Mapping[str, frozenset[str]] = field(default_factory=_empty_map)
    payee_account_usage: Mapping[tuple[str, str], int] = field(default_factory=_empty_map)
    aliases: Mapping[str, str] = field(default_factory=_empty_map)
    templates: Mapping[str, Mapping[TemplateKey, TransactionTemplate]] = field(
        default_factory=_empty_map
    )
    recent_templates: Mapping[str, RecentTemplateBuffer] = field(default_factory=_empty_map)
    transactions: tuple[Transaction, ...] = ()
    default_commodity: str | None = None
    decimal_mark: str | None = None
    last_date: str | None = None
    includes: tuple[str, ...] = ()
    warnings: tuple[ParseWarning, ...] = ()
    sources: frozenset[str] = frozenset()

    @property
    def defined_accounts(self) -> frozenset[str]:
        return frozenset(a.name for a in self.accounts.values() if a.defined)

    @property
    def used_accounts(self) -> frozenset[str]:
        return frozenset(a.name for a in self.accounts.values() if a.used)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Aggregated snapshot for one journal (or workspace) path.

    ``mtimes`` records ``st_mtime_ns`` for every file that contributed, so the
    aggregator can tell whether any of them changed since ``loaded_at``.
    """

    path: Path
    data: ParsedData
    mtimes: Mapping[Path, int]
    loaded_at: float
    warnings: tuple[ParseWarning, ...] = ()


# ---------------------------------------------------------------------------
# CLI DTOs
# ---------------------------------------------------------------------------


class TemplateSummary(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")

    payee: str
    accounts: list[str]
    usage_count: int
    recent_count: int
    last_used_date: str


class SnapshotSummary(BaseModel):
    """JSON-friendly overview of a snapshot, printed by ``hledger-assist summary``."""

    model_config = ConfigDict(strict=True, extra="forbid")

    path: str
    transactions: int
    defined_accounts: list[str]
    used_accounts: list[str]
    payees: list[str]
    commodities: list[str]
    tags: list[str]
    default_commodity: str | None
    decimal_mark: str | None
    last_date: str | None
    warnings: list[str]

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> SnapshotSummary:
        d = entry.data
        return cls(
            path=str(entry.path),
            transactions=len(d.transactions),
            defined_accounts=sorted(d.defined_accounts),
            used_accounts=sorted(d.used_accounts),
            payees=sorted(d.payees),
            commodities=sorted(d.commodities),
            tags=sorted(d.tags),
            default_commodity=d.default_commodity,
            decimal_mark=d.decimal_mark,
            last_date=d.last_date,
            warnings=[str(w) for w in _dedupe_warnings((*d.warnings, *entry.warnings))],
        )


def _dedupe_warnings(items: Sequence[ParseWarning]) -> list[ParseWarning]:
    seen: set[ParseWarning] = set()
    out: list[ParseWarning] = []
    for w in items:
        if w not in seen:
            seen.add(w)
            out.append(w)
    return out


__all__ = [
    "Account",
    "CacheEntry",
    "Commodity",
    "CommodityFormat",
    "MAX_TEMPLATES_PER_PAYEE",
    "ParseWarning",
    "ParsedData",
    "Posting",
    "RECENT_BUFFER_CAPACITY",
    "RecentTemplateBuffer",
    "SnapshotSummary",
    "TemplateKey",
    "TemplatePosting",
    "TemplateSummary",
    "Token",
    "TokenKind",
    "Transaction",
    "TransactionStatus",
    "TransactionTemplate",
    "make_template_key",
    "template_eviction_order",
]
