"""Public interface for the ``hledger_assist`` package.

This module exposes the query surface, the completion engine, the project
cache and the public models/types as the stable import surface. There is no
runtime logic here, only symbol re-exports.
"""

from .aggregator import ProjectCache
from .api import (
    classify_position,
    fuzzy_match,
    get_all_accounts,
    get_commodities,
    get_defined_accounts,
    get_last_date,
    get_payees,
    get_tag_keys,
    get_tag_values,
    get_transaction_templates,
    get_used_accounts,
)
from .builder import build, build_async, build_chunked, build_text, merge, merge_all
from .completion import CompletionEngine, CompletionItem, CompletionKind
from .config import Settings, load_settings
from .errors import AggregationCancelled
from .fuzzy import FuzzyMatch, FuzzyMatcher
from .lexer import tokenize
from .models import (
    CacheEntry,
    ParsedData,
    ParseWarning,
    RecentTemplateBuffer,
    Token,
    TokenKind,
    TransactionTemplate,
)
from .position import LineContext

__all__ = [
    # API
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
    # Parsing
    "tokenize",
    "build",
    "build_async",
    "build_chunked",
    "build_text",
    "merge",
    "merge_all",
    # Services
    "CompletionEngine",
    "FuzzyMatcher",
    "ProjectCache",
    "Settings",
    "load_settings",
    # Models / types
    "AggregationCancelled",
    "CacheEntry",
    "CompletionItem",
    "CompletionKind",
    "FuzzyMatch",
    "LineContext",
    "ParseWarning",
    "ParsedData",
    "RecentTemplateBuffer",
    "Token",
    "TokenKind",
    "TransactionTemplate",
]
