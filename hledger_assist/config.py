"""Runtime settings for parsing, aggregation and completion.

Settings are a strict, frozen pydantic model. ``load_settings`` builds one
from ``HLA_*`` environment variables (the CLI loads ``.env`` first via
python-dotenv). A malformed variable is logged and ignored rather than
aborting: completion should keep working with defaults.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, field_validator

from .logging_setup import get_logger

_logger = get_logger("hledger_assist.config")

DateOrder: TypeAlias = Literal["dmy", "mdy"]

DEFAULT_EXTENSIONS: tuple[str, ...] = (".journal", ".hledger", ".ledger")
DEFAULT_EXCLUDE_DIRS: tuple[str, ...] = ("node_modules", ".git", ".vscode", "dist", "build")


class Settings(BaseModel):
    """Tunables shared by the aggregator, matcher and completion engine."""

    model_config = ConfigDict(strict=True, extra="forbid", frozen=True)

    max_results: int = 50
    fuzzy_cache_size: int = 1000
    chunk_size: int = 1000
    max_include_depth: int = 10
    date_order: DateOrder = "dmy"
    suppress_mid_word: bool = True
    template_completions: bool = True
    journal_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    exclude_dirs: tuple[str, ...] = DEFAULT_EXCLUDE_DIRS

    @field_validator("max_results", "fuzzy_cache_size", "chunk_size", "max_include_depth")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("journal_extensions")
    @classmethod
    def _dotted(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        out = tuple(e if e.startswith(".") else f".{e}" for e in (x.strip().lower() for x in v) if e)
        if not out:
            raise ValueError("journal_extensions must not be empty")
        return out


# ---------------------------------------------------------------------------
# Environment loading
# ---------------------------------------------------------------------------

_INT_VARS: dict[str, str] = {
    "max_results": "HLA_MAX_RESULTS",
    "fuzzy_cache_size": "HLA_FUZZY_CACHE_SIZE",
    "chunk_size": "HLA_CHUNK_SIZE",
    "max_include_depth": "HLA_MAX_INCLUDE_DEPTH",
}
_BOOL_VARS: dict[str, str] = {
    "suppress_mid_word": "HLA_SUPPRESS_MID_WORD",
    "template_completions": "HLA_TEMPLATE_COMPLETIONS",
}


def _env_bool(raw: str) -> bool | None:
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return None


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Return :class:`Settings` overridden by any ``HLA_*`` variables present.

    Parameters
    ----------
    environ:
        Mapping to read instead of ``os.environ`` (tests pass a dict).
    """

    env = os.environ if environ is None else environ
    values: dict[str, object] = {}

    for field, var in _INT_VARS.items():
        raw = env.get(var)
        if raw is None or not raw.strip():
            continue
        try:
            n = int(raw)
        except ValueError:
            _logger.warning("config:invalid_int var=%s value=%r; using default", var, raw)
            continue
        if n < 1:
            _logger.warning("config:non_positive var=%s value=%d; using default", var, n)
            continue
        values[field] = n

    for field, var in _BOOL_VARS.items():
        raw = env.get(var)
        if raw is None:
            continue
        flag = _env_bool(raw)
        if flag is None:
            _logger.warning("config:invalid_bool var=%s value=%r; using default", var, raw)
            continue
        values[field] = flag

    order = env.get("HLA_DATE_ORDER")
    if order is not None:
        order = order.strip().lower()
        if order in {"dmy", "mdy"}:
            values["date_order"] = order
        else:
            _logger.warning("config:invalid_date_order value=%r; using default", order)

    exts = env.get("HLA_JOURNAL_EXTENSIONS")
    if exts and exts.strip():
        values["journal_extensions"] = tuple(p for p in exts.split(",") if p.strip())

    return Settings(**values)


__all__ = ["DEFAULT_EXCLUDE_DIRS", "DEFAULT_EXTENSIONS", "DateOrder", "Settings", "load_settings"]
