"""Exceptions raised by ``hledger_assist``.

Malformed journal *content* never raises: the lexer and model builder record
a :class:`~hledger_assist.models.ParseWarning` and move on. Exceptions are
reserved for caller misuse (``ValueError``) and for control flow the caller
asked for, such as abandoning a long aggregation pass.
"""

from __future__ import annotations

from pathlib import Path


class AggregationCancelled(RuntimeError):
    """A workspace/include aggregation pass was abandoned via its cancel flag.

    The cache entry that existed before the pass (if any) is left in place.
    """

    def __init__(self, path: Path, *, files_done: int) -> None:
        super().__init__(f"aggregation of {path} cancelled after {files_done} file(s)")
        self.path = path
        self.files_done = files_done


__all__ = ["AggregationCancelled"]
