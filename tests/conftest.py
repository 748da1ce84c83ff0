"""Pytest configuration for test isolation.

Settings are read from ``HLA_*`` environment variables and logging from
``HLEDGER_ASSIST_LOG_*``; a developer shell (or a ``.env`` the CLI loaded in
an earlier test) could leak either into later tests. The autouse fixture
clears them and undoes any ``configure_logging`` call, so every test starts
from defaults.
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from hledger_assist.logging_setup import reset_logging


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop ``HLA_*``/``HLEDGER_ASSIST_*`` variables and reset package logging."""

    for name in list(os.environ):
        if name.startswith(("HLA_", "HLEDGER_ASSIST_")):
            monkeypatch.delenv(name, raising=False)
    reset_logging()
    yield
    reset_logging()
