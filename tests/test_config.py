import logging

import pytest
from pydantic import ValidationError

from hledger_assist.config import Settings, load_settings


def test_defaults():
    s = load_settings({})
    assert s == Settings()
    assert s.max_results == 50
    assert s.fuzzy_cache_size == 1000
    assert s.max_include_depth == 10
    assert s.date_order == "dmy"
    assert s.journal_extensions == (".journal", ".hledger", ".ledger")


def test_environment_overrides():
    s = load_settings(
        {
            "HLA_MAX_RESULTS": "7",
            "HLA_SUPPRESS_MID_WORD": "off",
            "HLA_DATE_ORDER": "MDY",
            "HLA_JOURNAL_EXTENSIONS": "journal, .j",
        }
    )
    assert s.max_results == 7
    assert s.suppress_mid_word is False
    assert s.date_order == "mdy"
    assert s.journal_extensions == (".journal", ".j")


def test_invalid_environment_values_fall_back(caplog):
    with caplog.at_level(logging.WARNING, logger="hledger_assist.config"):
        s = load_settings(
            {
                "HLA_MAX_RESULTS": "lots",
                "HLA_CHUNK_SIZE": "0",
                "HLA_TEMPLATE_COMPLETIONS": "maybe",
                "HLA_DATE_ORDER": "ymd",
            }
        )
    assert s == Settings()
    assert len(caplog.records) == 4


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("HLA_FUZZY_CACHE_SIZE", "12")
    assert load_settings().fuzzy_cache_size == 12


def test_settings_are_strict_and_frozen():
    with pytest.raises(ValidationError):
        Settings(max_results=0)
    with pytest.raises(ValidationError):
        Settings(max_results="5")  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        Settings(unknown=1)  # type: ignore[call-arg]
    with pytest.raises(ValidationError):
        Settings().max_results = 3  # type: ignore[misc]
