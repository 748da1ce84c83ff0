from datetime import date

import pytest

from hledger_assist.dates import (
    detect_date_order,
    format_short,
    month_start,
    normalize_date,
    week_ago,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-01-05", "2024-01-05"),
        ("2024/1/5", "2024-01-05"),
        ("2024.01.05", "2024-01-05"),
        ("05.01.2024", "2024-01-05"),
        ("05/01/2024", "2024-01-05"),
        ("25/12/2024", "2024-12-25"),
    ],
)
def test_normalize_date_shapes(raw, expected):
    assert normalize_date(raw) == expected


def test_year_last_respects_order_unless_unambiguous():
    assert normalize_date("05/01/2024", order="mdy") == "2024-05-01"
    # 25 cannot be a month, so the reading is forced.
    assert normalize_date("12/25/2024", order="dmy") == "2024-12-25"
    # Dotted year-last dates are always day first.
    assert normalize_date("05.01.2024", order="mdy") == "2024-01-05"


def test_yearless_dates_use_default_year():
    assert normalize_date("1/5", default_year=2023) == "2023-01-05"
    assert normalize_date("12-31", default_year=2020) == "2020-12-31"


@pytest.mark.parametrize("raw", ["2024-02-30", "2024-13-01", "yesterday", "", "2024-01-05x"])
def test_normalize_date_rejects_invalid(raw):
    with pytest.raises(ValueError):
        normalize_date(raw)


def test_normalize_date_rejects_unknown_order():
    with pytest.raises(ValueError, match="unknown date order"):
        normalize_date("2024-01-01", order="ymd")  # type: ignore[arg-type]


def test_detect_date_order():
    assert detect_date_order(["25/01/2024", "03/02/2024"]) == "dmy"
    assert detect_date_order(["01/25/2024"]) == "mdy"
    assert detect_date_order(["2024-01-25", "01/02/2024"]) is None


def test_relative_helpers():
    d = date(2024, 1, 15)
    assert format_short(d) == "01-15"
    assert month_start(d) == date(2024, 1, 1)
    assert month_start(d, months_back=1) == date(2023, 12, 1)
    assert week_ago(d) == date(2024, 1, 8)
