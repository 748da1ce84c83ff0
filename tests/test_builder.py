import asyncio
import unicodedata

import pytest

from hledger_assist.builder import (
    ModelBuilder,
    build_async,
    build_chunked,
    build_text,
    merge,
    merge_all,
)
from hledger_assist.lexer import tokenize
from hledger_assist.models import (
    MAX_TEMPLATES_PER_PAYEE,
    RECENT_BUFFER_CAPACITY,
    ParsedData,
    TransactionStatus,
    make_template_key,
)
from tests.helpers.journals import HOUSEHOLD, dedent, txn


def test_household_journal_model():
    data = build_text(HOUSEHOLD)

    assert data.payees == {"Grocery Store", "Landlord"}
    assert data.declared_payees == {"Landlord"}
    assert dict(data.payee_usage) == {"Grocery Store": 2, "Landlord": 1}
    assert data.defined_accounts == {"Assets:Checking", "Expenses:Groceries", "Expenses:Rent"}
    assert data.used_accounts == data.defined_accounts
    assert dict(data.account_usage) == {
        "Expenses:Groceries": 2,
        "Assets:Checking": 3,
        "Expenses:Rent": 1,
    }
    assert set(data.commodities) == {"$"}
    assert data.commodity_usage["$"] == 4
    assert data.commodities["$"].declared
    assert data.tags == {"trip", "project"}
    assert data.tag_values["project"] == {"home"}
    assert data.last_date == "2024-02-01"
    assert not data.warnings


def test_transaction_header_fields():
    first = build_text(HOUSEHOLD).transactions[0]
    assert first.date == "2024-01-05"
    assert first.status is TransactionStatus.CLEARED
    assert first.code == "101"
    assert first.payee == "Grocery Store"
    assert first.note == "weekly shop"
    assert first.tags == (("trip", "weekly"),)


def test_posting_comment_tags_attach_to_posting():
    rent = build_text(HOUSEHOLD).transactions[2]
    assert rent.status is TransactionStatus.PENDING
    assert rent.postings[0].tags == (("project", "home"),)


def test_template_records_last_seen_amounts():
    data = build_text(HOUSEHOLD)
    key = make_template_key(["Expenses:Groceries", "Assets:Checking"])
    template = data.templates["Grocery Store"][key]
    assert template.usage_count == 2
    assert template.last_used_date == "2024-01-12"
    assert [(p.account, p.amount, p.commodity) for p in template.postings] == [
        ("Expenses:Groceries", "38.00", "$"),
        ("Assets:Checking", "-38.00", "$"),
    ]
    assert data.recent_templates["Grocery Store"].count(key) == 2


def test_single_posting_transactions_produce_no_template():
    data = build_text("2024-01-01 Shop\n    Expenses:Food  5\n")
    assert "Shop" in data.payees
    assert "Shop" not in data.templates
    assert data.used_accounts == {"Expenses:Food"}


def test_template_cap_evicts_least_used_then_oldest():
    text = "".join(
        txn(f"2024-01-0{i + 1}", "Shop", f"Expenses:E{i}", "Assets:Cash") for i in range(6)
    )
    # Reuse the second shape so it is not the eviction candidate.
    text += txn("2024-01-07", "Shop", "Expenses:E1", "Assets:Cash")
    data = build_text(text)

    templates = data.templates["Shop"]
    assert len(templates) == MAX_TEMPLATES_PER_PAYEE
    assert make_template_key(["Expenses:E0", "Assets:Cash"]) not in templates
    assert templates[make_template_key(["Expenses:E1", "Assets:Cash"])].usage_count == 2


def test_recent_buffer_wraps_at_capacity():
    text = "".join(
        txn("2024-01-01", "Shop", "Expenses:A" if i % 2 else "Expenses:B", "Assets:Cash")
        for i in range(RECENT_BUFFER_CAPACITY + 10)
    )
    buf = build_text(text).recent_templates["Shop"]
    assert len(buf) == RECENT_BUFFER_CAPACITY
    assert buf.capacity == RECENT_BUFFER_CAPACITY
    assert buf.write_index == 10
    assert buf.count(make_template_key(["Expenses:A", "Assets:Cash"])) == 25
    with pytest.raises(RuntimeError):
        buf.push("x")


def test_unparsable_posting_empties_postings_but_counts_payee():
    data = build_text(
        dedent(
            """
            2024-01-01 Shop
                Expenses:Food    $$abc
                Assets:Cash
            """
        )
    )
    assert data.transactions[0].postings == ()
    assert data.payee_usage["Shop"] == 1
    assert not data.used_accounts
    assert "Shop" not in data.templates
    assert len(data.warnings) == 1
    assert "unparsable posting" in data.warnings[0].message


def test_invalid_date_skips_block_with_warning():
    data = build_text(
        dedent(
            """
            2024-02-30 Shop
                Expenses:Food  5
                Assets:Cash

            2024-03-01 Other
                Expenses:Fun  5
                Assets:Cash
            """
        )
    )
    assert data.payees == {"Other"}
    assert "Expenses:Food" not in data.accounts
    assert data.warnings[0].line == 0
    assert "invalid date" in data.warnings[0].message


def test_unicode_payees_are_nfc_normalized():
    composed = unicodedata.normalize("NFC", "Café")
    decomposed = unicodedata.normalize("NFD", "Café")
    text = txn("2024-01-01", composed, "Expenses:Food", "Assets:Cash") + txn(
        "2024-01-02", decomposed, "Expenses:Food", "Assets:Cash"
    )
    data = build_text(text)
    assert data.payees == {composed}
    assert data.payee_usage[composed] == 2


def test_directives():
    data = build_text(
        dedent(
            """
            alias chk = Assets:Checking
            D $1,000.00
            commodity EUR
              format 1.000,00 EUR
            tag receipt
            Y 2023

            01-05 Shop
                Expenses:Food  5,50 EUR
                chk
            """
        )
    )
    assert data.aliases == {"chk": "Assets:Checking"}
    assert data.default_commodity == "$"
    eur = data.commodities["EUR"]
    assert eur.declared and eur.format is not None and eur.format.decimal_mark == ","
    assert "receipt" in data.tags
    assert data.transactions[0].date == "2023-01-05"
    assert data.last_date == "2023-01-05"


def test_decimal_mark_directive_governs_amounts():
    data = build_text("decimal-mark ,\n2024-01-01 Shop\n    a  1.000,50\n    b\n")
    assert len(data.transactions[0].postings) == 2
    bad = build_text("decimal-mark ,\n2024-01-01 Shop\n    a  1,000,50\n    b\n")
    assert bad.transactions[0].postings == ()


def test_snapshot_is_immutable():
    data = build_text(HOUSEHOLD)
    with pytest.raises(TypeError):
        data.payee_usage["Grocery Store"] = 99  # type: ignore[index]
    with pytest.raises(AttributeError):
        data.last_date = "2030-01-01"  # type: ignore[misc]


def test_builder_rejects_feed_after_finish():
    builder = ModelBuilder()
    builder.feed(tokenize("2024-01-01 Shop\n"))
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.feed(tokenize("2024-01-02 Other\n"))


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def _part(payee: str, source: str) -> ParsedData:
    return build_text(txn("2024-01-01", payee, "Expenses:Food", "Assets:Cash"), source=source)


def test_merge_sums_usage_and_keeps_inputs_untouched():
    a, b = _part("Shop", "a.journal"), _part("Shop", "b.journal")
    merged = merge(a, b)
    assert merged.payee_usage["Shop"] == 2
    assert merged.account_usage["Expenses:Food"] == 2
    assert a.payee_usage["Shop"] == 1
    assert b.payee_usage["Shop"] == 1
    key = make_template_key(["Expenses:Food", "Assets:Cash"])
    assert merged.templates["Shop"][key].usage_count == 2
    assert merged.recent_templates["Shop"].count(key) == 2


def test_merge_is_associative_for_counts():
    a, b, c = _part("Shop", "a"), _part("Shop", "b"), _part("Cafe", "c")
    left = merge(merge(a, b), c)
    right = merge(a, merge(b, c))
    assert dict(left.payee_usage) == dict(right.payee_usage)
    assert dict(left.account_usage) == dict(right.account_usage)
    assert left.payees == right.payees


def test_merge_with_empty_snapshot_is_identity():
    a = _part("Shop", "a")
    assert merge(a, ParsedData()) == a
    assert merge(ParsedData(), a) == a


def test_merging_same_content_twice_does_not_double_count():
    a = _part("Shop", "a.journal")
    again = _part("Shop", "a.journal")
    assert merge(a, again).payee_usage["Shop"] == 1
    assert merge_all([a, again, a]).payee_usage["Shop"] == 1


# ---------------------------------------------------------------------------
# Chunked / async building
# ---------------------------------------------------------------------------


def test_build_chunked_matches_single_pass():
    text = HOUSEHOLD * 3
    gen = build_chunked(text, chunk_size=4)
    progress = []
    while True:
        try:
            progress.append(next(gen))
        except StopIteration as stop:
            chunked = stop.value
            break
    assert progress == sorted(progress)
    assert progress[-1] == len(text.splitlines())
    assert chunked == build_text(text)


def test_build_chunked_rejects_bad_chunk_size():
    with pytest.raises(ValueError):
        next(build_chunked("", chunk_size=0))


def test_build_async_matches_single_pass():
    assert asyncio.run(build_async(HOUSEHOLD, chunk_size=2)) == build_text(HOUSEHOLD)


def test_seven_shapes_keep_at_most_five_templates():
    text = "".join(
        txn(f"2024-02-0{i + 1}", "Market", f"Expenses:S{i}", "Assets:Cash") for i in range(7)
    )
    data = build_text(text)
    assert len(data.templates["Market"]) == MAX_TEMPLATES_PER_PAYEE
    assert len(data.recent_templates["Market"]) == 7


def test_reparse_of_identical_text_merges_without_double_counting():
    once = build_text(HOUSEHOLD)
    twice = merge(build_text(HOUSEHOLD), build_text(HOUSEHOLD))
    assert dict(twice.payee_usage) == dict(once.payee_usage)
    assert dict(twice.account_usage) == dict(once.account_usage)
    assert dict(twice.tag_usage) == dict(once.tag_usage)


def test_cost_and_assertion_postings_with_cyrillic_names():
    data = build_text(
        dedent(
            """
            2024-03-01 Брокер
                Активы:Брокер  10 "My Currency" @@ $150 == 20 "My Currency"
                Активы:Наличные
                Assets:Cash  ==* 0
            """
        )
    )
    [t] = data.transactions
    assert t.payee == "Брокер"
    first = t.postings[0]
    assert (first.account, first.amount, first.commodity) == ("Активы:Брокер", "10", "My Currency")
    assert first.side_commodities == ("$", "My Currency")
    assert t.postings[2].amount is None
    assert data.used_accounts == {"Активы:Брокер", "Активы:Наличные", "Assets:Cash"}
    assert not data.warnings
    assert "Брокер" in data.templates


def test_cost_commodities_are_known_but_not_counted():
    data = build_text("2024-01-01 Broker\n    Assets:Broker  10 AAPL @@ $150\n    Assets:Cash\n")
    assert set(data.commodities) == {"AAPL", "$"}
    assert dict(data.commodity_usage) == {"AAPL": 1}
