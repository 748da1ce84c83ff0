from hledger_assist import api
from hledger_assist.builder import build_text
from hledger_assist.models import make_template_key
from hledger_assist.position import LineContext
from tests.helpers.journals import HOUSEHOLD, txn


def test_name_lists_are_sorted():
    data = build_text(HOUSEHOLD + "account Éclair:Fund\naccount assets:Zeta\n")
    assert api.get_defined_accounts(data) == [
        "Assets:Checking",
        "assets:Zeta",
        "Éclair:Fund",
        "Expenses:Groceries",
        "Expenses:Rent",
    ]
    assert api.get_used_accounts(data) == [
        "Assets:Checking",
        "Expenses:Groceries",
        "Expenses:Rent",
    ]
    assert api.get_payees(data) == ["Grocery Store", "Landlord"]
    assert api.get_commodities(data) == ["$"]
    assert api.get_tag_keys(data) == ["project", "trip"]
    assert api.get_tag_values(data, "trip") == ["weekly"]
    assert api.get_tag_values(data, "missing") == []
    assert api.get_last_date(data) == "2024-02-01"


def test_templates_ordered_by_recent_use_then_usage():
    text = (
        txn("2024-01-01", "Shop", "Expenses:Old", "Assets:Cash")
        + txn("2024-01-02", "Shop", "Expenses:Old", "Assets:Cash")
        + txn("2024-01-03", "Shop", "Expenses:New", "Assets:Cash")
        + txn("2024-01-04", "Shop", "Expenses:Newest", "Assets:Cash")
    )
    data = build_text(text)
    keys = [t.key for t in api.get_transaction_templates(data, "Shop")]
    assert keys == [
        make_template_key(["Expenses:Old", "Assets:Cash"]),
        # Equal counts: the most recently used shape first.
        make_template_key(["Expenses:Newest", "Assets:Cash"]),
        make_template_key(["Expenses:New", "Assets:Cash"]),
    ]
    assert api.get_transaction_templates(data, "Unknown") == []


def test_classify_and_fuzzy_passthrough():
    assert api.classify_position("2024-01-01 ", 11) is LineContext.AFTER_DATE
    result = api.fuzzy_match("gro", ["Grocery Store", "Amazon"], max_results=1)
    assert [m.item for m in result] == ["Grocery Store"]
