import pytest

from hledger_assist.position import CompletionDomain, LineContext, analyze, classify


def _at_end(line: str) -> LineContext:
    return classify(line, len(line))


def test_amount_followed_by_one_space_is_after_amount():
    assert _at_end("    Assets:Cash    100.00 ") is LineContext.AFTER_AMOUNT


def test_amount_followed_by_two_spaces_is_forbidden():
    assert _at_end("    Assets:Cash    100.00  ") is LineContext.FORBIDDEN


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("", LineContext.LINE_START),
        ("2", LineContext.LINE_START),
        ("2024", LineContext.LINE_START),
        ("2024-0", LineContext.LINE_START),
        ("2024-01-15", LineContext.LINE_START),
        ("2024-01-15 *", LineContext.LINE_START),
        ("2024-01-15 ", LineContext.AFTER_DATE),
        ("2024-01-15 Gro", LineContext.AFTER_DATE),
        ("2024-01-15 * ", LineContext.AFTER_DATE),
        ("2024-01-15 * (12) Grocery St", LineContext.AFTER_DATE),
        ("01/15/2024 Shop", LineContext.AFTER_DATE),
        ("hello", LineContext.FORBIDDEN),
        ("account Assets", LineContext.FORBIDDEN),
    ],
)
def test_top_level_lines(line, expected):
    assert _at_end(line) is expected


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("    ", LineContext.IN_POSTING),
        ("    Exp", LineContext.IN_POSTING),
        ("    * Assets:Ca", LineContext.IN_POSTING),
        ("    Expenses:Eating Out", LineContext.IN_POSTING),
        ("    Assets:Cash  ", LineContext.IN_POSTING),
        ("    Assets:Cash  10", LineContext.FORBIDDEN),
        ("    Assets:Cash  10 US", LineContext.AFTER_AMOUNT),
        ("    Assets:Cash  $10 ", LineContext.AFTER_AMOUNT),
        ("    Assets:Cash  -5.5 ", LineContext.AFTER_AMOUNT),
        ("    Assets:Cash  10 @ ", LineContext.FORBIDDEN),
        ("\tAssets:Cash\t10 ", LineContext.AFTER_AMOUNT),
    ],
)
def test_posting_lines(line, expected):
    assert _at_end(line) is expected


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("; top-level note", LineContext.IN_COMMENT),
        ("    ; note", LineContext.IN_COMMENT),
        ("    ; project:ho", LineContext.IN_TAG_VALUE),
        ("    ; project: ", LineContext.IN_TAG_VALUE),
        ("    ; project:home, ", LineContext.IN_COMMENT),
        ("    ; project:home, trip:", LineContext.IN_TAG_VALUE),
        ("2024-01-15 Shop  ; trip:", LineContext.IN_TAG_VALUE),
        ("    Assets:Cash  10 USD  ; ", LineContext.IN_COMMENT),
        ("# hash comment", LineContext.IN_COMMENT),
    ],
)
def test_comment_contexts_take_priority(line, expected):
    assert _at_end(line) is expected


def test_only_text_left_of_cursor_matters():
    line = "2024-01-15 Grocery Store"
    assert classify(line, 0) is LineContext.LINE_START
    assert classify(line, 4) is LineContext.LINE_START
    assert classify(line, 11) is LineContext.AFTER_DATE


def test_column_past_end_is_forbidden():
    assert classify("2024", 10) is LineContext.FORBIDDEN


def test_negative_column_raises():
    with pytest.raises(ValueError):
        classify("2024", -1)


def test_analyze_reports_text_and_domain():
    info = analyze("    Exp  ", 7)
    assert info.context is LineContext.IN_POSTING
    assert (info.before, info.after) == ("    Exp", "  ")
    assert info.domain is CompletionDomain.ACCOUNT
    assert analyze("hello", 5).domain is None
