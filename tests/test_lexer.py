from hledger_assist.lexer import LineKind, match_line, tokenize, tokenize_lines
from hledger_assist.models import Token, TokenKind


def _kinds(text: str) -> list[tuple[TokenKind, str]]:
    return [(t.kind, t.text) for t in tokenize(text) if t.kind is not TokenKind.NEWLINE]


def test_transaction_header_tokens_with_columns():
    line = "2024-01-15 * (42) Grocery Store | milk  ; trip:weekly"
    toks = [t for t in tokenize(line) if t.kind is not TokenKind.NEWLINE]
    assert [(t.kind, t.text, t.column) for t in toks[:4]] == [
        (TokenKind.DATE, "2024-01-15", 0),
        (TokenKind.STATUS, "*", 11),
        (TokenKind.CODE, "(42)", 13),
        (TokenKind.PAYEE, "Grocery Store", 18),
    ]
    assert [(t.kind, t.text) for t in toks[4:]] == [
        (TokenKind.NOTE, "milk"),
        (TokenKind.COMMENT, "trip:weekly"),
        (TokenKind.TAG_KEY, "trip"),
        (TokenKind.TAG_VALUE, "weekly"),
    ]


def test_posting_splits_amount_and_commodity():
    toks = [t for t in tokenize("    Expenses:Food    $45.20") if t.kind is not TokenKind.NEWLINE]
    assert [(t.kind, t.text, t.column) for t in toks] == [
        (TokenKind.INDENT, "    ", 0),
        (TokenKind.ACCOUNT, "Expenses:Food", 4),
        (TokenKind.COMMODITY, "$", 21),
        (TokenKind.AMOUNT, "45.20", 22),
    ]


def test_posting_with_cost_and_assertion():
    kinds = _kinds("    Assets:Broker    10 AAPL @ $150 = 20 AAPL")
    assert (TokenKind.OPERATOR, "@") in kinds
    assert (TokenKind.OPERATOR, "=") in kinds
    assert kinds[1] == (TokenKind.ACCOUNT, "Assets:Broker")
    assert kinds[2] == (TokenKind.AMOUNT, "10")
    assert kinds[3] == (TokenKind.COMMODITY, "AAPL")


def test_account_names_may_contain_single_spaces():
    kinds = _kinds("    Expenses:Eating Out  5 EUR")
    assert kinds[1] == (TokenKind.ACCOUNT, "Expenses:Eating Out")


def test_malformed_amount_becomes_text():
    kinds = _kinds("    Expenses:Food    $$abc")
    assert kinds == [
        (TokenKind.INDENT, "    "),
        (TokenKind.ACCOUNT, "Expenses:Food"),
        (TokenKind.TEXT, "$$abc"),
    ]


def test_directives():
    assert _kinds("account Assets:Checking  ; type:A") == [
        (TokenKind.DIRECTIVE, "account"),
        (TokenKind.ACCOUNT, "Assets:Checking"),
        (TokenKind.COMMENT, "type:A"),
        (TokenKind.TAG_KEY, "type"),
        (TokenKind.TAG_VALUE, "A"),
    ]
    assert _kinds("commodity EUR") == [
        (TokenKind.DIRECTIVE, "commodity"),
        (TokenKind.COMMODITY, "EUR"),
    ]
    assert _kinds("include other.journal") == [
        (TokenKind.DIRECTIVE, "include"),
        (TokenKind.TEXT, "other.journal"),
    ]
    assert _kinds("alias checking = Assets:Checking")[:4] == [
        (TokenKind.DIRECTIVE, "alias"),
        (TokenKind.ACCOUNT, "checking"),
        (TokenKind.OPERATOR, "="),
        (TokenKind.ACCOUNT, "Assets:Checking"),
    ]


def test_top_level_comment_has_no_indent_token():
    assert _kinds("; just a comment") == [(TokenKind.COMMENT, "just a comment")]


def test_unknown_line_is_single_text_token():
    assert _kinds("hello world") == [(TokenKind.TEXT, "hello world")]
    rule, _m = match_line("hello world")
    assert rule.kind is LineKind.UNKNOWN


def test_every_line_ends_with_newline_token():
    toks = list(tokenize("2024-01-01 A\n\n    x  1\n"))
    newlines = [t for t in toks if t.kind is TokenKind.NEWLINE]
    assert [t.line for t in newlines] == [0, 1, 2]


def test_crlf_line_endings_are_stripped():
    kinds = _kinds("2024-01-01 Shop\r\n    Expenses:Food  5\r\n")
    assert kinds[1] == (TokenKind.PAYEE, "Shop")
    assert kinds[-1] == (TokenKind.AMOUNT, "5")


def test_token_stream_is_restartable():
    stream = tokenize("2024-01-01 Shop\n    Expenses:Food  5\n")
    first = list(stream)
    second = list(stream)
    assert first == second
    assert all(isinstance(t, Token) for t in first)


def test_tokenize_lines_numbers_from_offset():
    toks = list(tokenize_lines(["2024-01-01 Shop"], first_line=10))
    assert {t.line for t in toks} == {10}


def test_tag_without_value_emits_empty_value():
    kinds = _kinds("    ; reviewed:, project:home")
    assert (TokenKind.TAG_KEY, "reviewed") in kinds
    assert (TokenKind.TAG_VALUE, "") in kinds
    assert (TokenKind.TAG_VALUE, "home") in kinds


def test_total_cost_and_balance_assertion_with_cyrillic_account():
    kinds = _kinds('    Активы:Брокер  10 "My Currency" @@ $150 == 20 "My Currency"')
    assert kinds == [
        (TokenKind.INDENT, "    "),
        (TokenKind.ACCOUNT, "Активы:Брокер"),
        (TokenKind.AMOUNT, "10"),
        (TokenKind.COMMODITY, '"My Currency"'),
        (TokenKind.OPERATOR, "@@"),
        (TokenKind.COMMODITY, "$"),
        (TokenKind.AMOUNT, "150"),
        (TokenKind.OPERATOR, "=="),
        (TokenKind.AMOUNT, "20"),
        (TokenKind.COMMODITY, '"My Currency"'),
    ]


def test_inclusive_assertion_without_posting_amount():
    assert _kinds("    Assets:Cash  ==* 0") == [
        (TokenKind.INDENT, "    "),
        (TokenKind.ACCOUNT, "Assets:Cash"),
        (TokenKind.OPERATOR, "==*"),
        (TokenKind.AMOUNT, "0"),
    ]
