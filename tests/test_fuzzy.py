import pytest

from hledger_assist.fuzzy import (
    EXACT_SCORE,
    PREFIX_BASE,
    SUBSEQUENCE_BASE,
    FuzzyMatcher,
    collation_key,
    fuzzy_match,
)


def _items(matches):
    return [m.item for m in matches]


def test_prefix_match_ranks_first():
    result = fuzzy_match("Gro", ["Grocery Store", "Gas Station", "Amazon"])
    assert _items(result) == ["Grocery Store"]
    assert PREFIX_BASE < result[0].score < EXACT_SCORE


def test_prefix_beats_scattered_subsequence():
    result = fuzzy_match("Mag", ["Amazing Store", "Magazine"])
    assert _items(result) == ["Magazine", "Amazing Store"]
    assert SUBSEQUENCE_BASE <= result[1].score < PREFIX_BASE


def test_cyrillic_query_matches_case_insensitively():
    result = fuzzy_match("маг", ["Магазин", "Магнит", "Пятёрочка"])
    assert sorted(_items(result)) == ["Магазин", "Магнит"]
    # Shorter prefix matches score higher.
    assert _items(result) == ["Магнит", "Магазин"]


def test_exact_match_uses_unicode_case_folding():
    result = fuzzy_match("STRASSE", ["straße", "strassen"])
    assert result[0].item == "straße"
    assert result[0].score == EXACT_SCORE


def test_subsequence_score_formula():
    # g at 0, s at 8: gap 7, start bonus 10, word-boundary bonus 5.
    [match] = fuzzy_match("gs", ["Grocery Store"])
    assert match.score == SUBSEQUENCE_BASE - 7 + 10 + 5


def test_non_matching_items_are_dropped():
    assert fuzzy_match("xyz", ["Grocery Store", "Amazon"]) == []
    assert fuzzy_match("abc", []) == []


def test_empty_query_returns_items_in_original_order():
    result = fuzzy_match("", ["b", "a", "c"])
    assert _items(result) == ["b", "a", "c"]
    assert {m.score for m in result} == {0.0}


def test_usage_breaks_score_ties_then_collation():
    assert _items(fuzzy_match("ba", ["Baz", "Bar"])) == ["Bar", "Baz"]
    assert _items(fuzzy_match("ba", ["Bar", "Baz"], usage_counts={"Baz": 5})) == ["Baz", "Bar"]


def test_collation_key_ignores_accents_first():
    assert sorted(["Zoo", "Éclair", "eclair"], key=collation_key) == ["eclair", "Éclair", "Zoo"]


def test_result_cap():
    items = [f"Expenses:Item{i}" for i in range(20)]
    assert len(fuzzy_match("exp", items, max_results=5)) == 5
    matcher = FuzzyMatcher(max_results=3)
    assert len(matcher.match("exp", items)) == 3
    assert len(matcher.match("exp", items, limit=7)) == 7


def test_invalid_limits_raise():
    with pytest.raises(ValueError):
        FuzzyMatcher(max_results=0)
    with pytest.raises(ValueError):
        FuzzyMatcher(max_cache_size=0)
    with pytest.raises(ValueError):
        FuzzyMatcher().match("a", ["a"], limit=0)


def test_candidate_set_results_are_cached():
    matcher = FuzzyMatcher()
    cs = matcher.index(["Grocery Store", "Gas Station"], {"Gas Station": 3})
    first = matcher.match("g", cs)
    assert matcher.cache_size == 1
    assert matcher.match("G", cs) == first
    assert matcher.cache_size == 1
    # Plain sequences bypass the cache.
    matcher.match("g", ["Grocery Store"])
    assert matcher.cache_size == 1


def test_new_index_gets_new_cache_key():
    matcher = FuzzyMatcher()
    old = matcher.index(["Alpha"])
    new = matcher.index(["Alpha", "Alpine"])
    assert _items(matcher.match("al", old)) == ["Alpha"]
    assert _items(matcher.match("al", new)) == ["Alpha", "Alpine"]
    assert matcher.cache_size == 2


def test_cache_evicts_oldest_quarter_when_full():
    matcher = FuzzyMatcher(max_cache_size=4)
    cs = matcher.index(["abcdef"])
    for q in ["a", "ab", "abc", "abcd", "abcde"]:
        matcher.match(q, cs)
    # Five entries exceed the ceiling of four; ceil(5 * 0.25) = 2 are evicted.
    assert matcher.cache_size == 3
    matcher.clear_cache()
    assert matcher.cache_size == 0
