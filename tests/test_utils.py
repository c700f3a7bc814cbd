from patternrank.utils import (
    EditDistanceMatcher,
    hash_payload,
    json_size,
    levenshtein_distance,
    normalize_path,
    similarity_ratio,
    truncate_field,
)


def test_levenshtein_distance_known_pairs():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("flaw", "lawn") == 2
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("abc", "") == 3
    assert levenshtein_distance("same", "same") == 0


def test_levenshtein_is_case_insensitive():
    assert levenshtein_distance("Cache Layer", "cache layer") == 0


def test_matcher_reuses_reference_across_comparisons():
    matcher = EditDistanceMatcher("sitting")
    assert matcher.distance("kitten") == 3
    assert matcher.distance("sitting") == 0
    assert matcher.distance("setting") == 1


def test_long_reference_beyond_machine_word():
    left = "a" * 100 + "b"
    right = "a" * 100 + "c"
    assert levenshtein_distance(left, right) == 1


def test_similarity_ratio_bounds():
    assert similarity_ratio("add redis cache", "add redis cache") == 1.0
    assert similarity_ratio("", "anything") == 0.0
    assert 0.0 < similarity_ratio("add redis cache", "add redis caching") < 1.0


def test_normalize_path():
    assert normalize_path("./src/api/x.ts") == "src/api/x.ts"
    assert normalize_path("src\\api\\x.ts") == "src/api/x.ts"
    assert normalize_path("/src/x.ts") == "src/x.ts"


def test_truncate_field():
    assert truncate_field("abcdef", 10) == "abcdef"
    assert truncate_field("abcdefghij", 6) == "abc..."
    assert truncate_field("abcdef", 0) == ""


def test_json_size_counts_utf8_bytes():
    assert json_size({"a": "e"}) == 9
    assert json_size({"a": "é"}) == 10


def test_hash_payload_ignores_key_order():
    assert hash_payload({"a": 1, "b": [1, 2]}) == hash_payload({"b": [1, 2], "a": 1})
    assert hash_payload({"a": 1}) != hash_payload({"a": 2})
