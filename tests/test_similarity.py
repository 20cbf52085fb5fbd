"""Unit tests for text normalisation and edit similarity."""
import pytest
from app.resolve.similarity import edit_similarity, levenshtein_distance, normalize_text


def test_normalize_text_strips_punctuation_and_collapses_spaces():
    assert normalize_text("  Deep Work | Cal Newport!!  ") == "Deep Work Cal Newport"
    assert normalize_text("What's\tnext?\n") == "What s next"


def test_normalize_text_empty():
    assert normalize_text("") == ""
    assert normalize_text(None) == ""
    assert normalize_text("!!! ...") == ""


def test_levenshtein_known_values():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("flaw", "lawn") == 2
    assert levenshtein_distance("same", "same") == 0


def test_edit_similarity_identity():
    assert edit_similarity("Deep Work", "Deep Work") == 1.0


def test_edit_similarity_both_empty_is_one():
    assert edit_similarity("", "") == 1.0
    assert edit_similarity(None, None) == 1.0


def test_edit_similarity_one_empty_is_zero():
    assert edit_similarity("abc", "") == 0.0
    assert edit_similarity("", "abc") == 0.0


def test_edit_similarity_symmetric_and_bounded():
    pairs = [("kitten", "sitting"), ("Deep Work", "Deep Learning"), ("a", "xyz")]
    for a, b in pairs:
        s = edit_similarity(a, b)
        assert s == edit_similarity(b, a)
        assert 0.0 <= s <= 1.0


def test_edit_similarity_is_case_insensitive():
    assert edit_similarity("THE ONLY WAY", "the only way") == 1.0


def test_edit_similarity_value():
    # kitten/sitting: distance 3 over max length 7
    assert edit_similarity("kitten", "sitting") == pytest.approx(4 / 7)
