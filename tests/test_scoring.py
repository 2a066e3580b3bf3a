import random

import pytest

from docsearch.evaluation.scoring import (
    PASS_THRESHOLD,
    evaluate_response,
    keyword_match,
    length_ratio,
    levenshtein_distance,
    penalty_factors,
    string_similarity,
)

EXPECTED = "Wisconsin brick cheese is used on every Detroit-style pizza."


def test_levenshtein_distance():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


def test_string_similarity_and_length_ratio_edges():
    assert string_similarity("", "") == 1.0
    assert string_similarity("abc", "") == 0.0
    assert length_ratio("", "") == 1.0
    assert length_ratio("ab", "abcd") == 0.5


def test_keyword_match_ignores_short_words():
    assert keyword_match("anything", "a an the") == 1.0
    assert keyword_match("brick cheese only", "brick cheese pans") == pytest.approx(2 / 3)


def test_identical_answer_scores_one():
    metrics = evaluate_response(EXPECTED, EXPECTED)

    assert metrics.overall_score == pytest.approx(1.0)
    assert metrics.penalties == {}
    assert metrics.passed


def test_score_is_case_insensitive_and_bounded():
    rng = random.Random(7)
    alphabet = "abcde •-x°F 12\n"
    for _ in range(40):
        response = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 60)))
        expected = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 60)))
        assert 0.0 <= evaluate_response(response, expected).overall_score <= 1.0

    assert evaluate_response(EXPECTED.upper(), EXPECTED).overall_score == pytest.approx(1.0)


@pytest.mark.parametrize(
    ("response", "penalty"),
    [
        ("• Wisconsin brick cheese is used on every pizza.", "bullets"),
        ("- Wisconsin brick cheese is used on every pizza.", "bullets"),
        ("Cheese specifications: Wisconsin brick on pizzas.", "section_headers"),
        ("Use a 10 x 14 pan with Wisconsin brick cheese.", "dimensions"),
        ("Bake at 550°F with Wisconsin brick cheese on top.", "temperatures"),
    ],
)
def test_formatting_penalties(response, penalty):
    assert penalty in penalty_factors(response, EXPECTED)


def test_verbose_answer_is_penalised_and_fails():
    response = EXPECTED + " " + "It also melts beautifully into the crispy caramelised edges of the pan." * 2

    metrics = evaluate_response(response, EXPECTED)

    assert metrics.penalties["verbosity"] == 0.3
    assert metrics.overall_score < 0.35
    assert not metrics.passed


def test_pass_threshold_is_strict():
    assert PASS_THRESHOLD == 0.85
    close = evaluate_response("Wisconsin brick cheese is used on each Detroit-style pizza.", EXPECTED)
    assert close.passed
    unrelated = evaluate_response("Delivery takes thirty minutes.", EXPECTED)
    assert not unrelated.passed
