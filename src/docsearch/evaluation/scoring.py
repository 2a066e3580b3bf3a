"""Composite scoring of a generated answer against an expected answer."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict

LENGTH_WEIGHT = 0.4
SIMILARITY_WEIGHT = 0.3
KEYWORD_WEIGHT = 0.3
PASS_THRESHOLD = 0.85
MIN_KEYWORD_LENGTH = 4
VERBOSITY_LIMIT = 1.5

BULLET_PENALTY = 0.5
HEADER_PENALTY = 0.7
DIMENSION_PENALTY = 0.8
TEMPERATURE_PENALTY = 0.8
VERBOSITY_PENALTY = 0.3

_BULLET_RE = re.compile(r"[•▪◦●]|^\s*[-*]\s+", re.MULTILINE)
_HEADER_RE = re.compile(r"\b(specifications?|quality control)\b", re.IGNORECASE)
_DIMENSION_RE = re.compile(r"\d+(?:\.\d+)?\s*[x×]\s*\d+", re.IGNORECASE)
_TEMPERATURE_RE = re.compile(r"\d+\s*°\s*[FC]\b", re.IGNORECASE)
_WORD_RE = re.compile(r"[\w'-]+")


@dataclass(slots=True)
class ResponseMetrics:
    string_similarity: float
    length_ratio: float
    keyword_match: float
    penalties: Dict[str, float] = field(default_factory=dict)
    overall_score: float = 0.0

    @property
    def passed(self) -> bool:
        return self.overall_score > PASS_THRESHOLD


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """Return ``1 - distance / len(longer)``; two empty strings are identical."""

    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longer


def length_ratio(response: str, expected: str) -> float:
    longest = max(len(response), len(expected))
    if longest == 0:
        return 1.0
    return min(len(response), len(expected)) / longest


def keyword_match(response: str, expected: str) -> float:
    """Share of expected-answer terms longer than three characters found in the response."""

    keywords = {word for word in _WORD_RE.findall(expected.lower()) if len(word) >= MIN_KEYWORD_LENGTH}
    if not keywords:
        return 1.0
    lowered = response.lower()
    return sum(1 for word in keywords if word in lowered) / len(keywords)


def penalty_factors(response: str, expected: str) -> Dict[str, float]:
    penalties: Dict[str, float] = {}
    if _BULLET_RE.search(response):
        penalties["bullets"] = BULLET_PENALTY
    if _HEADER_RE.search(response):
        penalties["section_headers"] = HEADER_PENALTY
    if _DIMENSION_RE.search(response):
        penalties["dimensions"] = DIMENSION_PENALTY
    if _TEMPERATURE_RE.search(response):
        penalties["temperatures"] = TEMPERATURE_PENALTY
    if expected and len(response) > len(expected) * VERBOSITY_LIMIT:
        penalties["verbosity"] = VERBOSITY_PENALTY
    return penalties


def evaluate_response(response: str, expected: str) -> ResponseMetrics:
    normalized_response = response.strip().lower()
    normalized_expected = expected.strip().lower()

    similarity = string_similarity(normalized_response, normalized_expected)
    ratio = length_ratio(normalized_response, normalized_expected)
    keywords = keyword_match(normalized_response, normalized_expected)
    penalties = penalty_factors(response.strip(), expected.strip())

    score = LENGTH_WEIGHT * ratio + SIMILARITY_WEIGHT * similarity + KEYWORD_WEIGHT * keywords
    for factor in penalties.values():
        score *= factor
    return ResponseMetrics(
        string_similarity=similarity,
        length_ratio=ratio,
        keyword_match=keywords,
        penalties=penalties,
        overall_score=max(0.0, min(1.0, score)),
    )


__all__ = [
    "PASS_THRESHOLD",
    "ResponseMetrics",
    "evaluate_response",
    "keyword_match",
    "length_ratio",
    "levenshtein_distance",
    "penalty_factors",
    "string_similarity",
]
