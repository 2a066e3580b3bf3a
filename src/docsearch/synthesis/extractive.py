"""Sentence-level answer extraction from the best ranked chunk."""
from __future__ import annotations

import re
from collections import Counter
from typing import List, Sequence

from docsearch.models import RankedCandidate, SearchAnswer
from docsearch.ranking import query_terms

_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+|\n+")
_BULLET_RE = re.compile(r"^\s*(?:[-*•▪◦]|\d+[.)])\s*")
_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"[\w'-]+")


def split_sentences(text: str) -> List[str]:
    return [sentence.strip() for sentence in _SENTENCE_BREAK_RE.split(text) if sentence and sentence.strip()]


def clean_sentence(sentence: str) -> str:
    """Drop a leading bullet or list number and collapse whitespace."""

    return _WHITESPACE_RE.sub(" ", _BULLET_RE.sub("", sentence)).strip()


def sentence_score(sentence: str, terms: Sequence[str]) -> int:
    """Count how many tokens of ``sentence`` are query terms."""

    if not terms:
        return 0
    wanted = set(terms)
    counts = Counter(_TOKEN_RE.findall(sentence.lower()))
    return sum(count for token, count in counts.items() if token in wanted)


def extract_answer(query: str, ranked: Sequence[RankedCandidate]) -> SearchAnswer:
    if not ranked:
        return SearchAnswer.no_match()

    top = ranked[0]
    sentences = split_sentences(top.chunk.content)
    terms = query_terms(query)
    scores = [sentence_score(sentence, terms) for sentence in sentences]
    if not scores or max(scores) <= 0:
        return SearchAnswer.no_match()

    best = scores.index(max(scores))
    picked = [sentences[best]]
    if best + 1 < len(sentences) and scores[best + 1] > 0:
        picked.append(sentences[best + 1])

    content = " ".join(clean_sentence(sentence) for sentence in picked).strip()
    if not content:
        return SearchAnswer.no_match()
    return SearchAnswer(content=content, similarity=top.adjusted_similarity)


__all__ = ["clean_sentence", "extract_answer", "sentence_score", "split_sentences"]
