"""Evaluation of the search pipeline: scoring, test generation and test runs."""
from __future__ import annotations

from .harness import (
    DEFAULT_TEST_CASES,
    BreakdownStats,
    EvaluationHarness,
    TestResult,
    TestRunSummary,
    suggest_optimizations,
)
from .query_generation import DiversityValidator, QueryGenerator, parse_test_queries
from .scoring import PASS_THRESHOLD, ResponseMetrics, evaluate_response

__all__ = [
    "BreakdownStats",
    "DEFAULT_TEST_CASES",
    "DiversityValidator",
    "EvaluationHarness",
    "PASS_THRESHOLD",
    "QueryGenerator",
    "ResponseMetrics",
    "TestResult",
    "TestRunSummary",
    "evaluate_response",
    "parse_test_queries",
    "suggest_optimizations",
]
