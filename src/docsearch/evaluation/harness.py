"""Drive the search pipeline with test cases and aggregate the results."""
from __future__ import annotations

import logging
import math
import random
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from docsearch.errors import InputValidationError
from docsearch.models import GradeRecord, SearchAnswer, TestCase
from docsearch.store import DocumentStore, GradeStore
from docsearch.telemetry import log_event

from .query_generation import QueryGenerator
from .scoring import ResponseMetrics, evaluate_response

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger("docsearch.ingest.audit")

SearchFn = Callable[[str, str], Awaitable[SearchAnswer]]

PDF_MIME_TYPE = "application/pdf"
LOW_SCORE_THRESHOLD = 0.5
VERBOSE_LENGTH_RATIO = 0.5
LOW_KEYWORD_THRESHOLD = 0.6

DEFAULT_TEST_CASES: tuple[TestCase, ...] = (
    TestCase(
        query="What are the requirements for pizza dough fermentation?",
        expected_answer="The pizza dough must undergo a minimum 24-hour fermentation process.",
        category="Product Standards",
        complexity="simple",
    ),
    TestCase(
        query="What cheese is mandatory for the Detroit-style pizza?",
        expected_answer="Wisconsin brick cheese blend is mandatory for the Detroit-style pizza.",
        category="Product Standards",
        complexity="simple",
    ),
    TestCase(
        query="How are late delivery orders handled?",
        expected_answer=(
            "For late delivery orders, we apologize sincerely, offer an immediate status update, "
            "provide complimentary breadsticks, offer a 20% discount for delays over 15 minutes, "
            "and a free meal for delays over 30 minutes."
        ),
        category="Customer Service",
        complexity="complex",
    ),
)


@dataclass(slots=True)
class TestResult:
    __test__ = False

    test_id: str
    query: str
    category: str
    complexity: str
    expected_answer: Optional[str]
    actual_response: str
    similarity: float
    metrics: Optional[ResponseMetrics] = None
    source_file: Optional[str] = None

    @property
    def score(self) -> Optional[float]:
        return self.metrics.overall_score if self.metrics is not None else None

    @property
    def passed(self) -> bool:
        return self.metrics is not None and self.metrics.passed


@dataclass(slots=True)
class BreakdownStats:
    total: int = 0
    passed: int = 0
    scored: int = 0
    score_sum: float = 0.0

    @property
    def average_score(self) -> float:
        return self.score_sum / self.scored if self.scored else 0.0

    def add(self, result: TestResult) -> None:
        self.total += 1
        if result.passed:
            self.passed += 1
        if result.score is not None:
            self.scored += 1
            self.score_sum += result.score


@dataclass(slots=True)
class TestRunSummary:
    __test__ = False

    total_tests: int
    passed_tests: int
    scored_tests: int
    average_score: float
    detailed_results: List[TestResult] = field(default_factory=list)
    category_breakdown: Dict[str, BreakdownStats] = field(default_factory=dict)
    complexity_breakdown: Dict[str, BreakdownStats] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Sequence[TestResult]) -> "TestRunSummary":
        categories: Dict[str, BreakdownStats] = {}
        complexities: Dict[str, BreakdownStats] = {}
        for result in results:
            categories.setdefault(result.category, BreakdownStats()).add(result)
            complexities.setdefault(result.complexity, BreakdownStats()).add(result)
        scores = [result.score for result in results if result.score is not None]
        return cls(
            total_tests=len(results),
            passed_tests=sum(1 for result in results if result.passed),
            scored_tests=len(scores),
            average_score=sum(scores) / len(scores) if scores else 0.0,
            detailed_results=list(results),
            category_breakdown=categories,
            complexity_breakdown=complexities,
        )


def suggest_optimizations(summary: TestRunSummary) -> List[str]:
    """Translate weak aggregate metrics into tuning hints."""

    suggestions: List[str] = []
    if summary.scored_tests and summary.average_score < LOW_SCORE_THRESHOLD:
        suggestions.append("Consider lowering similarity threshold")

    scored = [result for result in summary.detailed_results if result.metrics is not None]
    if any(
        result.metrics.length_ratio < VERBOSE_LENGTH_RATIO
        and len(result.actual_response) > len(result.expected_answer or "")
        for result in scored
    ):
        suggestions.append("Responses are too verbose. Consider stricter sentence filtering")
    if any(result.metrics.keyword_match < LOW_KEYWORD_THRESHOLD for result in scored):
        suggestions.append("Poor keyword matching. Consider adjusting relevance scoring")
    return suggestions


class EvaluationHarness:
    """Run test queries through ``search`` and score or record the answers."""

    def __init__(
        self,
        search: SearchFn,
        store: DocumentStore,
        grade_store: GradeStore,
        query_generator: Optional[QueryGenerator] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._search = search
        self.store = store
        self.grade_store = grade_store
        self.query_generator = query_generator
        self._rng = rng or random.Random()

    async def run_case(self, organization_id: str, case: TestCase, *, source_file: str | None = None) -> TestResult:
        answer = await self._search(case.query, organization_id)
        metrics = evaluate_response(answer.content, case.expected_answer) if case.expected_answer else None
        return TestResult(
            test_id=uuid.uuid4().hex,
            query=case.query,
            category=case.category,
            complexity=case.complexity,
            expected_answer=case.expected_answer,
            actual_response=answer.content,
            similarity=answer.similarity,
            metrics=metrics,
            source_file=source_file,
        )

    async def run_search_tests(
        self,
        organization_id: str,
        test_cases: Sequence[TestCase] = DEFAULT_TEST_CASES,
    ) -> TestRunSummary:
        """Run the cases one after another; unscored cases never count as passed."""

        results = [await self.run_case(organization_id, case) for case in test_cases]
        summary = TestRunSummary.from_results(results)
        log_event(
            LOGGER,
            "evaluation.run",
            organization_id=organization_id,
            total=summary.total_tests,
            passed=summary.passed_tests,
            average_score=round(summary.average_score, 4),
        )
        return summary

    def _pdf_files(self, organization_id: str):
        files = self.store.list_files(organization_id, file_type=PDF_MIME_TYPE, ingested_only=True)
        if not files:
            raise InputValidationError("No PDF files found for this organization")
        return files

    def _generator(self) -> QueryGenerator:
        if self.query_generator is None:
            raise ValueError("A query generator is required for generated test runs")
        return self.query_generator

    async def run_test_suite(self, organization_id: str, *, per_file: int = 5) -> TestRunSummary:
        """Generate questions for every ingested PDF and record the live answers."""

        generator = self._generator()
        results: List[TestResult] = []
        for source_file in self._pdf_files(organization_id):
            cases = await generator.generate_test_queries(organization_id, source_file.file_name, per_file)
            for case in cases:
                results.append(await self.run_case(organization_id, case, source_file=source_file.file_name))
        return TestRunSummary.from_results(results)

    async def run_single_test(self, organization_id: str) -> TestResult:
        """Ask one generated question about a randomly chosen ingested PDF."""

        generator = self._generator()
        source_file = self._rng.choice(self._pdf_files(organization_id))
        cases = await generator.generate_test_queries(organization_id, source_file.file_name, 1)
        return await self.run_case(organization_id, cases[0], source_file=source_file.file_name)

    def submit_grade(
        self,
        *,
        test_id: str,
        organization_id: str,
        query: str,
        bot_response: str,
        score: object,
        graded_by: str,
        expected_answer: str | None = None,
    ) -> GradeRecord:
        if not test_id:
            raise InputValidationError("Test ID is required")
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
            raise InputValidationError("Grade must be a number")
        if not organization_id:
            raise InputValidationError("Organization ID is required")

        record = self.grade_store.append(
            GradeRecord(
                test_id=test_id,
                organization_id=organization_id,
                query=query,
                bot_response=bot_response,
                expected_answer=expected_answer,
                score=float(score),
                graded_by=graded_by,
            )
        )
        AUDIT_LOGGER.info(
            {
                "event": "grade",
                "organization_id": organization_id,
                "test_id": test_id,
                "score": record.score,
                "graded_by": graded_by,
            }
        )
        return record


__all__ = [
    "BreakdownStats",
    "DEFAULT_TEST_CASES",
    "EvaluationHarness",
    "TestResult",
    "TestRunSummary",
    "suggest_optimizations",
]
