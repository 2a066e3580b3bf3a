import json
import math
import random

import pytest

from docsearch.errors import InputValidationError
from docsearch.evaluation import (
    DEFAULT_TEST_CASES,
    EvaluationHarness,
    QueryGenerator,
    TestRunSummary,
    suggest_optimizations,
)
from docsearch.models import DocumentChunk, SearchAnswer, SourceFile, TestCase
from docsearch.providers import MockCompletionProvider
from docsearch.store import InMemoryDocumentStore, InMemoryGradeStore


class ScriptedSearch:
    def __init__(self, answers: dict[str, str]) -> None:
        self.answers = answers
        self.queries: list[tuple[str, str]] = []

    async def __call__(self, query: str, organization_id: str) -> SearchAnswer:
        self.queries.append((query, organization_id))
        content = self.answers.get(query)
        if content is None:
            return SearchAnswer.no_match()
        return SearchAnswer(content=content, similarity=0.8)


def ingested_pdf(store: InMemoryDocumentStore, file_name: str) -> SourceFile:
    record = store.create_file(
        SourceFile(organization_id="org", file_name=file_name, storage_path=f"organizations/org/{file_name}")
    )
    store.insert_chunks(
        [
            DocumentChunk(
                content=f"{file_name} mentions brick cheese.",
                embedding=[1.0, 0.0],
                organization_id="org",
                source_file_name=file_name,
                chunk_index=1,
                total_chunks=1,
            )
        ]
    )
    return store.mark_ingested(record.storage_path)


def single_query(query: str) -> str:
    return json.dumps({"queries": [{"query": query, "category": "Menu", "complexity": "simple"}]})


@pytest.mark.anyio
async def test_default_cases_aggregate_scores_and_breakdowns():
    answers = {case.query: case.expected_answer for case in DEFAULT_TEST_CASES[:2]}
    search = ScriptedSearch(answers)
    harness = EvaluationHarness(search, InMemoryDocumentStore(), InMemoryGradeStore())

    summary = await harness.run_search_tests("org")

    assert summary.total_tests == 3
    assert summary.passed_tests == 2
    assert [result.passed for result in summary.detailed_results] == [True, True, False]
    assert summary.category_breakdown["Product Standards"].passed == 2
    assert summary.complexity_breakdown["complex"].passed == 0
    assert 0.0 <= summary.average_score <= 1.0
    assert all(organization_id == "org" for _, organization_id in search.queries)


@pytest.mark.anyio
async def test_unscored_cases_are_excluded_from_average():
    harness = EvaluationHarness(
        ScriptedSearch({"q1": "exact answer"}), InMemoryDocumentStore(), InMemoryGradeStore()
    )
    cases = [
        TestCase(query="q1", expected_answer="exact answer"),
        TestCase(query="q2", expected_answer=None),
    ]

    summary = await harness.run_search_tests("org", cases)

    assert summary.total_tests == 2
    assert summary.scored_tests == 1
    assert summary.passed_tests == 1
    assert summary.average_score == pytest.approx(1.0)
    unscored = summary.detailed_results[1]
    assert unscored.score is None
    assert not unscored.passed


def test_empty_summary():
    summary = TestRunSummary.from_results([])

    assert summary.total_tests == 0
    assert summary.average_score == 0.0
    assert suggest_optimizations(summary) == []


@pytest.mark.anyio
async def test_suggestions_for_weak_verbose_answers():
    verbose = "Well, " + "there are many different things to say about our kitchen and its routines. " * 4
    harness = EvaluationHarness(
        ScriptedSearch({"q": verbose}), InMemoryDocumentStore(), InMemoryGradeStore()
    )

    summary = await harness.run_search_tests("org", [TestCase(query="q", expected_answer="Brick cheese only.")])

    assert suggest_optimizations(summary) == [
        "Consider lowering similarity threshold",
        "Responses are too verbose. Consider stricter sentence filtering",
        "Poor keyword matching. Consider adjusting relevance scoring",
    ]


@pytest.mark.anyio
async def test_run_single_test_picks_an_ingested_pdf(settings):
    store = InMemoryDocumentStore()
    ingested_pdf(store, "menu.pdf")
    store.create_file(SourceFile(organization_id="org", file_name="draft.pdf", storage_path="organizations/org/draft.pdf"))
    provider = MockCompletionProvider([single_query("Is brick cheese aged?")])
    generator = QueryGenerator(store, InMemoryGradeStore(), provider, settings=settings)
    search = ScriptedSearch({"Is brick cheese aged?": "Yes, for two months."})
    harness = EvaluationHarness(search, store, InMemoryGradeStore(), generator, rng=random.Random(1))

    result = await harness.run_single_test("org")

    assert result.source_file == "menu.pdf"
    assert result.actual_response == "Yes, for two months."
    assert result.expected_answer is None
    assert result.score is None


@pytest.mark.anyio
async def test_run_test_suite_covers_every_ingested_pdf(settings):
    store = InMemoryDocumentStore()
    ingested_pdf(store, "menu.pdf")
    ingested_pdf(store, "delivery.pdf")
    provider = MockCompletionProvider([single_query("First question?"), single_query("Second question?")])
    generator = QueryGenerator(store, InMemoryGradeStore(), provider, settings=settings)
    harness = EvaluationHarness(ScriptedSearch({}), store, InMemoryGradeStore(), generator)

    summary = await harness.run_test_suite("org", per_file=1)

    assert summary.total_tests == 2
    assert {result.source_file for result in summary.detailed_results} == {"menu.pdf", "delivery.pdf"}
    assert summary.scored_tests == 0


@pytest.mark.anyio
async def test_generated_runs_need_pdfs(settings):
    store = InMemoryDocumentStore()
    generator = QueryGenerator(store, InMemoryGradeStore(), MockCompletionProvider(), settings=settings)
    harness = EvaluationHarness(ScriptedSearch({}), store, InMemoryGradeStore(), generator)

    with pytest.raises(InputValidationError, match="No PDF files found for this organization"):
        await harness.run_single_test("org")


def test_submit_grade_validates_and_records():
    grades = InMemoryGradeStore()
    harness = EvaluationHarness(ScriptedSearch({}), InMemoryDocumentStore(), grades)

    record = harness.submit_grade(
        test_id="t-1", organization_id="org", query="q", bot_response="r", score=4, graded_by="qa"
    )

    assert record.score == 4.0
    assert grades.recent("org") == [record]

    with pytest.raises(InputValidationError, match="Test ID is required"):
        harness.submit_grade(test_id="", organization_id="org", query="q", bot_response="r", score=1, graded_by="qa")
    for bad in ("high", None, True, math.nan):
        with pytest.raises(InputValidationError, match="Grade must be a number"):
            harness.submit_grade(
                test_id="t-2", organization_id="org", query="q", bot_response="r", score=bad, graded_by="qa"
            )
    assert len(grades.all()) == 1
