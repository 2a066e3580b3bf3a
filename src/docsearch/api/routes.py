"""API router exposing ingestion, search and evaluation endpoints."""
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field

from docsearch.errors import (
    DocSearchError,
    InputValidationError,
    ProviderError,
    QueryGenerationError,
    StoreError,
)
from docsearch.evaluation import TestResult, TestRunSummary, suggest_optimizations
from docsearch.models import TestCase, Turn
from docsearch.service import SearchService, get_search_service

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations", tags=["documents"])

SEARCH_FAILED = "Search failed"
INGEST_FAILED = "Failed to process PDF for embeddings"
GENERATOR_REQUIRED = "Test generation requires a completion provider"


class TurnModel(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class SearchRequest(BaseModel):
    """Request body accepted by the search endpoint."""

    query: str = Field(..., min_length=1, description="Question to answer from the organization's documents.")
    conversation_history: list[TurnModel] = Field(default_factory=list)
    mode: Optional[Literal["extractive", "generative"]] = None


class SearchResponse(BaseModel):
    content: str
    similarity: float


class SourceFileModel(BaseModel):
    id: str
    organization_id: str
    file_name: str
    storage_path: str
    file_type: str
    file_size: int
    has_embeddings: bool
    created_at: datetime


class UploadResponse(BaseModel):
    status: str
    storage_path: str
    file: Optional[SourceFileModel] = None
    chunk_count: int = 0
    page_count: int = 0


class DeleteResponse(BaseModel):
    status: str
    removed_chunks: int


class TestCaseModel(BaseModel):
    query: str = Field(..., min_length=1)
    expected_answer: Optional[str] = None
    category: str = "general"
    complexity: Literal["simple", "medium", "complex"] = "simple"


class GenerateTestsRequest(BaseModel):
    file_name: str = Field(..., min_length=1)
    count: int = Field(5, ge=1, le=20)


class RunTestsRequest(BaseModel):
    test_cases: Optional[list[TestCaseModel]] = None


class TestResultModel(BaseModel):
    test_id: str
    query: str
    category: str
    complexity: str
    expected_answer: Optional[str]
    actual_response: str
    similarity: float
    score: Optional[float]
    passed: bool
    source_file: Optional[str] = None
    metrics: Optional[dict[str, Any]] = None


class BreakdownModel(BaseModel):
    total: int
    passed: int
    average_score: float


class TestRunResponse(BaseModel):
    total_tests: int
    passed_tests: int
    average_score: float
    category_breakdown: dict[str, BreakdownModel]
    complexity_breakdown: dict[str, BreakdownModel]
    detailed_results: list[TestResultModel]
    suggestions: list[str]


class GradeRequest(BaseModel):
    test_id: str = ""
    query: str
    bot_response: str
    score: Any = None
    graded_by: str
    expected_answer: Optional[str] = None


class GradeResponse(BaseModel):
    status: str
    test_id: str
    score: float
    graded_at: datetime


def _serialise_result(result: TestResult) -> TestResultModel:
    return TestResultModel(
        test_id=result.test_id,
        query=result.query,
        category=result.category,
        complexity=result.complexity,
        expected_answer=result.expected_answer,
        actual_response=result.actual_response,
        similarity=result.similarity,
        score=result.score,
        passed=result.passed,
        source_file=result.source_file,
        metrics=asdict(result.metrics) if result.metrics is not None else None,
    )


def _serialise_summary(summary: TestRunSummary) -> TestRunResponse:
    def breakdown(stats: dict) -> dict[str, BreakdownModel]:
        return {
            key: BreakdownModel(total=value.total, passed=value.passed, average_score=value.average_score)
            for key, value in stats.items()
        }

    return TestRunResponse(
        total_tests=summary.total_tests,
        passed_tests=summary.passed_tests,
        average_score=summary.average_score,
        category_breakdown=breakdown(summary.category_breakdown),
        complexity_breakdown=breakdown(summary.complexity_breakdown),
        detailed_results=[_serialise_result(result) for result in summary.detailed_results],
        suggestions=suggest_optimizations(summary),
    )


def _raise_http(error: Exception, *, generic: str) -> None:
    """Translate a pipeline failure into an HTTP error; details stay in the logs."""

    if isinstance(error, InputValidationError):
        status = 415 if error.reason.startswith("Invalid file type") else 400
        raise HTTPException(status_code=status, detail=error.reason) from error
    if isinstance(error, StoreError):
        LOGGER.error("%s: %s", generic, error, exc_info=error)
        raise HTTPException(status_code=503, detail=generic) from error
    if isinstance(error, (ProviderError, QueryGenerationError, DocSearchError, ValueError)):
        LOGGER.error("%s: %s", generic, error, exc_info=error)
        raise HTTPException(status_code=502, detail=generic) from error
    raise error


@router.get("/{organization_id}/files", response_model=list[SourceFileModel])
def list_files(
    organization_id: str,
    service: SearchService = Depends(get_search_service),
) -> list[SourceFileModel]:
    return [SourceFileModel(**asdict(item)) for item in service.list_files(organization_id)]


@router.post("/{organization_id}/files", response_model=UploadResponse)
async def upload_file(
    organization_id: str,
    file: UploadFile = File(...),
    service: SearchService = Depends(get_search_service),
) -> UploadResponse:
    """Store a PDF and ingest it for semantic search."""

    data = await file.read()
    try:
        outcome = await service.upload_file(organization_id, file.filename or "upload.pdf", data, file.content_type)
    except (InputValidationError, StoreError) as exc:
        _raise_http(exc, generic=INGEST_FAILED)

    if outcome.error is not None:
        raise HTTPException(
            status_code=502,
            detail={"message": INGEST_FAILED, "storage_path": outcome.storage_path},
        )
    result = outcome.result
    return UploadResponse(
        status="ok",
        storage_path=outcome.storage_path,
        file=SourceFileModel(**asdict(result.source_file)),
        chunk_count=result.chunk_count,
        page_count=result.page_count,
    )


@router.delete("/{organization_id}/files/{file_id}", response_model=DeleteResponse)
def delete_file(
    organization_id: str,
    file_id: str,
    storage_path: str = Query(..., min_length=1),
    service: SearchService = Depends(get_search_service),
) -> DeleteResponse:
    if not service.file_storage.belongs_to(organization_id, storage_path):
        raise HTTPException(status_code=400, detail="File does not belong to this organization")
    try:
        removed = service.delete_file(file_id, storage_path)
    except (InputValidationError, StoreError) as exc:
        _raise_http(exc, generic="Failed to delete file")
    return DeleteResponse(status="ok", removed_chunks=removed)


@router.post("/{organization_id}/search", response_model=SearchResponse)
async def search(
    organization_id: str,
    request: SearchRequest,
    service: SearchService = Depends(get_search_service),
) -> SearchResponse:
    if not request.query.strip():
        raise HTTPException(status_code=422, detail="Query must not be empty")
    history = [Turn(role=turn.role, content=turn.content) for turn in request.conversation_history]
    try:
        answer = await service.search(request.query, organization_id, history, mode=request.mode)
    except (DocSearchError, ValueError) as exc:
        _raise_http(exc, generic=SEARCH_FAILED)
    return SearchResponse(content=answer.content, similarity=answer.similarity)


@router.post("/{organization_id}/tests/generate", response_model=list[TestCaseModel])
async def generate_tests(
    organization_id: str,
    request: GenerateTestsRequest,
    service: SearchService = Depends(get_search_service),
) -> list[TestCaseModel]:
    generator = service.harness.query_generator
    if generator is None:
        raise HTTPException(status_code=503, detail=GENERATOR_REQUIRED)
    try:
        cases = await generator.generate_test_queries(organization_id, request.file_name, request.count)
    except (DocSearchError, ValueError) as exc:
        _raise_http(exc, generic="Failed to generate test queries")
    return [TestCaseModel(**asdict(case)) for case in cases]


@router.post("/{organization_id}/tests/run", response_model=TestRunResponse)
async def run_tests(
    organization_id: str,
    request: RunTestsRequest,
    service: SearchService = Depends(get_search_service),
) -> TestRunResponse:
    try:
        if request.test_cases:
            cases = [TestCase(**case.model_dump()) for case in request.test_cases]
            summary = await service.harness.run_search_tests(organization_id, cases)
        else:
            summary = await service.harness.run_search_tests(organization_id)
    except (DocSearchError, ValueError) as exc:
        _raise_http(exc, generic=SEARCH_FAILED)
    return _serialise_summary(summary)


@router.post("/{organization_id}/tests/suite", response_model=TestRunResponse)
async def run_suite(
    organization_id: str,
    service: SearchService = Depends(get_search_service),
) -> TestRunResponse:
    if service.harness.query_generator is None:
        raise HTTPException(status_code=503, detail=GENERATOR_REQUIRED)
    try:
        summary = await service.harness.run_test_suite(organization_id)
    except (DocSearchError, ValueError) as exc:
        _raise_http(exc, generic="Test suite failed")
    return _serialise_summary(summary)


@router.post("/{organization_id}/tests/single", response_model=TestResultModel)
async def run_single(
    organization_id: str,
    service: SearchService = Depends(get_search_service),
) -> TestResultModel:
    if service.harness.query_generator is None:
        raise HTTPException(status_code=503, detail=GENERATOR_REQUIRED)
    try:
        result = await service.harness.run_single_test(organization_id)
    except (DocSearchError, ValueError) as exc:
        _raise_http(exc, generic="Test run failed")
    return _serialise_result(result)


@router.post("/{organization_id}/grades", response_model=GradeResponse)
def submit_grade(
    organization_id: str,
    request: GradeRequest,
    service: SearchService = Depends(get_search_service),
) -> GradeResponse:
    try:
        record = service.harness.submit_grade(
            test_id=request.test_id,
            organization_id=organization_id,
            query=request.query,
            bot_response=request.bot_response,
            score=request.score,
            graded_by=request.graded_by,
            expected_answer=request.expected_answer,
        )
    except InputValidationError as exc:
        _raise_http(exc, generic="Failed to submit grade")
    return GradeResponse(status="ok", test_id=record.test_id, score=record.score, graded_at=record.graded_at)
