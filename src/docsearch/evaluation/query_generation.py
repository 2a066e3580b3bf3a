"""Generation of diverse test queries from ingested documents."""
from __future__ import annotations

import asyncio
import json
import logging
import math
import re
import uuid
from dataclasses import asdict
from itertools import combinations
from typing import List, Optional, Sequence

from docsearch.cache import TTLCache
from docsearch.config import Settings, get_settings
from docsearch.errors import GenerationError, InputValidationError, QueryGenerationError, ResponseParseError
from docsearch.models import TestCase
from docsearch.prompts import load_template
from docsearch.providers import ChatMessage, CompletionOptions, CompletionProvider
from docsearch.store import DocumentStore, GradeStore
from docsearch.telemetry import emit_inference_request, log_event

LOGGER = logging.getLogger(__name__)

QUERY_CATEGORIES: tuple[str, ...] = (
    "Menu & Ingredients",
    "Ordering & Customization",
    "Special Events & Catering",
    "Technical & Process",
    "Dietary & Allergen",
    "Business & Partnership",
    "Unique Situations",
    "Location & Service Area",
)
COMPLEXITIES = ("simple", "medium", "complex")

GENERATION_OPTIONS = CompletionOptions(temperature=0.9, max_tokens=800, response_format="json_object")
GRADE_ANALYSIS_OPTIONS = CompletionOptions(temperature=0.7, max_tokens=200)
PAST_GRADE_LIMIT = 20
PARSE_FAILURE_MESSAGE = "Failed to parse test queries response"

_TOKEN_RE = re.compile(r"[\w'-]+")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def normalize_category(raw: str | None) -> str:
    """Map a free-form category label onto a predefined category when possible."""

    label = (raw or "").strip()
    if not label:
        return "General"
    lowered = label.lower()
    for category in QUERY_CATEGORIES:
        keyword = category.split()[0].lower()
        if lowered == category.lower() or lowered.startswith(keyword):
            return category
    return label


def infer_complexity(query: str) -> str:
    words = len(query.split())
    if words <= 12:
        return "simple"
    if words <= 25:
        return "medium"
    return "complex"


def _topic_tokens(query: str) -> set[str]:
    return {token for token in _TOKEN_RE.findall(query.lower()) if len(token) > 3}


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


class DiversityValidator:
    """Check a generated batch against the diversity rules.

    ``validate`` returns human-readable violations; an empty list means the
    batch is accepted.
    """

    def __init__(self, *, min_categories: int = 6, overlap_threshold: float = 0.6) -> None:
        self.min_categories = min_categories
        self.overlap_threshold = overlap_threshold

    def required_categories(self, count: int) -> int:
        return min(self.min_categories, count)

    def max_per_category(self, count: int) -> int:
        return max(1, math.ceil(count / self.min_categories))

    def validate(self, cases: Sequence[TestCase], count: int) -> List[str]:
        violations: List[str] = []
        if len(cases) != count:
            violations.append(f"Expected {count} questions but got {len(cases)}.")

        per_category: dict[str, int] = {}
        for case in cases:
            per_category[case.category] = per_category.get(case.category, 0) + 1
        required = self.required_categories(count)
        if len(per_category) < required:
            violations.append(
                f"Only {len(per_category)} distinct categories; at least {required} are required."
            )
        limit = self.max_per_category(count)
        for category, seen in sorted(per_category.items()):
            if seen > limit:
                violations.append(f"Category '{category}' has {seen} questions; the limit is {limit}.")

        token_sets = [_topic_tokens(case.query) for case in cases]
        for (i, left), (j, right) in combinations(enumerate(token_sets), 2):
            if jaccard(left, right) >= self.overlap_threshold:
                violations.append(f"Questions {i + 1} and {j + 1} cover the same narrow topic.")

        if len(cases) >= 3 and len({case.complexity for case in cases}) < 2:
            violations.append("All questions share one complexity; alternate simple and complex scenarios.")
        return violations


def _strip_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw.strip()).strip()


def parse_test_queries(raw: str) -> List[TestCase]:
    """Parse the ``{"queries": [...]}`` payload returned by the provider."""

    try:
        payload = json.loads(_strip_fences(raw))
        items = payload["queries"]
        if not isinstance(items, list):
            raise TypeError("'queries' must be a list")
        cases: List[TestCase] = []
        for item in items:
            query = str(item["query"]).strip()
            if not query:
                raise ValueError("empty query")
            complexity = str(item.get("complexity") or "").strip().lower()
            cases.append(
                TestCase(
                    query=query,
                    expected_answer=None,
                    category=normalize_category(item.get("category")),
                    complexity=complexity if complexity in COMPLEXITIES else infer_complexity(query),
                )
            )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as error:
        LOGGER.error("Error parsing test query response: %s; raw response: %s", error, raw)
        raise ResponseParseError(PARSE_FAILURE_MESSAGE, raw=raw, cause=error) from error
    return cases


class QueryGenerator:
    """Ask the text-generation provider for diverse test questions about a file."""

    def __init__(
        self,
        store: DocumentStore,
        grade_store: GradeStore,
        provider: CompletionProvider,
        *,
        settings: Settings | None = None,
        validator: DiversityValidator | None = None,
        document_cache: Optional[TTLCache[str, str]] = None,
    ) -> None:
        self.store = store
        self.grade_store = grade_store
        self.provider = provider
        self.settings = settings or get_settings()
        self.validator = validator or DiversityValidator()
        self.document_cache: TTLCache[str, str] = document_cache or TTLCache(
            self.settings.document_cache_ttl_seconds
        )

    def document_text(self, organization_id: str, file_name: str) -> str:
        key = f"{organization_id}:{file_name}"
        cached = self.document_cache.get(key)
        if cached is not None:
            return cached
        chunks = self.store.fetch_file_chunks(organization_id, file_name, limit=self.settings.query_doc_chunks)
        if not chunks:
            raise InputValidationError(f"No ingested content found for {file_name}")
        text = "\n".join(chunk.content for chunk in chunks)
        self.document_cache.set(key, text)
        return text

    async def analyze_past_grades(self, organization_id: str) -> Optional[str]:
        """Summarise recent grades; failures are logged and yield ``None``."""

        grades = self.grade_store.recent(organization_id, PAST_GRADE_LIMIT)
        if not grades:
            return None
        payload = json.dumps([asdict(grade) for grade in grades], default=str, ensure_ascii=False)
        try:
            analysis = await self._complete(
                load_template("grade_analysis_system"),
                [{"role": "user", "content": payload}],
                GRADE_ANALYSIS_OPTIONS,
                purpose="grade_analysis",
            )
        except GenerationError as error:
            log_event(LOGGER, "grades.analysis_failed", level="warning", organization_id=organization_id, exc=error)
            return None
        return analysis.strip() or None

    async def generate_test_queries(
        self, organization_id: str, file_name: str, count: int = 5
    ) -> List[TestCase]:
        if count <= 0:
            raise InputValidationError("count must be a positive integer")

        document = self.document_text(organization_id, file_name)
        analysis = await self.analyze_past_grades(organization_id)
        system_prompt = load_template("query_generation_system").format(
            categories="\n".join(f"{index}. {name}" for index, name in enumerate(QUERY_CATEGORIES, start=1)),
            max_per_category=self.validator.max_per_category(count),
            min_categories=self.validator.required_categories(count),
            past_analysis=analysis or "No past data available",
        )
        messages: List[ChatMessage] = [
            {
                "role": "user",
                "content": load_template("query_generation_user").format(count=count, document=document),
            }
        ]

        violations: List[str] = []
        for attempt in range(1, self.settings.query_generation_attempts + 1):
            raw = await self._complete(system_prompt, messages, GENERATION_OPTIONS, purpose="test_queries")
            cases = parse_test_queries(raw)
            violations = self.validator.validate(cases, count)
            if not violations:
                log_event(
                    LOGGER,
                    "test_queries.generated",
                    organization_id=organization_id,
                    file=file_name,
                    attempt=attempt,
                    count=len(cases),
                )
                return cases
            log_event(
                LOGGER,
                "test_queries.rejected",
                level="warning",
                organization_id=organization_id,
                attempt=attempt,
                violations=violations,
            )
            messages = messages + [
                {"role": "assistant", "content": raw},
                {
                    "role": "user",
                    "content": load_template("query_generation_retry").format(
                        violations="\n".join(f"- {violation}" for violation in violations),
                        count=count,
                    ),
                },
            ]

        raise QueryGenerationError(
            f"Generated test queries failed diversity checks after {self.settings.query_generation_attempts} attempts",
            violations=violations,
        )

    async def _complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
        *,
        purpose: str,
    ) -> str:
        emit_inference_request(
            req_id=uuid.uuid4().hex,
            purpose=purpose,
            system_prompt=system_prompt,
            message_count=len(messages),
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
        try:
            return await asyncio.wait_for(
                self.provider.complete(system_prompt, messages, options),
                timeout=self.settings.provider_timeout_seconds,
            )
        except asyncio.TimeoutError as error:
            raise GenerationError(f"{purpose} generation timed out", retryable=True, cause=error) from error
        except GenerationError:
            raise
        except Exception as error:
            raise GenerationError(f"{purpose} generation failed: {error}", cause=error) from error


__all__ = [
    "COMPLEXITIES",
    "DiversityValidator",
    "GENERATION_OPTIONS",
    "PARSE_FAILURE_MESSAGE",
    "QUERY_CATEGORIES",
    "QueryGenerator",
    "infer_complexity",
    "jaccard",
    "normalize_category",
    "parse_test_queries",
]
