"""Structured lifecycle events for the search pipeline.

Every event is a dict with at least ``step`` and ``module``; the JSON formatter
in :mod:`docsearch.logging_config` merges it into the emitted log line.
"""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

LOGGER = logging.getLogger("docsearch.telemetry")

PREVIEW_CHARS = 120

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _preview(text: str) -> str:
    return text[:PREVIEW_CHARS]


def _traceback_text(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def _build_event(step: str, module: str, fields: dict[str, Any]) -> dict[str, Any]:
    event: dict[str, Any] = {"step": step, "module": module}
    for key, value in fields.items():
        if value is None:
            continue
        event[key] = round(value, 3) if key == "duration_ms" else value
    return event


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    organization_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit one structured event; ``None`` fields are left out."""

    target = logger or LOGGER
    event = _build_event(
        step,
        target.name,
        dict(req_id=req_id, organization_id=organization_id, duration_ms=duration_ms, details=details),
    )
    event.update(payload)

    exc_info = None
    if isinstance(exc, BaseException):
        event["exc"] = _traceback_text(exc)
        exc_info = (type(exc), exc, exc.__traceback__)
    elif exc:
        event["exc"] = exc

    target.log(_LEVELS.get(level.lower(), logging.INFO), event, exc_info=exc_info)


def emit_embeddings_event(
    *, model: str, count: int, duration_ms: float, cached: bool = False, errors: list[str] | None = None
) -> None:
    log_event(
        LOGGER,
        "embeddings.compute",
        level="warning" if errors else "info",
        duration_ms=duration_ms,
        details=dict(
            model=model,
            count=count,
            cached=cached,
            errors=list(errors or ()),
            per_item_ms=round(duration_ms / count, 3) if count else None,
        ),
    )


def emit_store_event(
    step: str,
    *,
    backend: str,
    organization_id: str | None = None,
    count: int | None = None,
    error: BaseException | None = None,
) -> None:
    log_event(
        LOGGER,
        step,
        level="error" if error is not None else "info",
        organization_id=organization_id,
        details=dict(backend=backend, count=count),
        exc=error,
    )


def emit_ranker_event(*, query: str, candidates: int, results: list[dict[str, Any]], duration_ms: float) -> None:
    log_event(
        LOGGER,
        "ranker.rank",
        duration_ms=duration_ms,
        details=dict(query_preview=_preview(query), candidates=candidates, results=results),
    )


def emit_inference_request(
    *,
    req_id: str,
    purpose: str,
    system_prompt: str,
    message_count: int,
    temperature: float,
    max_tokens: int | None,
    sources: Iterable[str] = (),
) -> None:
    log_event(
        LOGGER,
        "inference.request",
        req_id=req_id,
        details=dict(
            purpose=purpose,
            system_prompt_preview=_preview(system_prompt),
            message_count=message_count,
            temperature=temperature,
            max_tokens=max_tokens,
            sources=list(sources),
        ),
    )


def emit_inference_result(
    *,
    req_id: str,
    purpose: str,
    duration_ms: float,
    model_used: str,
    answer_preview: str,
    cached: bool = False,
) -> None:
    log_event(
        LOGGER,
        "inference.result",
        req_id=req_id,
        duration_ms=duration_ms,
        details=dict(purpose=purpose, model_used=model_used, answer_preview=_preview(answer_preview), cached=cached),
    )


def emit_ingest_event(
    step: str,
    *,
    file_name: str,
    organization_id: str,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    pages: int | None = None,
    chunks: int | None = None,
) -> None:
    log_event(
        LOGGER,
        step,
        organization_id=organization_id,
        duration_ms=duration_ms,
        details=dict(file=file_name, size_bytes=size_bytes, pages=pages, chunks=chunks),
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    organization_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    """Log a pipeline failure with its traceback and an optional operator hint."""

    context: dict[str, Any] = {"module": module, "error_type": type(error).__name__}
    if suggestion:
        context["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        organization_id=organization_id,
        details=context,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    """Log ``<step>.start`` and ``<step>.complete`` around a block, plus ``<step>.error`` on failure."""

    target = logger or LOGGER
    started = time.perf_counter()
    outcome = "ok"
    log_event(target, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        outcome = "error"
        log_event(target, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        log_event(target, f"{step}.complete", duration_ms=elapsed_ms, outcome=outcome, details=fields)


__all__ = [
    "PREVIEW_CHARS",
    "emit_embeddings_event",
    "emit_exception",
    "emit_inference_request",
    "emit_inference_result",
    "emit_ingest_event",
    "emit_ranker_event",
    "emit_store_event",
    "log_event",
    "traced_duration",
]
