import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from docsearch.api import router as documents_router
from docsearch.config import get_settings
from docsearch.logging_config import configure_logging
from docsearch.service import reset_search_service_cache
from docsearch.telemetry import log_event

configure_logging(get_settings().log_dir)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Document Search API")
app.include_router(documents_router)


@app.on_event("startup")
async def _log_startup() -> None:
    settings = get_settings()
    log_event(
        LOGGER,
        "app.startup",
        embedding_provider=settings.embedding_provider,
        completion_provider=settings.completion_provider,
        document_store=settings.document_store,
        answer_mode=settings.answer_mode,
    )


@app.on_event("shutdown")
async def _release_service() -> None:
    reset_search_service_cache()


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"
