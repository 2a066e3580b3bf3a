"""Runtime settings resolved from environment variables."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

LOGGER = logging.getLogger(__name__)

ANSWER_MODES = ("extractive", "generative")


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass(slots=True)
class Settings:
    """Tunable knobs for ingestion, ranking, synthesis and evaluation."""

    embedding_provider: str = "mock"
    completion_provider: str = "mock"
    embedding_model: str = "text-embedding-3-small"
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    completion_model: str = "gpt-4o-mini"
    openai_api_key: str | None = None
    document_store: str = "memory"
    chroma_persist_dir: Path = Path("chroma_db")
    storage_dir: Path = Path("data")
    grades_path: Path | None = None
    log_dir: Path = Path("logs")
    max_chunk_size: int = 1000
    candidate_limit: int = 20
    rank_top_k: int = 3
    rank_offload: bool = False
    query_cache_ttl_seconds: float = 300.0
    document_cache_ttl_seconds: float = 1800.0
    provider_timeout_seconds: float = 30.0
    answer_mode: str = "generative"
    query_generation_attempts: int = 3
    query_doc_chunks: int = 3


def load_settings() -> Settings:
    """Build :class:`Settings` from the current process environment."""

    answer_mode = _str_from_env("ANSWER_MODE", "generative").lower()
    if answer_mode not in ANSWER_MODES:
        LOGGER.warning("Unknown ANSWER_MODE %s; using generative", answer_mode)
        answer_mode = "generative"

    grades_path = os.getenv("GRADES_PATH")
    return Settings(
        embedding_provider=_str_from_env("EMBEDDING_PROVIDER", "mock").lower(),
        completion_provider=_str_from_env("COMPLETION_PROVIDER", "mock").lower(),
        embedding_model=_str_from_env("EMBEDDING_MODEL", "text-embedding-3-small"),
        local_embedding_model=_str_from_env(
            "EMBEDDING_MODEL_PATH", "sentence-transformers/all-MiniLM-L6-v2"
        ),
        completion_model=_str_from_env("COMPLETION_MODEL", "gpt-4o-mini"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        document_store=_str_from_env("DOCUMENT_STORE", "memory").lower(),
        chroma_persist_dir=Path(_str_from_env("CHROMA_PERSIST_DIR", "chroma_db")),
        storage_dir=Path(_str_from_env("STORAGE_DIR", "data")),
        grades_path=Path(grades_path) if grades_path else None,
        log_dir=Path(_str_from_env("LOG_DIR", "logs")),
        max_chunk_size=_int_from_env("MAX_CHUNK_SIZE", 1000),
        candidate_limit=_int_from_env("CANDIDATE_LIMIT", 20),
        rank_top_k=_int_from_env("RANK_TOP_K", 3),
        rank_offload=_env_flag("RANK_OFFLOAD"),
        query_cache_ttl_seconds=_float_from_env("QUERY_CACHE_TTL_SECONDS", 300.0),
        document_cache_ttl_seconds=_float_from_env("DOCUMENT_CACHE_TTL_SECONDS", 1800.0),
        provider_timeout_seconds=_float_from_env("PROVIDER_TIMEOUT_SECONDS", 30.0),
        answer_mode=answer_mode,
        query_generation_attempts=max(_int_from_env("QUERY_GENERATION_ATTEMPTS", 3), 1),
        query_doc_chunks=max(_int_from_env("QUERY_DOC_CHUNKS", 3), 1),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def reset_settings_cache() -> None:
    """Forget the cached settings so the next call re-reads the environment."""

    get_settings.cache_clear()


__all__ = [
    "ANSWER_MODES",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings_cache",
]
