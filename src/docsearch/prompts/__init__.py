"""Prompt templates shipped with the package."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

_PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    """Read and trim the contents of a template file."""

    return (_PROMPTS_DIR / f"{name}.txt").read_text(encoding="utf-8").strip()


__all__ = ["load_template"]
