"""HTTP API for the document search service."""
from __future__ import annotations

from .routes import router

__all__ = ["router"]
