"""Semantic search and answer extraction over organization documents."""

__version__ = "0.1.0"
