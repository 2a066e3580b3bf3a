"""Utilities for persisting uploaded documents on disk."""
from __future__ import annotations

import hashlib
import logging
import re
import time
from pathlib import Path
from typing import Final

from docsearch.errors import InputValidationError

LOGGER = logging.getLogger(__name__)

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""
    if not filename:
        filename = "upload"
    sanitized = Path(filename).name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    sanitized = sanitized.strip("._") or "upload"
    return sanitized


def organization_segment(organization_id: str) -> str:
    """Return the storage folder name for an organization.

    Ids that need sanitizing get a short digest suffix so that ``a b`` and
    ``a_b`` do not share a folder.
    """
    sanitized = _sanitize_filename(organization_id)
    if sanitized == organization_id:
        return sanitized
    digest = hashlib.sha256(organization_id.encode("utf-8")).hexdigest()[:8]
    return f"{sanitized}-{digest}"


class FileStorage:
    """Object storage for uploads, addressed by relative storage paths.

    Paths look like ``organizations/<org>/<millis>-<name>`` and are resolved
    under ``root``.
    """

    def __init__(self, root: str | Path = "data") -> None:
        self.root = Path(root)

    def save(self, organization_id: str, file_name: str, data: bytes) -> str:
        if not organization_id:
            raise InputValidationError("Organization ID is required")
        stamped_name = f"{int(time.time() * 1000)}-{_sanitize_filename(file_name)}"
        storage_path = self.organization_prefix(organization_id) + stamped_name
        destination = self._resolve(storage_path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        LOGGER.info("Stored upload %s (%s bytes)", storage_path, len(data))
        return storage_path

    def organization_prefix(self, organization_id: str) -> str:
        return f"organizations/{organization_segment(organization_id)}/"

    def belongs_to(self, organization_id: str, storage_path: str) -> bool:
        return bool(organization_id) and storage_path.startswith(self.organization_prefix(organization_id))

    def read(self, storage_path: str) -> bytes:
        return self._resolve(storage_path).read_bytes()

    def delete(self, storage_path: str) -> bool:
        target = self._resolve(storage_path)
        if not target.exists():
            LOGGER.warning("Upload %s already missing from storage", storage_path)
            return False
        target.unlink()
        return True

    def _resolve(self, storage_path: str) -> Path:
        root = self.root.resolve()
        target = (root / storage_path).resolve()
        if root not in target.parents:
            raise InputValidationError("File path is outside the storage root")
        return target


__all__ = ["FileStorage", "organization_segment"]
