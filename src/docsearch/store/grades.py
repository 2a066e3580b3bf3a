"""Append-only storage for human grades of test answers."""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import List

from docsearch.models import GradeRecord

LOGGER = logging.getLogger(__name__)


class GradeStore(ABC):
    @abstractmethod
    def append(self, record: GradeRecord) -> GradeRecord:
        ...

    @abstractmethod
    def all(self) -> List[GradeRecord]:
        ...

    def recent(self, organization_id: str, limit: int = 20) -> List[GradeRecord]:
        """Return the newest grades of an organization, newest first."""

        records = [record for record in self.all() if record.organization_id == organization_id]
        records.sort(key=lambda record: record.graded_at, reverse=True)
        return records[:limit]

    def for_grader(self, graded_by: str) -> List[GradeRecord]:
        return [record for record in self.all() if record.graded_by == graded_by]


class InMemoryGradeStore(GradeStore):
    def __init__(self) -> None:
        self._records: List[GradeRecord] = []

    def append(self, record: GradeRecord) -> GradeRecord:
        self._records.append(record)
        return record

    def all(self) -> List[GradeRecord]:
        return list(self._records)


class JsonlGradeStore(GradeStore):
    """Persist one JSON object per line; existing lines are never rewritten."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, record: GradeRecord) -> GradeRecord:
        payload = asdict(record)
        payload["graded_at"] = record.graded_at.isoformat()
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
        return record

    def all(self) -> List[GradeRecord]:
        if not self.path.exists():
            return []
        records: List[GradeRecord] = []
        with self.path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    LOGGER.warning("Skipping malformed grade record on line %s of %s", line_number, self.path)
                    continue
                payload["graded_at"] = datetime.fromisoformat(payload["graded_at"])
                records.append(GradeRecord(**payload))
        return records


__all__ = ["GradeStore", "InMemoryGradeStore", "JsonlGradeStore"]
