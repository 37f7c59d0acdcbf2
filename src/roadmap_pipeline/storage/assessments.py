"""
Assessment persistence with pluggable backends.

Records are keyed by ``(subject_id, session_id)``; ``upsert`` overwrites an
existing record for the same key instead of adding a second one.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from ..observability.logging import get_logger

log = get_logger("roadmap.storage")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class AssessmentRecord:
    """One persisted assessment result."""

    subject_id: str
    session_id: str
    zones: dict[str, str]
    matrix_scores: dict[str, int]
    total_score: int
    overall_stage: str
    plan_status: str  # "generated" or "fallback"
    input_snapshot: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return (self.subject_id, self.session_id)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssessmentRecord":
        values = dict(data)
        for name in ("created_at", "updated_at"):
            if isinstance(values.get(name), str):
                values[name] = datetime.fromisoformat(values[name])
        return cls(**values)


class AssessmentStore(ABC):
    """Abstract interface for assessment storage."""

    backend: str = ""

    @abstractmethod
    def upsert(self, record: AssessmentRecord) -> AssessmentRecord:
        """Insert the record, or overwrite the one with the same key."""

    @abstractmethod
    def get(self, subject_id: str, session_id: str) -> AssessmentRecord | None:
        pass

    @abstractmethod
    def list_for_subject(self, subject_id: str) -> list[AssessmentRecord]:
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    def close(self) -> None:
        """Release backend resources."""


class LocalStore(AssessmentStore):
    """One JSON document per record under ``root/<subject>/<session>.json``.

    Key components are percent-encoded so distinct keys never share a file.
    """

    backend = "local"

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        log.info("Local assessment store initialized", root=str(self.root))

    @staticmethod
    def _encode(part: str) -> str:
        if not part:
            raise ValueError("Storage key components must be non-empty")
        encoded = quote(part, safe="")
        # "." and ".." are left alone by quote
        if not encoded.strip("."):
            encoded = encoded.replace(".", "%2E")
        return encoded

    def _path(self, subject_id: str, session_id: str) -> Path:
        return self.root / self._encode(subject_id) / f"{self._encode(session_id)}.json"

    @staticmethod
    def _read(path: Path) -> AssessmentRecord:
        return AssessmentRecord.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def upsert(self, record: AssessmentRecord) -> AssessmentRecord:
        path = self._path(record.subject_id, record.session_id)
        path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            if path.exists():
                record.created_at = self._read(path).created_at
            record.updated_at = _utcnow()

            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=path.parent, prefix=".", suffix=".tmp", delete=False
            ) as tmp:
                json.dump(record.to_dict(), tmp, indent=2, default=str)
            os.replace(tmp.name, path)

        log.debug("Upserted assessment", subject=record.subject_id, session=record.session_id)
        return record

    def get(self, subject_id: str, session_id: str) -> AssessmentRecord | None:
        path = self._path(subject_id, session_id)
        if not path.exists():
            return None
        record = self._read(path)
        if record.key != (subject_id, session_id):
            log.warning("Stored key mismatch", path=str(path), subject=subject_id)
            return None
        return record

    def list_for_subject(self, subject_id: str) -> list[AssessmentRecord]:
        folder = self.root / self._encode(subject_id)
        if not folder.exists():
            return []
        records = [self._read(path) for path in sorted(folder.glob("*.json"))]
        return sorted(
            (r for r in records if r.subject_id == subject_id), key=lambda r: r.created_at
        )

    def count(self) -> int:
        return sum(1 for _ in self.root.glob("*/*.json"))
