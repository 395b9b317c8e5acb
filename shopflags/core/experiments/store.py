"""Assignment Store.

Durable mirrors for sticky experiment assignments:
- In-memory store
- File-based store
- Key-value store (redis-style ``get``/``set`` client)

Every backend keeps the whole assignment list under a single key, read in
full by ``load`` and rewritten by ``append``.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional

from shopflags.core.errors import AssignmentStoreError, ConfigurationError, ErrorCode
from shopflags.core.experiments.models import Assignment

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "experiment_assignments"


def _decode_records(raw: Any, source: str) -> List[Assignment]:
    if not isinstance(raw, list):
        raise AssignmentStoreError(
            ErrorCode.STORE_READ_FAILED, f"Expected a list of assignments in {source}"
        )

    assignments: List[Assignment] = []
    for record in raw:
        try:
            assignments.append(Assignment.from_dict(record))
        except ConfigurationError as e:
            logger.warning(f"Skipping assignment record from {source}: {e}")
    return assignments


class AssignmentStore(ABC):
    """Abstract base class for assignment persistence."""

    @abstractmethod
    def load(self) -> List[Assignment]:
        """Return every persisted assignment."""

    @abstractmethod
    def append(self, assignment: Assignment) -> None:
        """Persist one new assignment.

        Raises:
            AssignmentStoreError: if the backend cannot be written.
        """


class InMemoryAssignmentStore(AssignmentStore):
    """Process-local store, mainly for tests and single-process hosts."""

    def __init__(self, assignments: Optional[List[Assignment]] = None):
        self._assignments: List[Assignment] = list(assignments or [])
        self._lock = threading.Lock()

    def load(self) -> List[Assignment]:
        with self._lock:
            return list(self._assignments)

    def append(self, assignment: Assignment) -> None:
        with self._lock:
            self._assignments.append(assignment)


class FileAssignmentStore(AssignmentStore):
    """JSON file holding ``{storage_key: [assignment, ...]}``."""

    def __init__(self, file_path: str, storage_key: str = DEFAULT_STORAGE_KEY):
        self.file_path = Path(file_path)
        self.storage_key = storage_key
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.file_path.exists():
            return {}
        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8") or "{}")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AssignmentStoreError(
                ErrorCode.STORE_READ_FAILED, f"Cannot read {self.file_path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise AssignmentStoreError(
                ErrorCode.STORE_READ_FAILED, f"Unexpected content in {self.file_path}"
            )
        return data

    def load(self) -> List[Assignment]:
        with self._lock:
            data = self._read()
        return _decode_records(data.get(self.storage_key, []), str(self.file_path))

    def append(self, assignment: Assignment) -> None:
        with self._lock:
            data = self._read()
            records = data.get(self.storage_key)
            if not isinstance(records, list):
                records = []
            records.append(assignment.to_dict())
            data[self.storage_key] = records
            try:
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                self.file_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            except OSError as e:
                raise AssignmentStoreError(
                    ErrorCode.STORE_WRITE_FAILED, f"Cannot write {self.file_path}: {e}"
                ) from e


class KeyValueAssignmentStore(AssignmentStore):
    """Store backed by a key-value client such as ``redis.Redis``.

    The client only needs ``get(key)`` returning ``str``/``bytes``/``None`` and
    ``set(key, value)``.
    """

    def __init__(self, client: Any, storage_key: str = DEFAULT_STORAGE_KEY):
        self.client = client
        self.storage_key = storage_key

    def _read_records(self) -> list:
        try:
            raw = self.client.get(self.storage_key)
        except Exception as e:
            raise AssignmentStoreError(
                ErrorCode.STORE_READ_FAILED, f"Key-value read failed: {e}"
            ) from e
        if raw is None:
            return []
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return json.loads(raw or "[]")
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AssignmentStoreError(
                ErrorCode.STORE_READ_FAILED, f"Corrupt value under '{self.storage_key}': {e}"
            ) from e

    def load(self) -> List[Assignment]:
        return _decode_records(self._read_records(), f"key '{self.storage_key}'")

    def append(self, assignment: Assignment) -> None:
        records = self._read_records()
        if not isinstance(records, list):
            records = []
        records.append(assignment.to_dict())
        try:
            self.client.set(self.storage_key, json.dumps(records))
        except Exception as e:
            raise AssignmentStoreError(
                ErrorCode.STORE_WRITE_FAILED, f"Key-value write failed: {e}"
            ) from e
