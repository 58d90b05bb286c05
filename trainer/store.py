"""Record stores backing ProgressStore and PuzzleBank.

A store holds named collections of JSON-compatible dict records keyed by a
string. MemoryStore keeps everything in process; JsonFileStore adds a JSON
file on disk that is rewritten atomically after every change.
"""

from __future__ import annotations

import abc
import copy
import json
import logging
import os
import shutil
from pathlib import Path

from trainer.errors import PersistenceError

logger = logging.getLogger(__name__)


class Store(abc.ABC):
    """Keyed collections with simple secondary lookups."""

    @abc.abstractmethod
    def get(self, collection: str, key: str) -> dict | None:
        """Return a copy of the record, or None if absent."""

    @abc.abstractmethod
    def put(self, collection: str, key: str, record: dict) -> None:
        """Insert or replace a record."""

    @abc.abstractmethod
    def put_many(self, collection: str, records: dict[str, dict]) -> None:
        """Insert or replace several records in one write."""

    @abc.abstractmethod
    def all(self, collection: str) -> list[dict]:
        """Return copies of every record, ordered by key."""

    @abc.abstractmethod
    def clear(self, collection: str) -> None:
        """Remove every record in a collection."""

    def count(self, collection: str) -> int:
        return len(self.all(collection))

    def query(self, collection: str, index: str, value) -> list[dict]:
        """Records whose ``index`` field equals ``value``."""
        return [r for r in self.all(collection) if r.get(index) == value]

    def query_range(self, collection: str, index: str, lower, upper) -> list[dict]:
        """Records whose ``index`` field lies in ``[lower, upper]``.

        Records without a value for the field are skipped.
        """
        matches = []
        for record in self.all(collection):
            value = record.get(index)
            if value is not None and lower <= value <= upper:
                matches.append(record)
        return matches


class MemoryStore(Store):
    """In-process store. Records are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict]] = {}

    def get(self, collection: str, key: str) -> dict | None:
        record = self._data.get(collection, {}).get(key)
        return copy.deepcopy(record) if record is not None else None

    def put(self, collection: str, key: str, record: dict) -> None:
        bucket = dict(self._data.get(collection, {}))
        bucket[key] = copy.deepcopy(record)
        self._commit(collection, bucket)

    def put_many(self, collection: str, records: dict[str, dict]) -> None:
        bucket = dict(self._data.get(collection, {}))
        for key, record in records.items():
            bucket[key] = copy.deepcopy(record)
        self._commit(collection, bucket)

    def all(self, collection: str) -> list[dict]:
        bucket = self._data.get(collection, {})
        return [copy.deepcopy(bucket[k]) for k in sorted(bucket)]

    def clear(self, collection: str) -> None:
        self._commit(collection, None)

    def _commit(self, collection: str, bucket: dict[str, dict] | None) -> None:
        """Swap in a new bucket; a failed flush leaves the old one in place."""
        previous = self._data.get(collection)
        if bucket is None:
            self._data.pop(collection, None)
        else:
            self._data[collection] = bucket
        try:
            self._flush(collection)
        except PersistenceError:
            if previous is None:
                self._data.pop(collection, None)
            else:
                self._data[collection] = previous
            raise

    def _flush(self, collection: str) -> None:
        """Hook for subclasses that persist after each change."""


class JsonFileStore(MemoryStore):
    """MemoryStore mirrored to a single JSON file.

    If the file is corrupted it is backed up as .bak and the store starts
    empty. Write failures raise PersistenceError.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, dict[str, dict]]:
        if not self._path.exists():
            return {}

        try:
            text = self._path.read_text(encoding="utf-8")
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError("Store file must contain a JSON object")
            return data
        except (json.JSONDecodeError, ValueError):
            backup_path = self._path.with_suffix(".bak")
            shutil.copy2(self._path, backup_path)
            logger.warning("Corrupt store %s backed up to %s", self._path, backup_path)
            return {}
        except OSError as exc:
            raise PersistenceError(f"Cannot read store {self._path}: {exc}") from exc

    def _flush(self, collection: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            os.replace(tmp_path, self._path)
        except (OSError, TypeError) as exc:
            raise PersistenceError(
                f"Cannot write {collection} to {self._path}: {exc}",
                collection=collection,
            ) from exc
