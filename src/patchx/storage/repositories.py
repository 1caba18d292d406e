"""Typed repositories over a KeyValueStore.

Records are stored as JSON under ``uploads:{id}``, ``submissions:{id}`` and
``remote_nodes:{id}``. A record that cannot be decoded is reported as a
PersistenceError rather than silently treated as missing.
"""

import json
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from patchx.core.models import RemoteNode, Submission, Upload
from patchx.exceptions import PersistenceError
from patchx.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T", Upload, Submission, RemoteNode)


class _JsonRepository(Generic[T]):
    prefix: str = ""

    def __init__(self, store: KeyValueStore, decode: Callable[[dict[str, Any]], T]) -> None:
        self.store = store
        self._decode = decode

    def key(self, record_id: str) -> str:
        return f"{self.prefix}:{record_id}"

    def get(self, record_id: str) -> T | None:
        raw = self.store.get(self.key(record_id))
        if raw is None:
            return None
        try:
            return self._decode(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceError(
                f"Corrupt record {self.key(record_id)}: {e}",
                details={"key": self.key(record_id)},
            ) from e

    def save(self, record: T) -> None:
        payload = json.dumps(record.to_dict(), ensure_ascii=False)
        self.store.put(self.key(record.id), payload)
        logger.debug(f"Saved {self.key(record.id)} ({len(payload)} bytes)")


class UploadRepository(_JsonRepository[Upload]):
    prefix = "uploads"

    def __init__(self, store: KeyValueStore) -> None:
        super().__init__(store, Upload.from_dict)


class SubmissionRepository(_JsonRepository[Submission]):
    prefix = "submissions"

    def __init__(self, store: KeyValueStore) -> None:
        super().__init__(store, Submission.from_dict)


class RemoteNodeRepository(_JsonRepository[RemoteNode]):
    prefix = "remote_nodes"

    def __init__(self, store: KeyValueStore) -> None:
        super().__init__(store, RemoteNode.from_dict)
