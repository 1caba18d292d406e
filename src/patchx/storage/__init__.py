"""Persistence: key-value stores and typed repositories."""

from patchx.storage.kv import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from patchx.storage.repositories import (
    RemoteNodeRepository,
    SubmissionRepository,
    UploadRepository,
)

__all__: list[str] = [
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RemoteNodeRepository",
    "SubmissionRepository",
    "UploadRepository",
]
