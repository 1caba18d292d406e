"""Durable key-value stores.

The pipeline only needs ``get``/``put`` on string values. There are no
transactions: a read followed by a write is not atomic, and callers that
read-modify-write a record must own that record's key (single writer per id).
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

from patchx.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal durable string store."""

    def get(self, key: str) -> str | None:
        """Return the value for ``key`` or None when absent."""
        ...

    def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...


class InMemoryKeyValueStore:
    """Process-local store backed by a dict. Used by default and in tests."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class FileKeyValueStore:
    """One file per key under a root directory.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so readers never observe a half-written value.

    Args:
        root: Directory holding the store. Created on first write.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        if not key:
            raise PersistenceError("Store key cannot be empty")
        return self.root / f"{quote(key, safe='')}{self.SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Failed to read store key {key}: {e}")
            raise PersistenceError(
                f"Failed to read {key}: {e}", details={"key": key, "path": str(path)}
            ) from e

    def put(self, key: str, value: str) -> None:
        path = self._path_for(key)
        temp_name: str | None = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(dir=self.root, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(temp_name, path)
            temp_name = None
        except OSError as e:
            logger.error(f"Failed to write store key {key}: {e}")
            raise PersistenceError(
                f"Failed to write {key}: {e}", details={"key": key, "path": str(path)}
            ) from e
        finally:
            if temp_name is not None and os.path.exists(temp_name):
                try:
                    os.remove(temp_name)
                except OSError as e:
                    logger.warning(f"Failed to remove temporary file {temp_name}: {e}")

    def keys(self, prefix: str = "") -> list[str]:
        if not self.root.is_dir():
            return []
        found = (
            unquote(p.name[: -len(self.SUFFIX)])
            for p in self.root.iterdir()
            if p.name.endswith(self.SUFFIX)
        )
        return sorted(k for k in found if k.startswith(prefix))
