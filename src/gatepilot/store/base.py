"""
GatePilot Key-Value Store

The persistent store is an external collaborator consumed through a
narrow get/set/list/delete interface. Records are JSON-compatible dicts.

Implementations:
- InMemoryStore: process-local dict, used by tests and ephemeral runs
- JsonFileStore: one JSON document per key under a root directory
- RetryingStore: wraps any store with bounded retries and linear backoff

Retries live here, in the collaborator, and nowhere in the core.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, TypeVar, Union, runtime_checkable

from ..exceptions import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Record = dict[str, Any]


# =============================================================================
# Store Protocol
# =============================================================================

@runtime_checkable
class KeyValueStore(Protocol):
    """
    Protocol for the persistent record store.

    Keys are "/"-separated paths (e.g. "partners/partner-1"). Every
    operation may fail; callers outside this module never retry.
    """

    def get(self, key: str) -> Optional[Record]:
        """Record stored at key, or None when absent."""
        ...

    def set(self, key: str, record: Record) -> None:
        """Store a record at key, replacing any existing one."""
        ...

    def list(self, prefix: str) -> list[Record]:
        """Every record whose key starts with prefix, ordered by key."""
        ...

    def keys(self, prefix: str) -> list[str]:
        """Every key starting with prefix, sorted."""
        ...

    def delete(self, key: str) -> bool:
        """Remove a record; True if something was removed."""
        ...


# =============================================================================
# In-Memory Store
# =============================================================================

class InMemoryStore:
    """
    Dict-backed store.

    Records are deep-copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._data: dict[str, Record] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Record]:
        with self._lock:
            record = self._data.get(key)
            return copy.deepcopy(record) if record is not None else None

    def set(self, key: str, record: Record) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(record)

    def list(self, prefix: str) -> list[Record]:
        with self._lock:
            return [copy.deepcopy(self._data[k]) for k in sorted(self._data) if k.startswith(prefix)]

    def keys(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._data)


# =============================================================================
# JSON File Store
# =============================================================================

class JsonFileStore:
    """
    One JSON document per key under a root directory.

    "templates/current/gate-0" is stored at <root>/templates/current/gate-0.json.
    Writes go to a temporary file which is fsynced and renamed into place.
    """

    SUFFIX = ".json"

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root.joinpath(*parts[:-1], parts[-1] + self.SUFFIX)

    def _key(self, path: Path) -> str:
        relative = path.relative_to(self.root).as_posix()
        return relative[: -len(self.SUFFIX)]

    def get(self, key: str) -> Optional[Record]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def set(self, key: str, record: Record) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, sort_keys=True, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)

    def keys(self, prefix: str) -> list[str]:
        keys = [self._key(p) for p in self.root.rglob("*" + self.SUFFIX) if p.is_file()]
        return sorted(k for k in keys if k.startswith(prefix))

    def list(self, prefix: str) -> list[Record]:
        records = []
        for key in self.keys(prefix):
            record = self.get(key)
            if record is not None:
                records.append(record)
        return records

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True


# =============================================================================
# Retrying Store
# =============================================================================

class RetryingStore:
    """
    Wraps a store with bounded retries and linear backoff.

    Attempt n (1-based) that fails waits delay_seconds * n before the next
    attempt. After max_retries retries the last error is raised as a
    StoreError carrying the operation and key.

    Usage:
        store = RetryingStore(JsonFileStore("data"), max_retries=3, delay_seconds=1.0)
    """

    def __init__(
        self,
        inner: KeyValueStore,
        max_retries: int = 3,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        retry_on: tuple[type[BaseException], ...] = (OSError,),
    ):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.inner = inner
        self.max_retries = max_retries
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._retry_on = retry_on

    def _call(self, operation: str, key: str, fn: Callable[[], T]) -> T:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except self._retry_on as e:
                if attempt == attempts:
                    logger.error(
                        "Store %s failed for key %s after %d attempts: %s",
                        operation, key, attempts, e,
                    )
                    raise StoreError(
                        message=f"Store {operation} failed for '{key}': {e}",
                        details={"attempts": attempts, "error": str(e)},
                        operation=operation,
                        key=key,
                    ) from e
                delay = self.delay_seconds * attempt
                logger.warning(
                    "Store %s failed for key %s (attempt %d/%d), retrying in %.1fs: %s",
                    operation, key, attempt, attempts, delay, e,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

    def get(self, key: str) -> Optional[Record]:
        return self._call("get", key, lambda: self.inner.get(key))

    def set(self, key: str, record: Record) -> None:
        self._call("set", key, lambda: self.inner.set(key, record))

    def list(self, prefix: str) -> list[Record]:
        return self._call("list", prefix, lambda: self.inner.list(prefix))

    def keys(self, prefix: str) -> list[str]:
        return self._call("keys", prefix, lambda: self.inner.keys(prefix))

    def delete(self, key: str) -> bool:
        return self._call("delete", key, lambda: self.inner.delete(key))
