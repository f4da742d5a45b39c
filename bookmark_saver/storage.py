"""Key-value storage areas with change notification.

A storage area holds JSON-compatible values under string keys. Every write
is broadcast to the registered listeners as a mapping of key to
``StorageChange``. Listeners run synchronously in the writing thread, after
the area's lock is released, so a listener may read or write the area again.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable
    from pathlib import Path

LOGGER = logging.getLogger(__name__)

_MISSING = object()


class StorageError(RuntimeError):
    """Raised when a storage area cannot persist a write."""


@dataclass(frozen=True, slots=True)
class StorageChange:
    """Old and new value of one key; ``None`` stands for an absent value."""

    old_value: Any = None
    new_value: Any = None


class KeyValueStorage:
    """Base storage area. Subclasses provide ``_load`` and ``_persist``."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listeners: list[Callable[[dict[str, StorageChange]], None]] = []

    # Persistence hooks --------------------------------------------------------
    def _load(self) -> dict[str, Any]:
        raise NotImplementedError

    def _persist(self, data: dict[str, Any]) -> None:
        raise NotImplementedError

    # Public API ----------------------------------------------------------------
    def get(self, key: str) -> Any:
        """Return a copy of the value stored under ``key`` or ``None``."""
        with self._lock:
            return copy.deepcopy(self._load().get(key))

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` and notify listeners."""
        with self._lock:
            data = self._load()
            old_value = data.get(key)
            data[key] = copy.deepcopy(value)
            self._persist(data)
        self._notify({key: StorageChange(old_value, copy.deepcopy(value))})

    def remove(self, key: str) -> None:
        """Delete ``key``; a no-op (and no notification) when absent."""
        with self._lock:
            data = self._load()
            old_value = data.pop(key, _MISSING)
            if old_value is _MISSING:
                return
            self._persist(data)
        self._notify({key: StorageChange(old_value, None)})

    def add_listener(self, listener: Callable[[dict[str, StorageChange]], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[dict[str, StorageChange]], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, changes: dict[str, StorageChange]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(changes)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Storage listener %r failed", listener)


class MemoryStorage(KeyValueStorage):
    """Storage area living only in the current process."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__()
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def _load(self) -> dict[str, Any]:
        return dict(self._data)

    def _persist(self, data: dict[str, Any]) -> None:
        self._data = data


class JsonFileStorage(KeyValueStorage):
    """Storage area backed by a JSON file that several processes may share.

    Writes from this process notify listeners immediately, after any pending
    external change has been polled. Writes made by
    other processes are picked up by ``poll()``, which emits a change for
    every key whose value differs from the last state this instance saw.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self._last_seen: dict[str, Any] = self._read_file()

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            LOGGER.warning("Unreadable storage file %s (%s); treating as empty", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            LOGGER.warning("Storage file %s does not hold a JSON object; treating as empty", self._path)
            return {}
        return raw

    def _load(self) -> dict[str, Any]:
        return self._read_file()

    def set(self, key: str, value: Any) -> None:
        self.poll()
        super().set(key, value)

    def remove(self, key: str) -> None:
        self.poll()
        super().remove(key)

    def _persist(self, data: dict[str, Any]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as exc:
            msg = f"Failed to write storage file {self._path}: {exc}"
            raise StorageError(msg) from exc
        self._last_seen = copy.deepcopy(data)

    def poll(self) -> dict[str, StorageChange]:
        """Detect writes made by other processes and notify listeners."""
        with self._lock:
            previous = self._last_seen
            current = self._read_file()
            self._last_seen = copy.deepcopy(current)
        changes = {
            key: StorageChange(previous.get(key), current.get(key))
            for key in previous.keys() | current.keys()
            if previous.get(key) != current.get(key)
        }
        if changes:
            LOGGER.debug("Detected external changes to %s", sorted(changes))
            self._notify(changes)
        return changes
