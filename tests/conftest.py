"""Shared pytest fixtures for bookmark saver tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from bookmark_saver.models import Tab
from bookmark_saver.settings import ConfigStore
from bookmark_saver.storage import MemoryStorage
from bookmark_saver.tabs import TabClosureError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


class CountingStorage(MemoryStorage):
    """In-memory storage area that records every write."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__(initial)
        self.writes: list[tuple[str, Any]] = []

    def set(self, key: str, value: Any) -> None:
        self.writes.append((key, value))
        super().set(key, value)


class FakeTabHost:
    """Tab host double recording close requests."""

    def __init__(
        self,
        tabs: Sequence[Tab] = (),
        window_tabs: Sequence[Tab] | None = None,
        *,
        fail_batch: bool = False,
        failing_ids: Sequence[int | str] = (),
    ) -> None:
        self.tabs = list(tabs)
        self.window_tabs = list(window_tabs) if window_tabs is not None else list(tabs)
        self.fail_batch = fail_batch
        self.failing_ids = set(failing_ids)
        self.close_calls: list[list[int | str]] = []

    def query_tabs(self, *, current_window: bool = False) -> list[Tab]:
        return list(self.window_tabs if current_window else self.tabs)

    def active_tab(self) -> Tab | None:
        return self.tabs[0] if self.tabs else None

    def close_tabs(self, tab_ids: Sequence[int | str]) -> None:
        ids = list(tab_ids)
        self.close_calls.append(ids)
        if self.fail_batch and len(ids) > 1:
            msg = "batch close refused"
            raise TabClosureError(msg)
        if self.failing_ids.intersection(ids):
            msg = f"cannot close {ids}"
            raise TabClosureError(msg)


class RecordingCreateOp:
    """Create operation double failing for the configured URLs."""

    def __init__(self, failures: dict[str, str] | None = None) -> None:
        self.failures = failures or {}
        self.calls: list[Tab] = []

    def __call__(self, tab: Tab) -> str:
        self.calls.append(tab)
        if tab.url in self.failures:
            raise RuntimeError(self.failures[tab.url])
        return f"bm-{len(self.calls)}"


@pytest.fixture
def storage() -> CountingStorage:
    return CountingStorage()


@pytest.fixture
def store(storage: CountingStorage) -> ConfigStore:
    return ConfigStore(storage)


@pytest.fixture
def make_tabs() -> Callable[..., list[Tab]]:
    """Build tabs A, B, C... with ids 1, 2, 3... and titles ``<letter>-title``."""

    def _make(count: int) -> list[Tab]:
        return [
            Tab(
                url=f"https://{chr(ord('a') + i)}.example/",
                title=f"{chr(ord('A') + i)}-title",
                id=i + 1,
            )
            for i in range(count)
        ]

    return _make


@pytest.fixture
def no_sleep() -> list[float]:
    """Collects requested pauses instead of sleeping."""
    return []
