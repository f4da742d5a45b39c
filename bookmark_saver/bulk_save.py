"""Bulk saving of browser tabs as bookmarks.

A run walks its tabs strictly one after another: each tab is created on the
remote service, a progress snapshot is emitted, and the run pauses for a
fixed delay before the next tab. Failures are recorded per tab and never
abort the run. Once every tab was attempted, the tabs that were saved can be
closed, and a final inactive snapshot ends the stream.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from attrs import evolve

from .config import BULK_SAVE_DELAY_SECONDS, MAX_DISPLAYED_ERRORS, MAX_ERROR_LINE_LENGTH
from .models import BulkSaveStatus, SaveType

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterator, Sequence

    from .models import Tab
    from .tabs import TabHost

LOGGER = logging.getLogger(__name__)


class BulkSaveError(RuntimeError):
    """Base class for bulk save precondition failures."""


class NoValidTabsError(BulkSaveError):
    """Raised when a run is requested without any saveable tab."""

    def __init__(self) -> None:
        super().__init__("No valid tabs found to save")


class BulkSaveInProgressError(BulkSaveError):
    """Raised when a run is requested while another one is still running."""

    def __init__(self) -> None:
        super().__init__("A bulk save is already in progress")


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class SaveOutcome(Enum):
    ALL_SAVED = "all-saved"
    PARTIAL = "partial"
    NONE_SAVED = "none-saved"


@dataclass(frozen=True, slots=True)
class BulkSaveSummary:
    """Overall result of a completed run; ``message`` is None on full success."""

    outcome: SaveOutcome
    completed: int
    total: int
    message: str | None = None


def summarize(status: BulkSaveStatus) -> BulkSaveSummary:
    """Derive the user-facing outcome from a final status."""
    if status.completed == status.total:
        return BulkSaveSummary(SaveOutcome.ALL_SAVED, status.completed, status.total)
    if status.completed > 0:
        return BulkSaveSummary(
            SaveOutcome.PARTIAL,
            status.completed,
            status.total,
            f"Saved {status.completed} of {status.total} tabs. Some tabs failed to save.",
        )
    return BulkSaveSummary(
        SaveOutcome.NONE_SAVED, status.completed, status.total, "Failed to save any tabs.",
    )


def format_errors(
    errors: Sequence[str],
    limit: int = MAX_DISPLAYED_ERRORS,
    width: int = MAX_ERROR_LINE_LENGTH,
) -> list[str]:
    """Cap the per-tab error list for display, truncating long lines."""
    lines = [_truncate(error, width) for error in errors[:limit]]
    if len(errors) > limit:
        lines.append(f"... and {len(errors) - limit} more")
    return lines


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: max(0, width - 3)] + "..."


def _describe(exc: BaseException) -> str:
    return str(exc).strip() or "Unknown error"


class BulkSaveRun:
    """One bulk save. Iterate it to execute the run and receive snapshots.

    The stream starts with an active snapshot at zero progress, carries one
    snapshot per attempted tab and ends with the inactive final snapshot. A
    run executes once; cancellation is not supported, so a consumer should
    drain it (``wait`` does that).
    """

    def __init__(
        self,
        orchestrator: BulkSaveOrchestrator,
        tabs: Sequence[Tab],
        *,
        close_after: bool,
        save_type: SaveType,
    ) -> None:
        self._orchestrator = orchestrator
        self._tabs = list(tabs)
        self._close_after = close_after
        self._save_type = save_type
        self._state = RunState.IDLE
        self._status = BulkSaveStatus.idle()
        self._saved_tab_ids: list[int | str] = []
        self._closed_tab_ids: list[int | str] = []
        self._started = False

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def status(self) -> BulkSaveStatus:
        """Latest snapshot emitted by the run."""
        return self._status

    @property
    def saved_tab_ids(self) -> list[int | str]:
        return list(self._saved_tab_ids)

    @property
    def closed_tab_ids(self) -> list[int | str]:
        return list(self._closed_tab_ids)

    @property
    def close_after(self) -> bool:
        return self._close_after

    def __iter__(self) -> Iterator[BulkSaveStatus]:
        if self._started:
            msg = "A bulk save run can only be executed once"
            raise RuntimeError(msg)
        self._started = True
        return self._execute()

    def wait(self, on_progress: Callable[[BulkSaveStatus], None] | None = None) -> BulkSaveStatus:
        """Execute the run to completion and return the final snapshot."""
        for status in self:
            if on_progress is not None:
                on_progress(status)
        return self._status

    def summary(self) -> BulkSaveSummary:
        if self._state is not RunState.COMPLETED:
            msg = "Bulk save run has not completed yet"
            raise RuntimeError(msg)
        return summarize(self._status)

    def _emit(self, status: BulkSaveStatus) -> BulkSaveStatus:
        self._status = status
        return status

    def _execute(self) -> Iterator[BulkSaveStatus]:
        self._orchestrator._claim(self)
        try:
            self._state = RunState.RUNNING
            total = len(self._tabs)
            LOGGER.info("Starting bulk save of %d tabs (%s)", total, self._save_type.value)
            status = BulkSaveStatus(is_active=True, total=total, save_type=self._save_type)
            yield self._emit(status)

            for index, tab in enumerate(self._tabs):
                status = self._attempt(tab, index, status)
                yield self._emit(status)
                self._orchestrator.pause()

            if self._close_after and self._saved_tab_ids:
                self._closed_tab_ids = self._orchestrator.close_saved_tabs(self._saved_tab_ids)

            LOGGER.info(
                "Bulk save finished: %d saved, %d failed", status.completed, len(status.errors),
            )
            self._state = RunState.COMPLETED
            final = self._emit(evolve(status, is_active=False))
            self._orchestrator._release(self)
            yield final
        finally:
            self._orchestrator._release(self)

    def _attempt(self, tab: Tab, index: int, status: BulkSaveStatus) -> BulkSaveStatus:
        progress = (index + 1) / status.total * 100
        try:
            bookmark_id = self._orchestrator.create_op(tab)
        except Exception as exc:  # noqa: BLE001
            message = f"{tab.label}: {_describe(exc)}"
            LOGGER.warning("Failed to save tab %s: %s", tab.url, _describe(exc))
            return evolve(status, progress=progress, errors=(*status.errors, message))

        LOGGER.debug("Saved tab %s as bookmark %s", tab.url, bookmark_id)
        if tab.id is not None:
            self._saved_tab_ids.append(tab.id)
        return evolve(status, progress=progress, completed=status.completed + 1)


class BulkSaveOrchestrator:
    """Drives bulk save runs against a create operation and a tab host.

    ``create_op`` creates one bookmark for a tab and returns its id, raising
    on failure. At most one run per orchestrator executes at a time; asking
    for another while one is running raises ``BulkSaveInProgressError``.
    """

    def __init__(
        self,
        create_op: Callable[[Tab], object],
        host: TabHost | None = None,
        *,
        delay: float = BULK_SAVE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.create_op = create_op
        self._host = host
        self._delay = max(0.0, delay)
        self._sleep = sleep
        self._lock = threading.Lock()
        self._active: BulkSaveRun | None = None

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._active is not None

    def run(
        self,
        tabs: Sequence[Tab],
        *,
        close_after: bool = False,
        save_type: SaveType = SaveType.ALL,
    ) -> BulkSaveRun:
        """Prepare a run over ``tabs``; nothing happens until it is iterated.

        Raises ``NoValidTabsError`` when no tab has a URL, and
        ``BulkSaveInProgressError`` while another run is executing.
        """
        if self.is_active:
            raise BulkSaveInProgressError
        valid = [tab for tab in tabs if tab.url]
        if len(valid) != len(tabs):
            LOGGER.warning("Ignoring %d tabs without URL", len(tabs) - len(valid))
        if not valid:
            raise NoValidTabsError
        return BulkSaveRun(self, valid, close_after=close_after, save_type=save_type)

    def pause(self) -> None:
        """Client-side pacing between two creations; not a retry backoff."""
        if self._delay:
            self._sleep(self._delay)

    def close_saved_tabs(self, tab_ids: Sequence[int | str]) -> list[int | str]:
        """Close the saved tabs in one request, else one by one.

        Best-effort: failures of the per-tab fallback are logged and dropped,
        and never change the run's status. Returns the ids actually closed.
        """
        if self._host is None:
            LOGGER.warning("No tab host available; leaving %d saved tabs open", len(tab_ids))
            return []
        try:
            self._host.close_tabs(list(tab_ids))
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Batched tab close failed (%s); closing tabs one by one", exc)
        else:
            LOGGER.info("Closed %d saved tabs", len(tab_ids))
            return list(tab_ids)

        closed: list[int | str] = []
        for tab_id in tab_ids:
            try:
                self._host.close_tabs([tab_id])
            except Exception as tab_exc:  # noqa: BLE001
                LOGGER.debug("Ignoring failure to close tab %s: %s", tab_id, tab_exc)
            else:
                closed.append(tab_id)
        return closed

    def _claim(self, run: BulkSaveRun) -> None:
        with self._lock:
            if self._active is not None and self._active is not run:
                raise BulkSaveInProgressError
            self._active = run

    def _release(self, run: BulkSaveRun) -> None:
        with self._lock:
            if self._active is run:
                self._active = None
