"""Saving a single page: from a hand-off request or the active tab."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .client import BookmarkApiError
from .handoff import is_bulk_save_request
from .models import NewBookmarkRequest

if TYPE_CHECKING:  # pragma: no cover
    from .client import BookmarkApiClient
    from .handoff import RequestChannel
    from .models import Settings
    from .tabs import TabHost

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PreparedSave:
    """What the single-save surface should do next.

    Exactly one of ``request``, ``trigger_bulk_save`` or ``error`` is set.
    """

    request: NewBookmarkRequest | None = None
    trigger_bulk_save: bool = False
    error: str | None = None


@dataclass(slots=True)
class SingleSaveResult:
    bookmark_id: str | None = None
    error: str | None = None
    awaiting_confirmation: bool = False

    @property
    def saved(self) -> bool:
        return self.bookmark_id is not None


def prepare_request(channel: RequestChannel, host: TabHost) -> PreparedSave:
    """Pick up a pending hand-off request, else target the active tab."""
    try:
        pending = channel.take()
        if pending is not None:
            if is_bulk_save_request(pending):
                return PreparedSave(trigger_bulk_save=True)
            try:
                return PreparedSave(request=NewBookmarkRequest.model_validate(pending))
            except ValidationError as exc:
                LOGGER.error("Bookmark request validation failed: %s", exc)
                return PreparedSave(error="Invalid bookmark request")

        tab = host.active_tab()
        if tab is None or not tab.url:
            return PreparedSave(error="Couldn't find the URL of the current tab")
        try:
            return PreparedSave(request=NewBookmarkRequest(url=tab.url))
        except ValidationError as exc:
            LOGGER.error("Bookmark request validation failed: %s", exc)
            return PreparedSave(error="Invalid bookmark request")
    except Exception:  # noqa: BLE001
        LOGGER.exception("Failed to prepare bookmark data")
        return PreparedSave(error="Something went wrong while preparing the bookmark.")


def save_single(
    settings: Settings,
    client: BookmarkApiClient,
    prepared: PreparedSave,
    *,
    confirmed: bool = False,
) -> SingleSaveResult:
    """Create the prepared bookmark when auto-save is on or the user confirmed."""
    if not settings.api_key or not settings.address:
        return SingleSaveResult(error="Not configured: set the API key and server address first")
    if prepared.error is not None:
        return SingleSaveResult(error=prepared.error)
    if prepared.request is None:
        return SingleSaveResult()
    if not (settings.auto_save or confirmed):
        return SingleSaveResult(awaiting_confirmation=True)

    try:
        bookmark_id = client.create_bookmark(prepared.request)
    except BookmarkApiError as exc:
        LOGGER.warning("Failed to save %s: %s", prepared.request.url, exc.message)
        return SingleSaveResult(error="Something went wrong: " + exc.message)
    LOGGER.info("Saved %s as bookmark %s", prepared.request.url, bookmark_id)
    return SingleSaveResult(bookmark_id=bookmark_id)
