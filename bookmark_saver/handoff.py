"""One-shot request hand-off between surfaces via the session storage area."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .config import NEW_BOOKMARK_REQUEST_KEY_NAME

if TYPE_CHECKING:  # pragma: no cover
    from .models import NewBookmarkRequest
    from .storage import KeyValueStorage

LOGGER = logging.getLogger(__name__)

BULK_SAVE_ALL_TABS = "BULK_SAVE_ALL_TABS"


class RequestChannel:
    """Holds at most one pending request; reading it clears it."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    def post(self, request: NewBookmarkRequest | dict[str, Any]) -> None:
        payload = request if isinstance(request, dict) else request.model_dump(mode="json")
        LOGGER.debug("Posting hand-off request of type %s", payload.get("type"))
        self._storage.set(NEW_BOOKMARK_REQUEST_KEY_NAME, payload)

    def post_bulk_save(self) -> None:
        self.post({"type": BULK_SAVE_ALL_TABS})

    def take(self) -> dict[str, Any] | None:
        """Return the pending request, removing it before anything else runs.

        A request left behind would re-trigger on a later, unrelated load.
        """
        request = self._storage.get(NEW_BOOKMARK_REQUEST_KEY_NAME)
        if request is None:
            return None
        self._storage.remove(NEW_BOOKMARK_REQUEST_KEY_NAME)
        if not isinstance(request, dict):
            LOGGER.warning("Discarding malformed hand-off request: %r", request)
            return None
        return request

    def take_bulk_save(self) -> bool:
        """Consume a pending bulk-save request; other requests stay pending."""
        request = self._storage.get(NEW_BOOKMARK_REQUEST_KEY_NAME)
        if not is_bulk_save_request(request):
            return False
        self._storage.remove(NEW_BOOKMARK_REQUEST_KEY_NAME)
        return True


def is_bulk_save_request(request: object) -> bool:
    return isinstance(request, dict) and request.get("type") == BULK_SAVE_ALL_TABS
