"""Client for the remote bookmarking service's REST API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from .config import REQUEST_TIMEOUT_SECONDS

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable

    from .models import NewBookmarkRequest, Settings, Tab

LOGGER = logging.getLogger(__name__)

USER_AGENT = "bookmark-saver/0.1"


class BookmarkApiError(RuntimeError):
    """Raised when the service cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BookmarkApiClient:
    """Thin wrapper over the service endpoints the saver needs.

    Performs no retries; a failed call raises ``BookmarkApiError`` with a
    message suitable for showing to the user.
    """

    def __init__(
        self,
        settings: Settings,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = settings.address.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})
        self._session.headers.update(settings.custom_headers)
        self._session.headers["Authorization"] = f"Bearer {settings.api_key}"

    def create_bookmark(self, request: NewBookmarkRequest) -> str:
        """Create a bookmark and return its identifier."""
        url = f"{self._base_url}/api/v1/bookmarks"
        payload = request.model_dump(mode="json", exclude_none=True)
        LOGGER.debug("Creating bookmark for %s", request.url)
        try:
            response = self._session.post(url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            msg = f"Could not reach {self._base_url}: {exc}"
            raise BookmarkApiError(msg) from exc

        if not response.ok:
            raise BookmarkApiError(_error_message(response), response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            msg = "Server returned an invalid response"
            raise BookmarkApiError(msg, response.status_code) from exc
        bookmark_id = body.get("id") if isinstance(body, dict) else None
        if not bookmark_id:
            msg = "Server response is missing the bookmark id"
            raise BookmarkApiError(msg, response.status_code)
        return str(bookmark_id)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if response.status_code in {401, 403}:
        return "Unauthorized: check the API key"
    return f"HTTP {response.status_code}"


def create_op_for(client: BookmarkApiClient) -> Callable[[Tab], str]:
    """Adapt the client to the per-tab create operation of a bulk save."""

    def _create(tab: Tab) -> str:
        return client.create_bookmark(tab.to_request())

    return _create
