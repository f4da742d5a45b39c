"""Tab discovery and closure through the browser host."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import requests

from .config import DEFAULT_DEVTOOLS_URL, REQUEST_TIMEOUT_SECONDS
from .models import SaveType, Tab

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable, Sequence

LOGGER = logging.getLogger(__name__)

_ALLOWED_SCHEMES = ("http://", "https://")
_INTERNAL_SCHEMES = ("chrome://", "chrome-extension://", "moz-extension://")


class TabClosureError(RuntimeError):
    """Raised when the host refuses to close one or more tabs."""


class TabHost(Protocol):
    """Browser primitives the save workflows rely on."""

    def query_tabs(self, *, current_window: bool = False) -> list[Tab]: ...

    def active_tab(self) -> Tab | None: ...

    def close_tabs(self, tab_ids: Sequence[int | str]) -> None: ...


def is_http_url(url: str | None) -> bool:
    """Return True for http(s) URLs that are not browser-internal pages."""
    if not url:
        return False
    if url.startswith(_INTERNAL_SCHEMES):
        return False
    return url.startswith(_ALLOWED_SCHEMES)


def filter_saveable_tabs(tabs: Iterable[Tab]) -> list[Tab]:
    """Keep only the tabs whose URL can be bookmarked, preserving order."""
    return [tab for tab in tabs if is_http_url(tab.url)]


def collect_tabs(host: TabHost, save_type: SaveType) -> list[Tab]:
    """Enumerate the saveable tabs for a bulk save of the given scope."""
    if save_type is SaveType.NONE:
        return []
    tabs = host.query_tabs(current_window=save_type is SaveType.WINDOW)
    valid = filter_saveable_tabs(tabs)
    LOGGER.debug(
        "Collected %d saveable tabs out of %d (%s)", len(valid), len(tabs), save_type.value,
    )
    return valid


class DevToolsTabHost:
    """Tab host backed by the Chrome DevTools HTTP endpoint.

    Start the browser with ``--remote-debugging-port=9222`` to expose it.
    The endpoint has no notion of windows, so ``current_window=True`` lists
    every page target, and the most recently focused page is listed first.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_DEVTOOLS_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def query_tabs(self, *, current_window: bool = False) -> list[Tab]:
        if current_window:
            LOGGER.debug("DevTools cannot scope tabs to a window; listing all pages")
        response = self._session.get(f"{self._base_url}/json/list", timeout=self._timeout)
        response.raise_for_status()
        targets = response.json()
        if not isinstance(targets, list):
            msg = "DevTools target list is not a JSON array"
            raise TypeError(msg)
        return [
            Tab(url=target.get("url"), title=target.get("title") or None, id=target.get("id"))
            for target in targets
            if isinstance(target, dict) and target.get("type") == "page"
        ]

    def active_tab(self) -> Tab | None:
        tabs = self.query_tabs()
        return tabs[0] if tabs else None

    def close_tabs(self, tab_ids: Sequence[int | str]) -> None:
        failures: list[str] = []
        for tab_id in tab_ids:
            try:
                response = self._session.get(
                    f"{self._base_url}/json/close/{tab_id}", timeout=self._timeout,
                )
                response.raise_for_status()
            except requests.RequestException as exc:
                failures.append(f"{tab_id}: {exc}")
        if failures:
            msg = "Failed to close tabs: " + "; ".join(failures)
            raise TabClosureError(msg)
