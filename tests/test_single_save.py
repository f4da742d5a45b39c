"""Single-page saves and the one-shot hand-off channel."""

from __future__ import annotations

from bookmark_saver.client import BookmarkApiError
from bookmark_saver.config import NEW_BOOKMARK_REQUEST_KEY_NAME
from bookmark_saver.handoff import RequestChannel
from bookmark_saver.models import NewBookmarkRequest, Settings, Tab
from bookmark_saver.single_save import PreparedSave, prepare_request, save_single
from bookmark_saver.storage import MemoryStorage

from conftest import FakeTabHost


class StubClient:
    def __init__(self, error: str | None = None) -> None:
        self.error = error
        self.requests: list[NewBookmarkRequest] = []

    def create_bookmark(self, request: NewBookmarkRequest) -> str:
        self.requests.append(request)
        if self.error is not None:
            raise BookmarkApiError(self.error, 401)
        return "bm_42"


CONFIGURED = Settings(api_key="secret")


def test_take_clears_the_request() -> None:
    storage = MemoryStorage()
    channel = RequestChannel(storage)
    channel.post(NewBookmarkRequest(url="https://a.example"))
    first = channel.take()
    if first is None or first.get("url") != "https://a.example":
        raise AssertionError("Posted request not returned")
    if storage.get(NEW_BOOKMARK_REQUEST_KEY_NAME) is not None or channel.take() is not None:
        raise AssertionError("Request must be cleared once taken")


def test_take_bulk_save_leaves_other_requests() -> None:
    channel = RequestChannel(MemoryStorage())
    channel.post({"type": "link", "url": "https://a.example"})
    if channel.take_bulk_save():
        raise AssertionError("A link request is not a bulk-save request")
    channel.post_bulk_save()
    if not channel.take_bulk_save() or channel.take() is not None:
        raise AssertionError("Bulk-save request should be consumed")


def test_prepare_uses_handoff_request_first() -> None:
    channel = RequestChannel(MemoryStorage())
    channel.post({"type": "link", "url": "https://handoff.example", "title": "Hand"})
    host = FakeTabHost([Tab(url="https://active.example", id=1)])
    prepared = prepare_request(channel, host)
    if prepared.request is None or prepared.request.url != "https://handoff.example":
        msg = f"Unexpected prepared save {prepared}"
        raise AssertionError(msg)


def test_prepare_hands_over_bulk_save() -> None:
    channel = RequestChannel(MemoryStorage())
    channel.post_bulk_save()
    prepared = prepare_request(channel, FakeTabHost())
    if not prepared.trigger_bulk_save or prepared.request is not None:
        raise AssertionError("Bulk-save hand-off should trigger a bulk save")


def test_prepare_rejects_invalid_handoff() -> None:
    channel = RequestChannel(MemoryStorage())
    channel.post({"type": "link", "url": ""})
    prepared = prepare_request(channel, FakeTabHost())
    if prepared.error != "Invalid bookmark request":
        msg = f"Unexpected error {prepared.error}"
        raise AssertionError(msg)
    if channel.take() is not None:
        raise AssertionError("Invalid request must still be cleared")


def test_prepare_falls_back_to_active_tab() -> None:
    channel = RequestChannel(MemoryStorage())
    prepared = prepare_request(channel, FakeTabHost([Tab(url="https://active.example", id=1)]))
    if prepared.request is None or prepared.request.url != "https://active.example":
        raise AssertionError("Active tab should be targeted")
    missing = prepare_request(channel, FakeTabHost())
    if missing.error != "Couldn't find the URL of the current tab":
        raise AssertionError("Missing active tab should be reported")


def test_save_waits_for_confirmation_without_auto_save() -> None:
    client = StubClient()
    prepared = PreparedSave(request=NewBookmarkRequest(url="https://a.example"))
    result = save_single(CONFIGURED, client, prepared)  # type: ignore[arg-type]
    if not result.awaiting_confirmation or client.requests:
        raise AssertionError("Nothing should be saved before confirmation")
    auto = CONFIGURED.model_copy(update={"auto_save": True})
    result = save_single(auto, client, prepared)  # type: ignore[arg-type]
    if not result.saved or result.bookmark_id != "bm_42":
        raise AssertionError("Auto-save should create the bookmark")


def test_save_reports_api_errors() -> None:
    prepared = PreparedSave(request=NewBookmarkRequest(url="https://a.example"))
    result = save_single(
        CONFIGURED, StubClient("Unauthorized"), prepared, confirmed=True,  # type: ignore[arg-type]
    )
    if result.saved or result.error != "Something went wrong: Unauthorized":
        msg = f"Unexpected result {result}"
        raise AssertionError(msg)


def test_save_requires_configuration() -> None:
    client = StubClient()
    prepared = PreparedSave(request=NewBookmarkRequest(url="https://a.example"))
    result = save_single(Settings(api_key=""), client, prepared, confirmed=True)  # type: ignore[arg-type]
    if result.error is None or client.requests:
        raise AssertionError("Unconfigured saves must not reach the service")
