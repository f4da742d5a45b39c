"""Data models shared by the settings store and the save workflows."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from attrs import Factory, define
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_ADDRESS, DEFAULT_BADGE_CACHE_EXPIRE_MS, DEFAULT_SHOW_COUNT_BADGE

Theme = Literal["light", "dark", "system"]


class Settings(BaseModel):
    """Persisted settings record, serialised with camelCase keys.

    Parsing is strict: a stored ``"true"`` is not a boolean, so a record
    written with the wrong types fails validation instead of being coerced.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        strict=True,
    )

    api_key: str
    api_key_id: str | None = None
    address: str = DEFAULT_ADDRESS
    auto_save: bool = False
    close_tabs_on_bulk_save: bool = False
    theme: Theme = "system"
    show_count_badge: bool = DEFAULT_SHOW_COUNT_BADGE
    use_badge_cache: bool = True
    badge_cache_expire_ms: int | float = DEFAULT_BADGE_CACHE_EXPIRE_MS
    custom_headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("badge_cache_expire_ms")
    @classmethod
    def _non_negative_expiry(cls, value: float) -> float:
        if value < 0:
            msg = "badgeCacheExpireMs must not be negative"
            raise ValueError(msg)
        return value

    def to_record(self) -> dict[str, object]:
        """Serialise to the raw mapping kept in the persistent store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


DEFAULT_SETTINGS = Settings(api_key="")


class BookmarkType(str, Enum):
    """Kinds of bookmark the remote service accepts from this client."""

    LINK = "link"


class NewBookmarkRequest(BaseModel):
    """Payload for the remote bookmark-creation operation."""

    type: BookmarkType = BookmarkType.LINK
    url: str
    title: str | None = None

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "url must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("title", mode="before")
    @classmethod
    def _blank_title_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@dataclass(slots=True)
class Tab:
    """Browser tab descriptor as reported by the tab host."""

    url: str | None
    title: str | None = None
    id: int | str | None = None

    @property
    def label(self) -> str:
        """Name used for the tab in messages: its title, else its URL."""
        return self.title or self.url or ""

    def to_request(self) -> NewBookmarkRequest:
        """Build the bookmark-creation payload for this tab."""
        if not self.url:
            msg = "Tab has no URL"
            raise ValueError(msg)
        return NewBookmarkRequest(url=self.url, title=self.title or None)


class SaveType(str, Enum):
    """Which tab set a bulk save covers."""

    ALL = "all"
    WINDOW = "window"
    NONE = "none"


@define(frozen=True, slots=True)
class BulkSaveStatus:
    """Progress snapshot emitted by a bulk save run."""

    is_active: bool = False
    total: int = 0
    completed: int = 0
    progress: float = 0.0
    errors: tuple[str, ...] = Factory(tuple)
    save_type: SaveType = SaveType.NONE

    @classmethod
    def idle(cls) -> BulkSaveStatus:
        """Status shown before any run, and after the caller resets it."""
        return cls()

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
