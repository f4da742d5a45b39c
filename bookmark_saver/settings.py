"""Settings store shared by every surface of the saver.

The canonical record lives under a single key of a ``KeyValueStorage``.
Readers only ever see fully defaulted ``Settings`` snapshots: records written
by older versions are backfilled with the fields introduced since, and
records that cannot be repaired fall back to the defaults.

Writes are read-modify-write without a transaction. Two surfaces writing at
the same time race and the last write wins; the storage areas offer no
compare-and-swap to prevent it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .config import SETTINGS_KEY
from .models import DEFAULT_SETTINGS, Settings
from .storage import StorageError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable

    from .storage import KeyValueStorage, StorageChange

LOGGER = logging.getLogger(__name__)

DEFAULT_RECORD: dict[str, Any] = DEFAULT_SETTINGS.to_record()


def _missing_keys(raw: dict[str, Any]) -> list[str]:
    return [key for key in DEFAULT_RECORD if key not in raw]


def _merge_with_defaults(raw: dict[str, Any]) -> Settings | None:
    try:
        return Settings.model_validate({**DEFAULT_RECORD, **raw})
    except ValidationError as exc:
        LOGGER.warning("Stored settings invalid even after merging defaults: %s", exc)
        return None


def resolve_field_name(key: str) -> str:
    """Map a snake_case field name or its camelCase record key to the field name."""
    for name, field in Settings.model_fields.items():
        if key in {name, field.alias}:
            return name
    msg = f"Unknown setting: {key}"
    raise ValueError(msg)


def parse_settings(raw: object) -> Settings:
    """Parse a raw record without touching storage, degrading to defaults."""
    try:
        return Settings.model_validate(raw)
    except ValidationError:
        pass
    if isinstance(raw, dict):
        merged = _merge_with_defaults(raw)
        if merged is not None:
            return merged
    return DEFAULT_SETTINGS


class ConfigStore:
    """Versioned settings record persisted in a shared storage area."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    def read(self) -> Settings:
        """Return the stored settings, migrating older records in place.

        Never raises. A record missing fields added in later versions is
        backfilled and written back once; a record that only validates after
        merging over the defaults is written back merged; anything else yields
        the defaults and leaves the stored value alone.
        """
        try:
            stored = self._storage.get(SETTINGS_KEY)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to read settings (%s); using defaults", exc)
            return DEFAULT_SETTINGS

        try:
            parsed = Settings.model_validate(stored)
        except ValidationError as exc:
            return self._recover(stored, exc)

        missing = _missing_keys(stored)
        if not missing:
            return parsed

        LOGGER.info("Backfilling settings fields introduced since last save: %s", missing)
        backfilled = {**{key: DEFAULT_RECORD[key] for key in missing}, **stored}
        self._persist(backfilled)
        return parsed

    def _recover(self, stored: object, error: ValidationError) -> Settings:
        if stored is None:
            LOGGER.debug("No stored settings; using defaults")
            return DEFAULT_SETTINGS
        if not isinstance(stored, dict):
            LOGGER.warning("Stored settings are not a mapping; using defaults")
            return DEFAULT_SETTINGS

        LOGGER.debug("Stored settings failed validation: %s", error)
        merged_record = {**DEFAULT_RECORD, **stored}
        merged = _merge_with_defaults(stored)
        if merged is None:
            return DEFAULT_SETTINGS
        self._persist(merged_record)
        return merged

    def _persist(self, record: dict[str, Any]) -> None:
        try:
            self._storage.set(SETTINGS_KEY, record)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to persist migrated settings: %s", exc)

    def write(self, updater: Callable[[Settings], Settings]) -> Settings | None:
        """Apply ``updater`` to the latest stored settings and persist the result.

        Returns the written settings, or ``None`` when the storage area
        rejected the write. Raises ``pydantic.ValidationError`` when
        ``updater`` produces settings that do not validate; nothing is
        written then. Concurrent writers in other processes are not excluded:
        whichever write lands last wins.
        """
        current = self.read()
        # model_copy(update=...) skips validation, so re-check before persisting.
        updated = Settings.model_validate(updater(current).to_record())
        try:
            self._storage.set(SETTINGS_KEY, updated.to_record())
        except StorageError as exc:
            LOGGER.error("Failed to save settings: %s", exc)
            return None
        return updated

    def update(self, **changes: Any) -> Settings | None:
        """Shorthand for ``write`` replacing the given fields.

        Keys may be field names or record keys. An unknown key raises
        ``ValueError`` before anything is read or written.
        """
        resolved = {resolve_field_name(key): value for key, value in changes.items()}
        return self.write(lambda settings: settings.model_copy(update=resolved))

    def subscribe(self, callback: Callable[[Settings], None]) -> Callable[[], None]:
        """Call ``callback`` with the new settings after every write.

        Writes from any context sharing the storage area are delivered,
        including migrations done by ``read``. Delivery is at-least-once, so
        the same value may arrive twice. Returns the unsubscribe function.
        """

        def _on_change(changes: dict[str, StorageChange]) -> None:
            change = changes.get(SETTINGS_KEY)
            if change is None:
                return
            callback(parse_settings(change.new_value))

        self._storage.add_listener(_on_change)

        def unsubscribe() -> None:
            self._storage.remove_listener(_on_change)

        return unsubscribe


class SettingsView:
    """Surface-local snapshot of the settings kept fresh by notifications.

    Every notification replaces the snapshot wholesale; nothing is merged.
    """

    def __init__(self, store: ConfigStore, *, load: bool = True) -> None:
        self._store = store
        self._current = DEFAULT_SETTINGS
        self._loaded = False
        self._unsubscribe: Callable[[], None] | None = store.subscribe(self._on_change)
        if load:
            self.load()

    @property
    def current(self) -> Settings:
        return self._current

    @property
    def is_pending(self) -> bool:
        """True until the first read from the store completed."""
        return not self._loaded

    def load(self) -> Settings:
        self._current = self._store.read()
        self._loaded = True
        return self._current

    def _on_change(self, settings: Settings) -> None:
        self._current = settings

    def update(self, updater: Callable[[Settings], Settings]) -> Settings | None:
        return self._store.write(updater)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> SettingsView:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()
