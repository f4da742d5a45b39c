"""Global configuration constants for bookmark saver."""

from __future__ import annotations

# Service endpoint used until the user configures their own instance.
DEFAULT_ADDRESS: str = "https://cloud.karakeep.app"

DEFAULT_BADGE_CACHE_EXPIRE_MS: int = 60 * 60 * 1000
DEFAULT_SHOW_COUNT_BADGE: bool = False

# Key holding the serialised settings record in the persistent store.
SETTINGS_KEY: str = "settings"

# Key of the one-shot request handed from one surface to another.
NEW_BOOKMARK_REQUEST_KEY_NAME: str = "newBookmarkRequest"

# Pause between two bookmark creations during a bulk save.
BULK_SAVE_DELAY_SECONDS: float = 0.1

# Number of per-tab errors shown before collapsing into "... and N more".
MAX_DISPLAYED_ERRORS: int = 3
MAX_ERROR_LINE_LENGTH: int = 120

DEFAULT_DEVTOOLS_URL: str = "http://127.0.0.1:9222"
REQUEST_TIMEOUT_SECONDS: float = 10.0
