"""CLI entry point for bookmark saver.

Saves the current page or every open tab into the bookmarking service and
edits the shared settings record. Each sub-command delegates to a focused
handler; the settings and hand-off storage areas are JSON files that other
processes may share.
"""

from __future__ import annotations

# Standard library imports (alphabetical within groups)
import argparse
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

# Third-party imports
import requests
from dotenv import load_dotenv
from pydantic import ValidationError

# Internal imports
from bookmark_saver.bulk_save import BulkSaveOrchestrator, NoValidTabsError, format_errors
from bookmark_saver.client import BookmarkApiClient, create_op_for
from bookmark_saver.config import DEFAULT_DEVTOOLS_URL
from bookmark_saver.handoff import RequestChannel
from bookmark_saver.models import SaveType, Settings
from bookmark_saver.settings import ConfigStore, resolve_field_name
from bookmark_saver.single_save import prepare_request, save_single
from bookmark_saver.storage import JsonFileStorage
from bookmark_saver.tabs import DevToolsTabHost, collect_tabs

if TYPE_CHECKING:  # pragma: no cover
    from bookmark_saver.models import BulkSaveStatus
    from bookmark_saver.tabs import TabHost

STAGES: dict[int, str] = {
    1: "Load settings",
    2: "Collect tabs",
    3: "Save bookmarks",
    4: "Close saved tabs",
}

DEFAULT_STORAGE_PATH = Path("~/.config/bookmark_saver/storage.json")


def configure_logging(*, verbose: bool) -> None:
    """Configure root logging (debug when verbose)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def log_stage(stage_number: int, message: str, *args: object) -> None:
    """Log a message prefixed with a stage label."""
    stage_label = STAGES.get(stage_number, f"Stage {stage_number}")
    logger = logging.getLogger("bookmark_saver")
    logger.info("[%s] %s", stage_label, message % args if args else message)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Save browser tabs as bookmarks")
    parser.add_argument(
        "--storage",
        help=(
            "Path to the shared settings store. Falls back to BOOKMARK_SAVER_STORAGE,"
            f" then {DEFAULT_STORAGE_PATH}."
        ),
    )
    parser.add_argument(
        "--session",
        help=(
            "Path to the hand-off request store. Falls back to BOOKMARK_SAVER_SESSION,"
            " then session.json next to the settings store."
        ),
    )
    parser.add_argument(
        "--devtools-url",
        help=f"Browser DevTools endpoint (env CHROME_DEVTOOLS_URL, default {DEFAULT_DEVTOOLS_URL})",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    config_parser = commands.add_parser("config", help="Show or change settings")
    config_commands = config_parser.add_subparsers(dest="config_command", required=True)
    config_commands.add_parser("show", help="Print the current settings")
    set_parser = config_commands.add_parser("set", help="Change one setting")
    set_parser.add_argument("key", help="Setting name, camelCase or snake_case")
    set_parser.add_argument("value", help="New value; parsed as JSON when possible")

    save_parser = commands.add_parser("save", help="Save the active tab or a given URL")
    save_parser.add_argument("--url", help="Save this URL instead of the active tab")
    save_parser.add_argument("--title", help="Title to store with --url")

    bulk_parser = commands.add_parser("bulk", help="Save every open tab")
    bulk_parser.add_argument(
        "--scope",
        choices=(SaveType.ALL.value, SaveType.WINDOW.value),
        help="Tab set to save (default: all, or window for a pending hand-off)",
    )
    close_group = bulk_parser.add_mutually_exclusive_group()
    close_group.add_argument(
        "--close-tabs",
        dest="close_tabs",
        action="store_const",
        const=True,
        help="Close saved tabs afterwards and remember the choice",
    )
    close_group.add_argument(
        "--keep-tabs",
        dest="close_tabs",
        action="store_const",
        const=False,
        help="Keep saved tabs open and remember the choice",
    )

    commands.add_parser("request-bulk", help="Ask the next save to bulk-save the window")
    return parser.parse_args()


def _resolve_storage_paths(args: argparse.Namespace) -> tuple[Path, Path]:
    storage = args.storage or os.getenv("BOOKMARK_SAVER_STORAGE") or DEFAULT_STORAGE_PATH
    storage_path = Path(storage).expanduser()
    session = args.session or os.getenv("BOOKMARK_SAVER_SESSION")
    session_path = Path(session).expanduser() if session else storage_path.with_name("session.json")
    return storage_path, session_path


def _make_host(args: argparse.Namespace) -> DevToolsTabHost:
    return DevToolsTabHost(args.devtools_url or os.getenv("CHROME_DEVTOOLS_URL") or DEFAULT_DEVTOOLS_URL)


def _require_configured(settings: Settings) -> None:
    if not settings.api_key or not settings.address:
        msg = "No API key configured. Run: main.py config set apiKey <key>"
        raise SystemExit(msg)


def _parse_value(name: str, raw: str) -> Any:
    if Settings.model_fields[name].annotation in (str, str | None):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _field_name(key: str) -> str:
    try:
        return resolve_field_name(key)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def _handle_config(args: argparse.Namespace, store: ConfigStore) -> None:
    if args.config_command == "show":
        record = store.read().to_record()
        if record.get("apiKey"):
            record["apiKey"] = "****" + str(record["apiKey"])[-4:]
        print(json.dumps(record, indent=2, ensure_ascii=False))  # noqa: T201
        return

    name = _field_name(args.key)
    value = _parse_value(name, args.value)
    try:
        updated = store.update(**{name: value})
    except ValidationError as exc:
        msg = f"Invalid value for {args.key}: {exc}"
        raise SystemExit(msg) from exc
    if updated is None:
        msg = "Failed to save settings"
        raise SystemExit(msg)
    logging.getLogger("bookmark_saver").info("Updated %s", args.key)


def _log_progress(status: BulkSaveStatus) -> None:
    log_stage(3, "Progress: %d / %d (%.0f%%)", status.completed, status.total, status.progress)


def _run_bulk(
    store: ConfigStore,
    host: TabHost,
    save_type: SaveType,
    close_override: bool | None,
) -> None:
    logger = logging.getLogger("bookmark_saver")
    log_stage(1, "Reading settings")
    settings = store.read()
    _require_configured(settings)
    close_after = settings.close_tabs_on_bulk_save
    if close_override is not None and close_override != close_after:
        store.update(close_tabs_on_bulk_save=close_override)
        close_after = close_override

    log_stage(2, "Collecting %s tabs", save_type.value)
    tabs = collect_tabs(host, save_type)
    orchestrator = BulkSaveOrchestrator(create_op_for(BookmarkApiClient(settings)), host)
    try:
        run = orchestrator.run(tabs, close_after=close_after, save_type=save_type)
    except NoValidTabsError as exc:
        raise SystemExit(str(exc)) from exc

    log_stage(3, "Saving %d tabs", len(tabs))
    run.wait(on_progress=_log_progress)
    summary = run.summary()
    if summary.message is None:
        logger.info("Saved all %d tabs", summary.total)
    else:
        logger.warning(summary.message)
        for line in format_errors(run.status.errors):
            logger.warning("  %s", line)
    closed = len(run.closed_tab_ids)
    if closed:
        log_stage(4, "Tabs have been closed" if closed > 1 else "Tab has been closed")
    elif close_after and summary.completed > 0:
        log_stage(4, "Saved tabs could not be closed")


def _handle_bulk(
    args: argparse.Namespace, store: ConfigStore, channel: RequestChannel, host: TabHost,
) -> None:
    # Consumed even with an explicit scope so a later save does not re-trigger it.
    pending = channel.take_bulk_save()
    if args.scope:
        save_type = SaveType(args.scope)
    else:
        save_type = SaveType.WINDOW if pending else SaveType.ALL
    _run_bulk(store, host, save_type, args.close_tabs)


def _handle_save(
    args: argparse.Namespace, store: ConfigStore, channel: RequestChannel, host: TabHost,
) -> None:
    logger = logging.getLogger("bookmark_saver")
    settings = store.read()
    _require_configured(settings)
    if args.url:
        channel.post({"type": "link", "url": args.url, "title": args.title})
    prepared = prepare_request(channel, host)
    if prepared.trigger_bulk_save:
        _run_bulk(store, host, SaveType.WINDOW, None)
        return
    result = save_single(settings, BookmarkApiClient(settings), prepared, confirmed=True)
    if result.error:
        raise SystemExit(result.error)
    logger.info("Bookmark saved (id %s)", result.bookmark_id)


def main() -> None:
    """Entry point for the bookmark saver CLI."""
    load_dotenv()
    args = _parse_args()
    configure_logging(verbose=args.verbose)
    storage_path, session_path = _resolve_storage_paths(args)
    store = ConfigStore(JsonFileStorage(storage_path))
    channel = RequestChannel(JsonFileStorage(session_path))

    if args.command == "config":
        _handle_config(args, store)
        return
    if args.command == "request-bulk":
        channel.post_bulk_save()
        logging.getLogger("bookmark_saver").info("Bulk save requested")
        return

    host = _make_host(args)
    try:
        if args.command == "save":
            _handle_save(args, store, channel, host)
        elif args.command == "bulk":
            _handle_bulk(args, store, channel, host)
    except requests.RequestException as exc:
        msg = f"Could not reach the browser: {exc}"
        raise SystemExit(msg) from exc


if __name__ == "__main__":
    main()
