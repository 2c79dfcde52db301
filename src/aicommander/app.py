"""Application bootstrap helpers and the ``aicommander`` command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.orchestration.controller import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    ActiveDocument,
    CommandController,
    CommandResult,
    LoggingNotifier,
    StaticPromptDialog,
)
from .commands import CommandRegistry
from .editor.buffer import LineBuffer, Position
from .editor.vault import DirectoryVault
from .services.settings import Settings, SettingsStore, redacted_settings
from .services.settings_runtime import SettingsRuntime
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


def configure_logging(debug: bool = False) -> None:
    """Send log records to the rotating log file; safe to call again to enable debug."""

    log_path = logging_utils.setup_logging(debug)
    _LOGGER.debug("Logging to %s (debug=%s)", log_path, debug)


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `aicommander` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = args.debug or _env_flag("AICOMMANDER_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("AICOMMANDER_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)
    if settings.debug_logging and not debug:
        configure_logging(True)

    if args.command == "commands":
        _list_commands(settings)
        return 0
    if args.command == "settings":
        if args.settings_command == "set":
            return _set_settings(settings_store, args.assignments)
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0
    if args.command == "run":
        return _run_from_cli(args, settings)

    parser.print_help()
    return 2


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------


def _list_commands(settings: Settings, stream: TextIO | None = None) -> None:
    destination = stream or sys.stdout
    for descriptor in CommandRegistry(settings):
        destination.write(f"{descriptor.id}\t{descriptor.name}\n")


def _set_settings(store: SettingsStore, assignments: Sequence[str]) -> int:
    try:
        changes = _coerce_cli_overrides(assignments)
    except ValueError as exc:
        print(f"Invalid setting: {exc}", file=sys.stderr)
        return 2
    if not changes:
        print("Nothing to update.", file=sys.stderr)
        return 2
    runtime = SettingsRuntime(store, store.load(apply_env=False))
    try:
        runtime.update(**changes)
    except (KeyError, ValueError) as exc:
        print(f"Invalid setting: {exc}", file=sys.stderr)
        return 2
    print(f"Saved {', '.join(sorted(changes))} to {store.path}")
    return 0


def _run_from_cli(args: argparse.Namespace, settings: Settings) -> int:
    file_path = Path(args.file).expanduser()
    vault_root = Path(args.vault).expanduser() if args.vault else file_path.parent
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Unable to read {file_path}: {exc}", file=sys.stderr)
        return 2

    vault = DirectoryVault(vault_root, attachment_folder=args.attachment_folder)
    try:
        document_path = vault.relative_path(file_path)
    except ValueError:
        print(f"{file_path} is not inside the vault {vault.root}", file=sys.stderr)
        return 2

    buffer = LineBuffer.from_text(text)
    try:
        _place_cursor(buffer, line=args.line, selection=args.selection)
    except ValueError as exc:
        print(f"Invalid cursor placement: {exc}", file=sys.stderr)
        return 2

    controller = CommandController(
        settings,
        vault=vault,
        notifier=LoggingNotifier(),
        prompt_dialog=StaticPromptDialog(args.prompt),
    )
    try:
        result = asyncio.run(controller.run(args.command_id, ActiveDocument(buffer, document_path)))
    except KeyError as exc:
        print(exc.args[0] if exc.args else str(exc), file=sys.stderr)
        return 2

    if buffer.text != text:
        file_path.write_text(buffer.text, encoding="utf-8")
        _LOGGER.info("Updated %s", file_path)
    return _exit_code(result)


def _place_cursor(buffer: LineBuffer, *, line: int | None, selection: str | None) -> None:
    """Apply 1-based ``--line``/``--selection`` arguments to ``buffer``."""

    if selection:
        start_text, sep, end_text = selection.partition(":")
        if not sep:
            raise ValueError("selection must use START:END")
        start, end = int(start_text), int(end_text)
        _check_line_number(buffer, start)
        _check_line_number(buffer, end)
        if end < start:
            raise ValueError("selection end comes before its start")
        last = buffer.get_line(end - 1)
        buffer.set_selection(Position(start - 1, 0), Position(end - 1, len(last)))
        return
    index = buffer.last_line() if line is None else line - 1
    if line is not None:
        _check_line_number(buffer, line)
    buffer.set_cursor(Position(index, len(buffer.get_line(index))))


def _check_line_number(buffer: LineBuffer, number: int) -> None:
    if number < 1 or number > buffer.line_count:
        raise ValueError(f"line {number} is outside 1..{buffer.line_count}")


def _exit_code(result: CommandResult) -> int:
    if result.status in (STATUS_COMPLETED, STATUS_CANCELLED):
        return 0
    return 1


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aicommander",
        description="Generate text, images and transcripts into markdown notes.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.aicommander/settings.json path.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this invocation (repeatable).",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("commands", help="List the available command ids.")

    run = subparsers.add_parser("run", help="Run one command against a markdown file.")
    run.add_argument("command_id", metavar="ID", help="Command id, see `aicommander commands`.")
    run.add_argument("--file", required=True, help="Markdown file to write into.")
    run.add_argument("--vault", help="Vault root (defaults to the file's folder).")
    run.add_argument(
        "--attachment-folder",
        default="",
        help='Attachment root inside the vault: "", "./sub" or a folder name.',
    )
    run.add_argument("--line", type=int, help="1-based cursor line (defaults to the last line).")
    run.add_argument("--selection", metavar="START:END", help="Select whole lines START..END (1-based).")
    run.add_argument("--prompt", help="Answer for commands that open the prompt dialog.")

    settings_parser = subparsers.add_parser("settings", help="Inspect or change settings.")
    settings_sub = settings_parser.add_subparsers(dest="settings_command")
    settings_sub.add_parser("show", help="Print the effective settings with secrets redacted.")
    set_parser = settings_sub.add_parser("set", help="Persist one or more KEY=VALUE settings.")
    set_parser.add_argument("assignments", nargs="+", metavar="KEY=VALUE")
    return parser


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value)
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        # Custom command lists are newline-delimited; allow "\n" on the shell.
        return normalized.replace("\\n", "\n")
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": redacted_settings(settings), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("AICOMMANDER_"))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
