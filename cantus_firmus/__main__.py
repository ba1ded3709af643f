"""Entry point for python -m cantus_firmus.

Inspects and manages the state snapshots kept in the file-backed shared
storage.

Usage:
    python -m cantus_firmus list
    python -m cantus_firmus show counter
    python -m cantus_firmus show counter --key user.name
    python -m cantus_firmus clear counter
    python -m cantus_firmus watch counter
    python -m cantus_firmus logs --lines 50
    python -m cantus_firmus logs --window viewer
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any


def _setup_logging(args: argparse.Namespace) -> None:
    """Configure logging based on command-line arguments."""
    from cantus_firmus.logging_config import setup_logging

    if args.debug:
        setup_logging(
            level="DEBUG",
            log_to_console=True,
            log_to_file=True,
        )
    else:
        setup_logging(
            level=args.log_level,
            log_to_console=False,
            log_to_file=not args.no_log_file,
        )


def _print_json(data: Any) -> None:
    """Print data as JSON to stdout."""
    print(json.dumps(data, indent=2, default=str))


def _print_table(rows: list[dict[str, Any]], columns: list[str]) -> None:
    """Print data as a simple table."""
    if not rows:
        print("No results.")
        return

    widths = {col: len(col) for col in columns}
    for row in rows:
        for col in columns:
            widths[col] = max(widths[col], len(str(row.get(col, ""))))

    header = "  ".join(col.ljust(widths[col]) for col in columns)
    print(header)
    print("-" * len(header))

    for row in rows:
        print("  ".join(str(row.get(col, "")).ljust(widths[col]) for col in columns))


def _open_store(args: argparse.Namespace):
    from cantus_firmus.storage import FileStore

    return FileStore(args.storage_dir)


def _load_snapshot(store: Any, name: str) -> dict[str, Any] | None:
    """Read and parse a stored snapshot, or None if nothing is stored."""
    from cantus_firmus.sync import parse_snapshot

    raw = store.read(name)
    if raw is None:
        return None
    return parse_snapshot(raw, name)


# =============================================================================
# CLI Command Handlers
# =============================================================================


async def cmd_list(args: argparse.Namespace) -> int:
    """Handle list command."""
    from cantus_firmus.exceptions import PersistenceParseError

    store = _open_store(args)
    rows = []
    for key in store.keys():
        try:
            snapshot = _load_snapshot(store, key)
            keys = len(snapshot or {})
        except PersistenceParseError:
            keys = None
        rows.append({"name": key, "keys": keys, "path": str(store.path_for(key))})

    if args.json:
        _print_json(rows)
        return 0

    if not rows:
        print(f"No stored state in {store.directory}.")
        return 0

    _print_table(
        [
            {
                "Name": row["name"],
                "Keys": "invalid" if row["keys"] is None else row["keys"],
                "Path": row["path"],
            }
            for row in rows
        ],
        ["Name", "Keys", "Path"],
    )
    return 0


async def cmd_show(args: argparse.Namespace) -> int:
    """Handle show command."""
    from cantus_firmus.exceptions import PersistenceParseError
    from cantus_firmus.paths import get_nested_value

    store = _open_store(args)
    try:
        snapshot = _load_snapshot(store, args.name)
    except PersistenceParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if snapshot is None:
        print(f"Error: No stored state named '{args.name}'", file=sys.stderr)
        return 1

    data: Any = snapshot
    if args.key:
        try:
            data = get_nested_value(snapshot, args.key.split("."))
        except KeyError:
            print(f"Error: Key '{args.key}' not found in '{args.name}'", file=sys.stderr)
            return 1

    if args.json or isinstance(data, (dict, list)):
        _print_json(data)
    else:
        print(data)
    return 0


async def cmd_clear(args: argparse.Namespace) -> int:
    """Handle clear command."""
    from cantus_firmus.exceptions import PersistenceError

    store = _open_store(args)
    if store.read(args.name) is None:
        print(f"Error: No stored state named '{args.name}'", file=sys.stderr)
        return 1

    try:
        store.remove(args.name)
    except PersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        _print_json({"success": True, "name": args.name})
    else:
        print(f"Cleared stored state '{args.name}'")
    return 0


async def cmd_watch(args: argparse.Namespace) -> int:
    """Handle watch command.

    Prints the snapshot every time another process changes it. Runs until
    interrupted, or until ``--count`` changes were seen.
    """
    from cantus_firmus.exceptions import PersistenceParseError

    store = _open_store(args)
    done = asyncio.Event()
    seen = 0

    def on_change() -> None:
        nonlocal seen
        seen += 1
        try:
            snapshot = _load_snapshot(store, args.name)
        except PersistenceParseError as e:
            print(f"Error: {e}", file=sys.stderr)
            snapshot = None

        if args.json:
            _print_json({"name": args.name, "state": snapshot})
        elif snapshot is None:
            print(f"[{args.name}] cleared")
        else:
            print(f"[{args.name}] {json.dumps(snapshot, default=str)}")

        if args.count and seen >= args.count:
            done.set()

    unsubscribe = store.subscribe(args.name, on_change)
    await store.start()
    if not args.json:
        print(f"Watching '{args.name}' in {store.directory} (Ctrl+C to stop)")
    try:
        await done.wait()
    finally:
        unsubscribe()
        await store.stop()
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Handle logs command."""
    from cantus_firmus.logging_config import get_recent_logs, list_log_windows

    if args.list:
        windows = list_log_windows()
        if args.json:
            _print_json(windows)
        elif not windows:
            print("No window logs.")
        else:
            for window in windows:
                print(window)
        return 0

    lines = get_recent_logs(args.lines, window_name=args.window)
    if args.json:
        _print_json([line.rstrip("\n") for line in lines])
    else:
        for line in lines:
            print(line, end="" if line.endswith("\n") else "\n")
    return 0


def _run_async(coro: Any) -> int:
    """Run an async coroutine and return exit code."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        return 130


# =============================================================================
# Argument Parser Setup
# =============================================================================


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )


def _create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cantus-firmus",
        description="Cantus Firmus - inspect state shared between windows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List stored state snapshots
  python -m cantus_firmus list

  # Print one snapshot, or one value inside it
  python -m cantus_firmus show counter
  python -m cantus_firmus show counter --key user.name

  # Remove a snapshot left behind by a crashed provider window
  python -m cantus_firmus clear counter

  # Follow changes as windows update the state
  python -m cantus_firmus watch counter
""",
    )

    # Global arguments
    parser.add_argument(
        "--storage-dir",
        help="Shared storage directory (default: $CANTUS_STORAGE_DIR or "
        "~/.config/cantus-firmus/storage)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to console",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set log level (default: INFO)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable logging to file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    list_parser = subparsers.add_parser(
        "list",
        help="List stored state snapshots",
    )
    _add_common_args(list_parser)

    # show
    show_parser = subparsers.add_parser(
        "show",
        help="Print a stored state snapshot",
    )
    show_parser.add_argument("name", help="Storage name of the state")
    show_parser.add_argument(
        "--key",
        help="Dotted path of a value inside the snapshot (e.g. 'user.name')",
    )
    _add_common_args(show_parser)

    # clear
    clear_parser = subparsers.add_parser(
        "clear",
        help="Remove a stored state snapshot",
    )
    clear_parser.add_argument("name", help="Storage name of the state")
    _add_common_args(clear_parser)

    # watch
    watch_parser = subparsers.add_parser(
        "watch",
        help="Print a snapshot whenever it changes",
    )
    watch_parser.add_argument("name", help="Storage name of the state")
    watch_parser.add_argument(
        "--count",
        type=int,
        default=0,
        help="Stop after this many changes (default: run until interrupted)",
    )
    _add_common_args(watch_parser)

    # logs
    logs_parser = subparsers.add_parser(
        "logs",
        help="Print recent log lines",
    )
    logs_parser.add_argument(
        "--lines",
        type=int,
        default=100,
        help="Number of lines to print (default: 100)",
    )
    logs_parser.add_argument(
        "--window",
        help="Window whose log to print (default: this process's window, if any)",
    )
    logs_parser.add_argument(
        "--list",
        action="store_true",
        help="List the windows that have a log file",
    )
    _add_common_args(logs_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the cantus-firmus command."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    _setup_logging(args)

    if args.command == "list":
        return _run_async(cmd_list(args))

    if args.command == "show":
        return _run_async(cmd_show(args))

    if args.command == "clear":
        return _run_async(cmd_clear(args))

    if args.command == "watch":
        return _run_async(cmd_watch(args))

    if args.command == "logs":
        return cmd_logs(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
