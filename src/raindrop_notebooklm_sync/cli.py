"""Command-line entry point for raindrop-notebooklm-sync.

Subcommands:

- ``sync`` -- run one reconciliation (``--dry-run`` to preview,
  ``--json`` for machine-readable output on stdout).
- ``status`` -- check both services and show the recorded state.
- ``reset-state`` -- move the state file aside so the next run starts
  over from fingerprint matching.

Exit codes: 0 success, 1 item failures during sync, 2 a service was
unreachable, 3 fatal (credentials, corrupt state, configuration, run
already in progress, cancelled).
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from . import __version__
from .adapters import build_adapters
from .config import load_config
from .config_schema import UnifiedConfig
from .errors import SyncError
from .logger import setup_logging
from .sync import (
    SyncEngine,
    SyncOptions,
    SyncStateStore,
    format_sync_report,
    summary_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ITEM_FAILURES = 1
EXIT_UNREACHABLE = 2
EXIT_FATAL = 3

COMMANDS = {
    "sync": "Reconcile the bookmark collection with the notebook",
    "status": "Check both services and show the recorded sync state",
    "reset-state": "Move the sync state file aside (requires --yes)",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="raindrop-notebooklm-sync",
        description="Keep a Raindrop.io collection and a NotebookLM notebook in sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what a sync would do
  raindrop-notebooklm-sync sync --dry-run

  # Sync and print a JSON summary
  raindrop-notebooklm-sync sync --json

  # Check credentials and connectivity
  raindrop-notebooklm-sync status

  # Use an explicit config file with debug logging
  raindrop-notebooklm-sync -v --config ./sync.yml sync

Credentials are read from RAINDROP_TOKEN, NOTEBOOKLM_URL,
NOTEBOOKLM_NOTEBOOK_ID and NOTEBOOKLM_TOKEN (a .env file is honoured).
Log messages are written to stderr; reports are written to stdout.
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--config",
        help="YAML config file (takes precedence over RAINDROP_SYNC_CONFIG "
        "and the default locations)",
    )
    parser.add_argument(
        "--log-file",
        help="Also write log records to this file",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"raindrop-notebooklm-sync version {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help=COMMANDS["sync"])
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and show the changes without applying them",
    )
    sync_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON",
    )

    subparsers.add_parser("status", help=COMMANDS["status"])

    reset_parser = subparsers.add_parser(
        "reset-state", help=COMMANDS["reset-state"]
    )
    reset_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm that the state file should be moved aside",
    )
    return parser


def build_engine(config: UnifiedConfig) -> SyncEngine:
    """Wire adapters, state store and options from a validated config."""
    bookmarks, notebook = build_adapters(config)
    options = SyncOptions(
        propagate_deletes=config.sync.propagate_deletes,
        fetch_timeout=config.sync.fetch_timeout,
        apply_timeout=config.sync.apply_timeout,
        lock_timeout=config.sync.lock_timeout,
    )
    return SyncEngine(
        bookmarks,
        notebook,
        SyncStateStore(Path(config.sync.state_file).expanduser()),
        options,
    )


# ------------------------------------------------------------------
# Subcommands
# ------------------------------------------------------------------


def _cmd_sync(config: UnifiedConfig, args: argparse.Namespace) -> int:
    engine = build_engine(config)
    try:
        summary = engine.run(dry_run=args.dry_run)
    except KeyboardInterrupt:
        # run() has already stopped its writers before re-raising.
        print("\nInterrupted, state not committed.", file=sys.stderr)
        return EXIT_FATAL

    if args.json:
        print(json.dumps(summary_to_json(summary), indent=2))
    else:
        print(format_sync_report(summary))

    if summary.unreachable:
        return EXIT_UNREACHABLE
    if summary.has_failures:
        return EXIT_ITEM_FAILURES
    return EXIT_OK


def _cmd_status(config: UnifiedConfig) -> int:
    engine = build_engine(config)
    statuses = engine.status()
    for status in statuses.values():
        adapter = engine.adapters[status.side]
        state = "OK" if status.reachable else "UNREACHABLE"
        print(f"{status.side.value} ({adapter.name}): {state} - {status.detail}")

    store = engine.state_store
    links = store.load()
    print(f"State file: {store.path}")
    print(f"Links: {len(links)}")
    print(f"Last sync: {store.last_sync() or 'never'}")

    if not all(status.reachable for status in statuses.values()):
        return EXIT_UNREACHABLE
    return EXIT_OK


def _cmd_reset_state(config: UnifiedConfig, args: argparse.Namespace) -> int:
    if not args.yes:
        print(
            "Refusing to reset the sync state without --yes. The next run "
            "will re-link items by fingerprint only.",
            file=sys.stderr,
        )
        return EXIT_FATAL
    store = SyncStateStore(Path(config.sync.state_file).expanduser())
    moved_to = store.reset()
    if moved_to is None:
        print(f"No state file at {store.path}")
    else:
        print(f"State moved to {moved_to}")
    return EXIT_OK


def _print_commands() -> None:
    print("Available commands:")
    for name, help_text in COMMANDS.items():
        print(f"  {name:<13}{help_text}")
    print("\nRun with --help for options.")


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the chosen subcommand and return its exit code."""
    args = build_parser().parse_args(argv)

    load_dotenv()
    setup_logging(
        verbose=args.verbose,
        log_file=args.log_file,
        log_format=args.log_format or "text",
    )

    if args.command is None:
        _print_commands()
        return EXIT_OK

    try:
        config = load_config(
            Path(args.config) if args.config else None,
            validate=args.command != "reset-state",
        )
        setup_logging(
            verbose=args.verbose,
            level=os.getenv("LOG_LEVEL") or config.logging.level,
            log_file=args.log_file or config.logging.file,
            log_format=args.log_format or config.logging.format,
        )
        logger.info("Starting raindrop-notebooklm-sync")
        logger.info("Version: %s", __version__)

        if args.command == "sync":
            return _cmd_sync(config, args)
        if args.command == "status":
            return _cmd_status(config)
        return _cmd_reset_state(config, args)
    except SyncError as exc:
        logger.debug("Fatal error", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
