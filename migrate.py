#!/usr/bin/env python3
"""
Feishu Drive to Wiki Migration Tool - Main CLI Entry Point

This script provides the command-line interface for migrating a selected
subtree of a Feishu/Lark drive into a newly created wiki space, preserving
the folder hierarchy and document order.
"""

import argparse
import logging
import os
import signal
import sys
from collections import deque
from typing import Dict, List, Optional

from tqdm import tqdm

from config_loader import ConfigLoader, MigrationSettings, get_nested
from errors import MigrationError, ValidationError
from fetchers import DriveFetcher
from importers import FeishuClient
from logger import LOGGER_NAME, log_config, log_section, setup_logging
from models import RunState
from orchestrator import MigrationOrchestrator, MigrationReport, RunContext
from selection import DriveTreeStore

# Version
__version__ = "1.0.0"

DEFAULT_CONFIG_PATH = 'config.yaml'

EXIT_DONE = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Migrate a Feishu drive folder tree into a new wiki space",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List the drive root
  python migrate.py --list

  # List a shared folder
  python migrate.py --folder fldcnShared --list fldcnShared

  # Preview the migration of one folder
  python migrate.py --select fldcnDocs --dry-run

  # Migrate two folders of the same root
  python migrate.py --select fldcnDocs --select fldcnSpecs

  # Token from the command line, verbose logging
  python migrate.py --token u-xxxx --select fldcnDocs -vv
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f'Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH})'
    )

    parser.add_argument(
        '--token',
        type=str,
        help='User access token (overrides feishu.user_access_token)'
    )

    parser.add_argument(
        '--base-url',
        type=str,
        help='Open API base URL (overrides feishu.base_url)'
    )

    parser.add_argument(
        '--folder',
        dest='shared_folder',
        action='append',
        metavar='TOKEN',
        help='Shared folder token to add as a tree root (repeatable)'
    )

    parser.add_argument(
        '--select',
        action='append',
        metavar='TOKEN',
        default=[],
        help='Token of a file or folder to migrate (repeatable, same root only)'
    )

    parser.add_argument(
        '--list',
        nargs='?',
        const='',
        default=None,
        metavar='TOKEN',
        help='List the children of a folder (the drive root if no token is given)'
    )

    parser.add_argument(
        '--dry-run',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Discover and plan the migration without making changes'
    )

    parser.add_argument(
        '--report',
        type=str,
        help='Path of the JSON report (overrides migration.report_path)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Write logs to this file as well'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def locate_node(store: DriveTreeStore, fetcher: DriveFetcher, token: str):
    """
    Find ``token`` in the tree, lazily loading folders breadth-first.

    Returns:
        The matching node, or None when the whole tree has been searched
    """
    node = store.find(token)
    if node is not None:
        return node

    queue = deque(store.roots)
    while queue:
        folder = queue.popleft()
        if not folder.is_folder:
            continue
        if not folder.loaded:
            fetcher.load_children(store, folder)
        for child in folder.children:
            if child.token == token:
                return child
            queue.append(child)
    return None


def select_tokens(store: DriveTreeStore, fetcher: DriveFetcher, tokens: List[str], logger: logging.Logger) -> None:
    """
    Check every requested token in the tree store.

    Raises:
        ValidationError: If a token cannot be found or is under another root
    """
    for token in tokens:
        node = locate_node(store, fetcher, token)
        if node is None:
            raise ValidationError(f"Token not found in the drive tree: {token}")
        if not store.toggle(node, True):
            raise ValidationError(f"{token} is under a different root folder than the current selection")
        logger.info(f"Selected {node.name} ({node.token})")
    print(store.summary())


def list_folder(store: DriveTreeStore, fetcher: DriveFetcher, token: str) -> int:
    """Print the children of a folder, or of the drive root when ``token`` is empty."""
    node = store.roots[0] if not token and store.roots else locate_node(store, fetcher, token)
    if node is None:
        print(f"Folder not found: {token}", file=sys.stderr)
        return EXIT_CONFIG
    if not node.is_folder:
        print(f"Not a folder: {node.name} ({node.token})", file=sys.stderr)
        return EXIT_CONFIG

    if not node.loaded:
        fetcher.load_children(store, node)

    print(f"{node.name} ({node.token})")
    if not node.children:
        print("  (empty folder)")
    for child in node.children:
        marker = '/' if child.is_folder else ''
        print(f"  {child.type:<16} {child.token:<32} {child.name}{marker}")
    return EXIT_DONE


def print_plan(planned: Dict) -> None:
    """Print a dry-run preview of the discovered plan."""
    plan = planned['plan']
    copy_plan = planned['copy_plan']

    print("\n" + "=" * 60)
    print("MIGRATION PREVIEW")
    print("=" * 60)
    print(f"Root:     {plan.root_name} ({plan.root_token})")
    print(f"Folders:  {len(plan.folders)} wiki node(s) will be created")
    for entry in plan.folders.values():
        parent = 'space' if entry.parent_token == plan.root_token else entry.parent_token
        print(f"  - {entry.name} ({entry.token}) under {parent}")
    print(f"Files:    {len(copy_plan.supported)} to migrate, {len(copy_plan.skipped)} skipped")
    for entry in copy_plan.supported:
        print(f"  {entry.index:>4}. [{entry.type}] {entry.name}")
    for entry in copy_plan.skipped:
        print(f"  skip  [{entry.type}] {entry.name}")
    print("=" * 60)


def exit_code_for(report: Dict) -> int:
    status = report.get('status')
    if status == RunState.DONE.value:
        return EXIT_DONE
    if status == RunState.CANCELLED.value:
        return EXIT_CANCELLED
    error = report.get('error') or {}
    if error.get('type') == ValidationError.__name__:
        return EXIT_CONFIG
    return EXIT_FAILED


def install_progress_bars(context: RunContext) -> Dict[str, tqdm]:
    """Feed the run's progress counters into tqdm bars."""
    labels = {'nodes': 'Wiki nodes', 'moves': 'Documents moved'}
    bars: Dict[str, tqdm] = {}

    def on_progress(kind: str, done: int, total: int) -> None:
        bar = bars.get(kind)
        if bar is None:
            bar = tqdm(total=total, desc=labels.get(kind, kind), unit='item', leave=True)
            bars[kind] = bar
        bar.total = total
        bar.n = done
        bar.refresh()

    context.on_progress(on_progress)
    return bars


def run_migration(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Build the drive tree, apply the selection and run or preview the migration."""
    settings = MigrationSettings.from_config(config)
    context = RunContext(settings)
    client = FeishuClient.from_config(config)
    fetcher = DriveFetcher(client, settings, context)
    store = DriveTreeStore()

    fetcher.refresh_roots(store, get_nested(config, 'feishu.shared_folders', []) or [])

    if args.list is not None:
        return list_folder(store, fetcher, args.list)

    if not args.select:
        logger.error("Nothing selected: pass --select TOKEN (or --list to browse)")
        return EXIT_CONFIG

    select_tokens(store, fetcher, args.select, logger)

    orchestrator = MigrationOrchestrator(client, config, context=context)

    dry_run = get_nested(config, 'migration.dry_run', False)
    if dry_run:
        logger.info("Dry-run mode: discovering and planning only")
        print_plan(orchestrator.plan(store))
        logger.info("Dry-run complete. No changes made.")
        return EXIT_DONE

    bars = install_progress_bars(context)

    def handle_sigint(signum, frame):
        if context.token.is_cancelled:
            raise KeyboardInterrupt
        print("\nCancelling... (press Ctrl+C again to abort immediately)", file=sys.stderr)
        orchestrator.cancel()

    previous_handler = signal.signal(signal.SIGINT, handle_sigint)
    try:
        report = orchestrator.run(store)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        for bar in bars.values():
            bar.close()

    report_generator = MigrationReport(logger)
    print("\n" + report_generator.format_console_report(report))

    report_path = get_nested(config, 'migration.report_path', 'migration_report.json')
    report_generator.export_json_report(report, report_path)
    if report_path.endswith('.json'):
        report_generator.export_csv_documents(report, report_path[:-len('.json')] + '_documents.csv')

    exit_code = exit_code_for(report)
    if exit_code == EXIT_DONE:
        logger.info("Migration completed successfully")
    else:
        logger.warning(f"Migration ended with status {report.get('status')}")
    return exit_code


def load_config(args: argparse.Namespace) -> dict:
    """Load the config file (optional when the default path does not exist) and merge CLI args."""
    if args.config == DEFAULT_CONFIG_PATH and not os.path.exists(args.config):
        config = {}
    else:
        config = ConfigLoader.load(args.config)
    config = ConfigLoader.merge_with_args(config, args)
    ConfigLoader.validate(config)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(verbosity=args.verbose)
        logger = logging.getLogger(LOGGER_NAME)

        log_section("Feishu Drive to Wiki Migration Tool")
        logger.info(f"Version: {__version__}")

        logger.info(f"Loading configuration from {args.config}")
        config = load_config(args)

        # Reconfigure logging with config file settings
        logging_config = config.get('logging', {}) or {}
        setup_logging(
            verbosity=args.verbose,
            log_file=logging_config.get('file'),
            log_format=logging_config.get('format'),
            level=logging_config.get('level')
        )
        logger = logging.getLogger(LOGGER_NAME)

        log_config(config)

        return run_migration(config, args, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except (ValueError, ValidationError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:
        print("\nMigration interrupted by user", file=sys.stderr)
        return EXIT_CANCELLED
    except MigrationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
