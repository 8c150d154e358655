"""
ED MFD Display - entry point
============================

    python main.py [--config PATH] [--journal-dir DIR] [--log-level LEVEL]
    python main.py --replay Journal.2024-05-01T120000.01.log [--offline]

Normal mode watches the journal folder until interrupted. Replay mode folds
one journal file through a fresh state machine, prints the resulting state
and pages once, and exits.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import argparse
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from pprint import pformat
from typing import List, Optional

from config_loader import ConfigLoader, LOG_LEVELS
from dependency_injection import DependencyContainer, create_journal_monitor
from error_handling import ConfigurationError, FileSystemError, RemoteDataUnavailable
from journal_monitor import JournalFileReader
from shutdown_manager import ShutdownManager
from utils import clean_path

logger = logging.getLogger("edmfd.main")


# ============================================================================
# SETUP
# ============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ed-mfd-display",
        description="Show Elite Dangerous journal state on a multi-function display.",
    )
    parser.add_argument("--config", type=Path, help="config file (.yaml, .yml or .json)")
    parser.add_argument("--journal-dir", help="override paths.journal_dir")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="override logging.level")
    parser.add_argument("--replay", type=Path, metavar="JOURNAL",
                        help="fold one journal file, print state and pages, then exit")
    parser.add_argument("--offline", action="store_true",
                        help="never contact EDSM (pages show placeholders)")
    return parser.parse_args(argv)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


def offline_fetch(url: str):
    raise RemoteDataUnavailable("offline mode", url=url)


# ============================================================================
# REPLAY
# ============================================================================

def run_replay(container: DependencyContainer, journal: Path) -> int:
    """Fold ``journal`` into a fresh state and print the result"""
    reader = JournalFileReader(journal.parent)
    try:
        lines = reader.read_new_lines(journal)
    except FileSystemError as e:
        logger.error(e.message)
        return 1

    processor = container.processor
    processor.notify_system_changes = False
    with container.store.write() as state:
        for line in lines:
            processor.apply(line, state)
        state.show_splash = False
    container.store.check_timers()

    snapshot = container.store.snapshot()
    logger.info(
        "Replayed %s: %d lines, %d events applied",
        clean_path(journal.name), len(lines), processor.events_processed,
    )
    print(pformat(asdict(snapshot), sort_dicts=False))
    carriers = container.store.carriers.snapshot()
    if carriers:
        print(pformat(carriers))

    width = container.config.display.line_width
    display = container.composer.compose(snapshot)
    for index, page in enumerate(display.pages, start=1):
        print(f"--- page {index} ---")
        for line in page.fitted(width):
            print(f"|{line}|")
    return 0


# ============================================================================
# MAIN
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or "INFO")

    try:
        config_path = ConfigLoader.resolve_path(args.config)
        config = ConfigLoader.load_or_create(config_path)
    except ConfigurationError as e:
        logger.error(e.message)
        return 2

    if args.log_level is None:
        configure_logging(config.logging.level)
    if args.journal_dir:
        config.paths.journal_dir = args.journal_dir

    logger.info("Using config %s", clean_path(config_path))

    container = DependencyContainer.create(config, fetcher=offline_fetch if args.offline else None)

    if args.replay:
        return run_replay(container, args.replay)

    monitor = create_journal_monitor(container)

    shutdown = ShutdownManager(container.error_handler)
    shutdown.register_component("JournalMonitor", monitor)
    shutdown.register_component("DependencyContainer", container)
    shutdown.setup_signal_handlers()

    monitor.start()
    logger.info("Watching %s (Ctrl+C to quit)", clean_path(config.paths.journal_path))

    # Short waits keep the main thread responsive to signals on Windows
    while not shutdown.wait_for_shutdown(0.5):
        pass

    shutdown.restore_signal_handlers()
    return 0


if __name__ == "__main__":
    sys.exit(main())
