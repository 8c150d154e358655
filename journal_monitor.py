"""
Journal Monitor
===============

Watches the journal folder and drives one update cycle per change:

    tail journal -> snapshot files -> timed policies -> compose -> change gate

- JournalFileReader: newest-journal selection and offset-tracked tailing
- JournalFolderHandler: watchdog handler that wakes the worker
- JournalMonitor: worker thread, start/stop, device re-init
"""

# ============================================================================
# IMPORTS
# ============================================================================

import fnmatch
import logging
import os
import threading
from pathlib import Path
from typing import Callable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from display import DisplayChangeGate
from edsm import RemoteDataCache
from error_handling import ErrorHandler, FileSystemError, with_error_handling
from journal_events import EventProcessor
from journal_state_manager import StateStore
from page_composer import PageComposer
from snapshot_files import CARGO_FILE, MODULES_INFO_FILE, STATUS_FILE, SnapshotFileIntegrator
from utils import clean_path

logger = logging.getLogger("edmfd.journal_monitor")


# ============================================================================
# CONFIGURATION / CONSTANTS
# ============================================================================

JOURNAL_GLOB = "Journal.*.*.log"
WATCHED_PATTERNS = (JOURNAL_GLOB, STATUS_FILE, MODULES_INFO_FILE, CARGO_FILE)


# ============================================================================
# JOURNAL FILE READER
# ============================================================================

class JournalFileReader:
    """Finds the active journal and reads what was appended since last time"""

    def __init__(self, journal_dir: Path):
        """
        Args:
            journal_dir: Directory containing journal files
        """
        self.journal_dir = Path(journal_dir)
        self.current_file: Optional[Path] = None
        self.offset = 0

    def find_newest_journal(self) -> Optional[Path]:
        """
        Newest journal by modification time.

        Equal timestamps are decided by file name (the later name wins), so
        the choice never flips between two files.
        """
        candidates = []
        for path in self.journal_dir.glob(JOURNAL_GLOB):
            try:
                mtime = path.stat().st_mtime_ns
            except OSError:
                continue
            candidates.append((mtime, path.name, path))
        if not candidates:
            return None
        return max(candidates)[2]

    def read_new_lines(self, path: Optional[Path] = None) -> List[bytes]:
        """
        Complete lines appended since the last read of the same file.

        A different file, or one shorter than the recorded offset, is read
        from the start. A trailing partial line is left for the next read.

        Args:
            path: File to read (default: newest journal)

        Returns:
            Non-blank lines in file order; empty when no journal exists

        Raises:
            FileSystemError: the file could not be opened or read
        """
        if path is None:
            path = self.find_newest_journal()
        if path is None:
            return []

        offset = self.offset if path == self.current_file else 0
        try:
            with open(path, "rb") as f:
                size = os.fstat(f.fileno()).st_size
                if offset > size:
                    logger.info("Journal %s shrank, reading from the start", clean_path(path.name))
                    offset = 0
                f.seek(offset)
                data = f.read()
        except OSError as e:
            raise FileSystemError(
                f"Error reading journal file {clean_path(path)}: {e}",
                context={"path": clean_path(path)},
            ) from e

        if path != self.current_file:
            logger.info("Now reading journal %s", clean_path(path.name))

        end = data.rfind(b"\n")
        consumed = end + 1 if end >= 0 else 0
        self.current_file = path
        self.offset = offset + consumed

        return [line for line in data[:consumed].splitlines() if line.strip()]


# ============================================================================
# WATCHDOG HANDLER
# ============================================================================

class JournalFolderHandler(FileSystemEventHandler):
    """Calls ``notify`` when a watched file is created, modified or renamed"""

    def __init__(self, notify: Callable[[], None]):
        super().__init__()
        self._notify = notify

    @staticmethod
    def is_watched(path: str) -> bool:
        name = os.path.basename(path)
        return any(fnmatch.fnmatch(name, pattern) for pattern in WATCHED_PATTERNS)

    def _check(self, event: FileSystemEvent, *paths: str):
        if event.is_directory:
            return
        if any(p and self.is_watched(str(p)) for p in paths):
            self._notify()

    def on_created(self, event: FileSystemEvent):
        self._check(event, event.src_path)

    def on_modified(self, event: FileSystemEvent):
        self._check(event, event.src_path)

    def on_moved(self, event: FileSystemEvent):
        self._check(event, event.src_path, getattr(event, "dest_path", ""))


# ============================================================================
# JOURNAL MONITOR
# ============================================================================

class JournalMonitor:
    """
    Main coordinator: owns the worker thread and the folder observer.

    All state mutation happens on the worker thread, one update cycle at
    a time.
    """

    def __init__(
        self,
        journal_dir: Path,
        store: StateStore,
        processor: EventProcessor,
        composer: PageComposer,
        gate: DisplayChangeGate,
        remote: RemoteDataCache,
        poll_seconds: float = 1.0,
        use_watchdog: bool = True,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Args:
            journal_dir: Folder holding the journal and snapshot files
            store: Player state owner
            processor: Journal event state machine
            composer: Page renderer
            gate: Display change gate
            remote: EDSM cache (warm-up and flush)
            poll_seconds: Worker wake-up interval for timed policies
            use_watchdog: False re-reads the folder every poll instead
            error_handler: Error sink for failed cycles
        """
        self.journal_dir = Path(journal_dir)
        self.store = store
        self.processor = processor
        self.composer = composer
        self.gate = gate
        self.remote = remote
        self.poll_seconds = poll_seconds
        self.use_watchdog = use_watchdog
        self.error_handler = error_handler

        # Components
        self.file_reader = JournalFileReader(self.journal_dir)
        self.snapshots = SnapshotFileIntegrator(self.journal_dir, store)

        # Control events
        self.stop_event = threading.Event()
        self.change_event = threading.Event()

        self.monitor_thread: Optional[threading.Thread] = None
        self.observer: Optional[Observer] = None

        self.lines_applied = 0

    # ========================================================================
    # UPDATE CYCLE
    # ========================================================================

    @with_error_handling("JournalMonitor", "update_cycle", default_return=False)
    def update_cycle(self) -> bool:
        """
        Re-read changed files and re-render.

        Returns:
            True if a new page set was committed
        """
        self.read_journal()
        self.snapshots.update_all()
        self.store.check_timers()
        return self.render()

    @with_error_handling("JournalMonitor", "tick", default_return=False)
    def tick(self) -> bool:
        """Timed re-check without touching the files"""
        self.store.check_timers()
        return self.render()

    def read_journal(self) -> int:
        """
        Apply newly appended journal lines, in file order.

        Returns:
            Number of lines read
        """
        try:
            lines = self.file_reader.read_new_lines()
        except FileSystemError as e:
            logger.warning(e.message)
            return 0
        if not lines:
            return 0

        with self.store.write() as state:
            for line in lines:
                self.processor.apply(line, state)
        self.lines_applied += len(lines)
        logger.debug("Applied %d journal line(s)", len(lines))
        return len(lines)

    def render(self) -> bool:
        display = self.composer.compose(self.store.snapshot())
        return self.gate.offer(display)

    # ========================================================================
    # MONITORING OPERATIONS
    # ========================================================================

    def start(self):
        """Replay the current journal, then watch the folder on a worker thread"""
        if self.monitor_thread and self.monitor_thread.is_alive():
            return

        logger.info("Starting journal listener on %s", clean_path(self.journal_dir))

        # Catch up on the session so far without fetching every past system
        self.processor.notify_system_changes = False
        try:
            self.update_cycle()
        finally:
            self.processor.notify_system_changes = True

        system_address = self.store.snapshot().location.system_address
        if system_address:
            logger.debug("Prefetching EDSM data for initial system %s", system_address)
            self.remote.warm_up(system_address)

        if self.use_watchdog:
            self._start_observer()

        self.stop_event.clear()
        self.monitor_thread = threading.Thread(
            target=self._monitor_loop, name="Journal worker", daemon=True
        )
        self.monitor_thread.start()

    def _start_observer(self):
        handler = JournalFolderHandler(self.notify_change)
        observer = Observer()
        observer.daemon = True
        try:
            observer.schedule(handler, str(self.journal_dir), recursive=False)
            observer.start()
        except OSError as e:
            logger.warning(
                "Cannot watch %s (%s); polling every %.1fs instead",
                clean_path(self.journal_dir), e, self.poll_seconds,
            )
            self.observer = None
            return
        self.observer = observer

    def stop(self):
        """Stop the observer and the worker; in-flight warm-ups run to completion"""
        self.stop_event.set()
        self.change_event.set()

        if self.observer:
            self.observer.stop()
            self.observer.join(timeout=2.0)
            self.observer = None

        if self.monitor_thread:
            self.monitor_thread.join(timeout=2.0)
            self.monitor_thread = None

        logger.info("Journal watcher stopped")

    def running(self) -> bool:
        return bool(self.monitor_thread and self.monitor_thread.is_alive())

    def notify_change(self):
        """External change notification (same effect as a watchdog event)"""
        self.change_event.set()

    def on_device_reinit(self):
        """Device came back: drop remote data and force a full redraw"""
        logger.info("Device re-initialised, flushing EDSM cache")
        self.remote.flush()
        self.gate.reset()
        self.notify_change()

    def _monitor_loop(self):
        """Main monitoring loop (runs in background thread)"""
        polling = self.observer is None
        while not self.stop_event.is_set():
            changed = self.change_event.wait(self.poll_seconds)
            if self.stop_event.is_set():
                break
            if changed or polling:
                self.change_event.clear()
                self.update_cycle()
            else:
                self.tick()
