"""
Graceful Shutdown Manager
=========================

Stops the watcher, flushes caches and closes logs in a fixed order when
the process is interrupted.

- Tasks run highest priority first, each on its own thread with a timeout
- SIGINT / SIGTERM start the shutdown
- ``wait_for_shutdown`` lets the main thread idle until it is done
"""

# ============================================================================
# IMPORTS
# ============================================================================

import signal
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from error_handling import ErrorHandler


# ============================================================================
# CLASSES
# ============================================================================

class ShutdownPriority(Enum):
    """Shutdown priority levels (higher numbers run first)"""
    CRITICAL = 100   # Stop producing new work (watcher)
    HIGH = 75        # Last display write
    NORMAL = 50      # Cache flush
    LOW = 25         # Log lines


@dataclass
class ShutdownTask:
    """A task to execute during shutdown"""
    name: str
    callback: Callable[[], None]
    priority: ShutdownPriority
    timeout: float = 5.0


class ShutdownManager:
    """
    Runs registered shutdown tasks once, in priority order.

    Usage:
        shutdown = ShutdownManager(container.error_handler)
        shutdown.register_task("monitor.stop", monitor.stop, ShutdownPriority.CRITICAL)
        shutdown.setup_signal_handlers()
        shutdown.wait_for_shutdown()
    """

    def __init__(self, error_handler: ErrorHandler):
        self.error_handler = error_handler
        self.logger = error_handler.logger

        self._tasks: List[ShutdownTask] = []
        self._shutdown_lock = threading.Lock()
        self._shutdown_initiated = False
        self._done = threading.Event()

        self._original_sigint = None
        self._original_sigterm = None

    def register_task(
        self,
        name: str,
        callback: Callable[[], None],
        priority: ShutdownPriority = ShutdownPriority.NORMAL,
        timeout: float = 5.0
    ):
        """
        Register a shutdown task

        Args:
            name: Task name (for logging)
            callback: Function to call during shutdown
            priority: Task priority
            timeout: Maximum time to wait for task
        """
        self._tasks.append(ShutdownTask(name, callback, priority, timeout))

    def register_component(self, component_name: str, component):
        """Register ``stop()`` and ``cleanup()`` of a component when present"""
        if callable(getattr(component, "stop", None)):
            self.register_task(f"{component_name}.stop()", component.stop, ShutdownPriority.CRITICAL, 3.0)
        if callable(getattr(component, "cleanup", None)):
            self.register_task(f"{component_name}.cleanup()", component.cleanup, ShutdownPriority.NORMAL, 2.0)

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown (main thread only)"""
        def signal_handler(signum, frame):
            self.logger.info(f"Received {signal.Signals(signum).name} signal")
            # Run outside the handler so a second signal is not blocked on us
            threading.Thread(target=self.initiate_shutdown, name="shutdown", daemon=True).start()

        self._original_sigint = signal.signal(signal.SIGINT, signal_handler)
        self._original_sigterm = signal.signal(signal.SIGTERM, signal_handler)

    def restore_signal_handlers(self):
        if self._original_sigint:
            signal.signal(signal.SIGINT, self._original_sigint)
        if self._original_sigterm:
            signal.signal(signal.SIGTERM, self._original_sigterm)

    def initiate_shutdown(self):
        """Run every task once; later calls are ignored"""
        with self._shutdown_lock:
            if self._shutdown_initiated:
                return
            self._shutdown_initiated = True

        self.logger.info("Shutting down")
        for task in sorted(self._tasks, key=lambda t: t.priority.value, reverse=True):
            self._execute_task(task)

        self.logger.info("Shutdown complete")
        self._done.set()

    def _execute_task(self, task: ShutdownTask):
        """Execute a single shutdown task with timeout"""
        errors: List[Exception] = []

        def run():
            try:
                task.callback()
            except Exception as e:
                errors.append(e)

        start_time = time.time()
        worker = threading.Thread(target=run, name=f"shutdown-{task.name}", daemon=True)
        worker.start()
        worker.join(timeout=task.timeout)
        elapsed = time.time() - start_time

        if worker.is_alive():
            self.logger.error(f"Task '{task.name}' did not complete within {task.timeout}s")
        elif errors:
            self.logger.error(f"Task '{task.name}' failed: {errors[0]}")
        else:
            self.logger.info(f"{task.name} completed ({elapsed:.2f}s)")

    def is_shutting_down(self) -> bool:
        with self._shutdown_lock:
            return self._shutdown_initiated

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Block until shutdown has completed

        Returns:
            True if shutdown completed, False on timeout
        """
        return self._done.wait(timeout)
