"""
Dependency Injection System
============================

Configuration objects and the container that wires the pipeline together.

Benefits:
- Clear dependencies for each component
- Easy to mock for testing
- Configuration as objects (not dicts)
- Centralized dependency management
"""

# ============================================================================
# IMPORTS
# ============================================================================

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, TYPE_CHECKING
import logging
import os
from logging.handlers import RotatingFileHandler

from utils import expand_path

if TYPE_CHECKING:
    from caching import CacheManager
    from display import DisplayChangeGate
    from edsm import RemoteDataCache
    from error_handling import ErrorHandler
    from journal_events import EventProcessor
    from journal_monitor import JournalMonitor
    from journal_state_manager import StateStore
    from page_composer import PageComposer


# ============================================================================
# CONFIGURATION CLASSES
# ============================================================================

DEFAULT_JOURNAL_DIR = r"%USERPROFILE%\Saved Games\Frontier Developments\Elite Dangerous"
USER_CONFIG_DIR = Path.home() / ".ed_mfd_display"

PAGE_IDS = ("destination", "location", "cargo")


@dataclass
class PathConfig:
    """File paths configuration (stored unexpanded, as the user wrote them)"""
    journal_dir: str = DEFAULT_JOURNAL_DIR
    log_dir: str = str(USER_CONFIG_DIR / "logs")
    names_dir: str = ""

    @property
    def journal_path(self) -> Path:
        return expand_path(self.journal_dir)

    @property
    def log_path(self) -> Path:
        return expand_path(self.log_dir) / "ed_mfd_display.log"

    @property
    def names_path(self) -> Optional[Path]:
        return expand_path(self.names_dir) if self.names_dir else None


@dataclass
class MonitoringConfig:
    """Journal monitoring configuration"""
    poll_seconds: float = 1.0
    arrival_timeout_seconds: float = 10.0
    splash_min_seconds: float = 10.0
    use_watchdog: bool = True


@dataclass
class EdsmConfig:
    """Remote data service"""
    base_url: str = "https://www.edsm.net"
    timeout_seconds: float = 10.0
    user_agent: str = "ED-MFD-Display"


@dataclass
class DisplayConfig:
    line_width: int = 16
    notify_url: str = ""
    min_valuable_body_value: int = 0


@dataclass
class LoggingConfig:
    level: str = "INFO"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5


@dataclass
class AppConfig:
    """Complete application configuration"""
    app_name: str = "ED MFD Display"
    version: str = "1.0.0"
    paths: PathConfig = field(default_factory=PathConfig)
    pages: Dict[str, bool] = field(default_factory=lambda: {p: True for p in PAGE_IDS})
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    edsm: EdsmConfig = field(default_factory=EdsmConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def create_default(cls) -> 'AppConfig':
        """Create default application configuration"""
        return cls()

    @property
    def enabled_pages(self) -> List[str]:
        """Enabled page ids in display order"""
        return [p for p in PAGE_IDS if self.pages.get(p)]


# ============================================================================
# INTERFACE PROTOCOLS (Dependency Inversion)
# ============================================================================

class ILogger(Protocol):
    """Logger interface"""

    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def close(self) -> None:
        ...


# ============================================================================
# SIMPLE FILE LOGGER IMPLEMENTATION
# ============================================================================

class FileLogger:
    """Rotating file-based logger (thread-safe + bounded disk usage).

    Uses Python's logging subsystem with a RotatingFileHandler so logs don't
    grow forever and the file handle isn't reopened on every message.
    Records also propagate to the ``edmfd`` logger so they reach the console.
    """

    def __init__(
        self,
        log_path: Path,
        *,
        max_bytes: int = 5 * 1024 * 1024,   # 5 MB per file
        backup_count: int = 5,              # keep last 5 files
    ):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        # One logger per path so repeated construction does not stack handlers
        self._logger = logging.getLogger(f"edmfd.file.{self.log_path.stem}")
        self._logger.setLevel(logging.DEBUG)
        self._attached = []

        if not any(
            isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(self.log_path)
            for h in self._logger.handlers
        ):
            handler = RotatingFileHandler(
                filename=str(self.log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
                delay=True,
            )
            handler.setFormatter(logging.Formatter(
                fmt="[%(asctime)s] [%(levelname)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ))
            self._logger.addHandler(handler)

    def attach(self, logger_name: str = "edmfd"):
        """Also send every record of ``logger_name`` to the rotating file"""
        target = logging.getLogger(logger_name)
        attached = {
            h.baseFilename: h for h in target.handlers if isinstance(h, RotatingFileHandler)
        }
        for handler in self._logger.handlers:
            if handler.baseFilename in attached:
                handler.close()
                handler = attached[handler.baseFilename]
            else:
                target.addHandler(handler)
            self._attached.append((target, handler))
        # Records from our own logger now reach the file through the parent
        self._logger.propagate = True
        self._logger.handlers = []

    def close(self):
        """Detach and close the rotating file handler"""
        for target, handler in self._attached:
            target.removeHandler(handler)
            handler.close()
        self._attached = []
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()

    def info(self, message: str):
        self._logger.info(message)

    def warning(self, message: str):
        self._logger.warning(message)

    def error(self, message: str):
        self._logger.error(message)


# ============================================================================
# DEPENDENCY CONTAINER
# ============================================================================

@dataclass
class DependencyContainer:
    """
    Container for all application dependencies

    This is the central registry for dependency injection.
    All components receive their dependencies from this container.
    """
    config: AppConfig
    logger: ILogger
    error_handler: 'ErrorHandler'
    cache_manager: 'CacheManager'
    remote: 'RemoteDataCache'
    store: 'StateStore'
    processor: 'EventProcessor'
    composer: 'PageComposer'
    gate: 'DisplayChangeGate'

    @classmethod
    def create(cls, config: Optional[AppConfig] = None, sinks=None, fetcher=None) -> 'DependencyContainer':
        """
        Create dependency container with all dependencies

        Args:
            config: Application configuration (uses default if None)
            sinks: Display collaborators (default: LogDisplay, plus the
                HTTP notifier when ``display.notify_url`` is set)
            fetcher: Optional url -> JSON function for the EDSM client

        Returns:
            Configured dependency container
        """
        # Imported here to keep config-only users free of the pipeline
        from caching import CacheManager
        from commodity_names import CommodityNames
        from display import DisplayChangeGate, HttpLinesNotifier, LogDisplay
        from edsm import RemoteDataCache
        from error_handling import ErrorHandler
        from journal_events import EventProcessor
        from journal_state_manager import StateStore
        from page_composer import PageComposer

        if config is None:
            config = AppConfig.create_default()

        logger = FileLogger(
            config.paths.log_path,
            max_bytes=config.logging.max_bytes,
            backup_count=config.logging.backup_count,
        )
        logger.attach()
        logger.info(f"Application starting: {config.app_name} v{config.version}")

        error_handler = ErrorHandler(logger)
        cache_manager = CacheManager(error_handler)
        remote = RemoteDataCache(
            cache_manager,
            base_url=config.edsm.base_url,
            timeout_s=config.edsm.timeout_seconds,
            user_agent=config.edsm.user_agent,
            fetcher=fetcher,
            error_handler=error_handler,
        )

        enabled = config.enabled_pages
        store = StateStore(
            first_page=enabled[0] if enabled else None,
            arrival_timeout=config.monitoring.arrival_timeout_seconds,
            splash_min_seconds=config.monitoring.splash_min_seconds,
        )
        processor = EventProcessor(store.carriers, on_system_changed=remote.warm_up)

        composer = PageComposer(
            remote,
            CommodityNames.load(config.paths.names_path),
            store.carriers,
            enabled_pages=enabled,
            width=config.display.line_width,
            app_name=config.app_name,
            version=config.version,
            min_valuable_body_value=config.display.min_valuable_body_value,
        )

        if sinks is None:
            sinks = [LogDisplay(config.display.line_width)]
            if config.display.notify_url:
                sinks.append(HttpLinesNotifier(config.display.notify_url, user_agent=config.edsm.user_agent))
        gate = DisplayChangeGate(sinks, error_handler)

        return cls(
            config=config,
            logger=logger,
            error_handler=error_handler,
            cache_manager=cache_manager,
            remote=remote,
            store=store,
            processor=processor,
            composer=composer,
            gate=gate,
        )

    def cleanup(self):
        """Cleanup resources"""
        for stats in self.cache_manager.all_stats().values():
            self.logger.info(
                f"Cache {stats.name}: {stats.size} entries, "
                f"{stats.hits} hits, {stats.misses} misses ({stats.hit_rate:.0f}%)"
            )
        self.cache_manager.clear_all()
        self.logger.info("Application shutdown complete")
        self.logger.close()


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_journal_monitor(container: DependencyContainer) -> 'JournalMonitor':
    """
    Factory function to create JournalMonitor with injected dependencies

    Args:
        container: Dependency container

    Returns:
        Configured JournalMonitor instance
    """
    from journal_monitor import JournalMonitor

    cfg = container.config
    return JournalMonitor(
        journal_dir=cfg.paths.journal_path,
        store=container.store,
        processor=container.processor,
        composer=container.composer,
        gate=container.gate,
        remote=container.remote,
        poll_seconds=cfg.monitoring.poll_seconds,
        use_watchdog=cfg.monitoring.use_watchdog,
        error_handler=container.error_handler,
    )
