"""
Error Handling System
=====================

Error handling for the journal reader and MFD page pipeline:
- Exception hierarchy with a severity and a short display message
- Error context (component / operation) for the logs
- ErrorHandler: severity-routed logging, bounded history, callbacks
- with_error_handling: keeps the worker loop alive

Nothing raised in here is meant to be fatal: the worst outcome of any
failure path is a stale or placeholder page.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import functools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, List, Optional, TypeVar


# ============================================================================
# ERROR SEVERITY LEVELS
# ============================================================================

class ErrorSeverity(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================================
# CUSTOM EXCEPTION HIERARCHY
# ============================================================================

class EDDisplayError(Exception):
    """
    Base exception for all ED MFD Display errors.

    Subclasses set ``default_severity`` and ``default_user_message``;
    both can still be overridden per instance.
    """

    default_severity = ErrorSeverity.ERROR
    default_user_message: Optional[str] = None

    def __init__(
        self,
        message: str,
        severity: Optional[ErrorSeverity] = None,
        user_message: Optional[str] = None,
        context: Optional[dict] = None
    ):
        """
        Args:
            message: Technical error message (for logs)
            severity: Overrides the class severity
            user_message: Short text fit for a page line or tray tip
            context: Extra detail for the log line
        """
        super().__init__(message)
        self.message = message
        self.severity = severity or self.default_severity
        self.user_message = user_message or self.default_user_message or message
        self.context = context or {}
        self.timestamp = time.time()

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp,
        }


class ConfigurationError(EDDisplayError):
    """Unreadable or invalid config file"""
    default_severity = ErrorSeverity.CRITICAL
    default_user_message = "Configuration error. Please check your settings."


class FileSystemError(EDDisplayError):
    """Journal folder / snapshot file access errors"""
    default_user_message = "File system error. Check file permissions."


class NetworkError(EDDisplayError):
    default_severity = ErrorSeverity.WARNING
    default_user_message = "Network error. Some pages may be incomplete."


class RemoteDataUnavailable(NetworkError):
    """A remote lookup failed (transport or decoding); retry later"""
    default_user_message = "EDSM data unavailable."

    def __init__(self, message: str, url: str = "", **kwargs):
        context = dict(kwargs.pop("context", None) or {})
        context.setdefault("url", url)
        super().__init__(message, context=context, **kwargs)
        self.url = url


class DisplayError(EDDisplayError):
    """A display collaborator rejected a page set"""
    default_user_message = "Display update failed."


# ============================================================================
# ERROR CONTEXT
# ============================================================================

@dataclass
class ErrorContext:
    """Where an error happened"""
    operation: str
    component: str
    details: dict = field(default_factory=dict)

    def describe(self) -> str:
        return f"[Component: {self.component}, Operation: {self.operation}]"


# ============================================================================
# ERROR HANDLER
# ============================================================================

class ErrorHandler:
    """
    Centralized error sink.

    Usage:
        handler = ErrorHandler(file_logger)
        handler.on_error = tray.notify
        handler.handle_error(e, ErrorContext("update_cycle", "JournalMonitor"))
    """

    def __init__(self, logger, max_history: int = 100):
        """
        Args:
            logger: ILogger the log lines go to
            max_history: Number of recent errors kept for inspection
        """
        self.logger = logger
        self.error_history: Deque[EDDisplayError] = deque(maxlen=max_history)

        # Notification hooks (tray icon, status line)
        self.on_error: Optional[Callable[[EDDisplayError], None]] = None
        self.on_critical_error: Optional[Callable[[EDDisplayError], None]] = None

    def handle_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        notify_user: bool = True
    ):
        """
        Record, log and (optionally) announce an error.

        Args:
            error: Exception that occurred; foreign exceptions are wrapped
            context: Where it happened
            notify_user: False skips the ``on_error`` hook
        """
        if not isinstance(error, EDDisplayError):
            error = EDDisplayError(
                str(error),
                context={"exception": type(error).__name__, **(context.details if context else {})},
            )

        self.error_history.append(error)
        self._log_error(error, context)

        if error.severity is ErrorSeverity.CRITICAL and self.on_critical_error:
            self.on_critical_error(error)
        elif notify_user and self.on_error:
            self.on_error(error)

    def _log_error(self, error: EDDisplayError, context: Optional[ErrorContext]):
        parts = [f"{error.severity.value}: {error.message}"]
        if context:
            parts.append(context.describe())
        if error.context:
            parts.append(f"[Context: {error.context}]")
        line = " ".join(parts)

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR):
            self.logger.error(line)
        elif error.severity is ErrorSeverity.WARNING:
            self.logger.warning(line)
        else:
            self.logger.info(line)

    def get_recent_errors(self, count: int = 10) -> List[EDDisplayError]:
        return list(self.error_history)[-count:]


# ============================================================================
# DECORATORS
# ============================================================================

T = TypeVar('T')


def with_error_handling(
    component: str,
    operation: str,
    default_return: Any = None,
    raise_on_error: bool = False
):
    """
    Turn an unexpected exception into a logged error and a default return.

    The error goes to ``self.error_handler`` when the decorated callable is
    a method of an object that has one, else to the ``edmfd.errors`` logger.

    Usage:
        @with_error_handling("JournalMonitor", "update_cycle", default_return=False)
        def update_cycle(self):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                error_handler = getattr(args[0], "error_handler", None) if args else None
                if error_handler:
                    error_handler.handle_error(
                        e, ErrorContext(operation, component, {"function": func.__name__})
                    )
                else:
                    logging.getLogger("edmfd.errors").exception(
                        "%s.%s failed", component, operation
                    )
                if raise_on_error:
                    raise
                return default_return

        return wrapper
    return decorator
