"""
Display Output
==============

Pages, the change gate and the collaborators that receive page sets.

- Page / Display: immutable line sequences, compared field by field
- DisplayChangeGate: forwards a page set only when it differs from the
  last committed one
- LogDisplay: stand-in device that writes each committed set to the log
- HttpLinesNotifier: POSTs committed sets as JSON to a configured URL

Driving a physical MFD (its wire protocol, soft buttons) is the job of an
external driver implementing IDisplay.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import json
import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from error_handling import DisplayError, ErrorContext, ErrorHandler
from lcd_format import LINE_WIDTH

logger = logging.getLogger("edmfd.display")


# ============================================================================
# VALUES
# ============================================================================

@dataclass(frozen=True)
class Page:
    """One screen: an ordered sequence of text lines"""
    lines: Tuple[str, ...] = ()

    @classmethod
    def of(cls, lines: Iterable[str]) -> "Page":
        return cls(tuple(lines))

    def fitted(self, width: int = LINE_WIDTH) -> List[str]:
        """Lines cut and padded to exactly ``width`` characters"""
        return [line[:width].ljust(width) for line in self.lines]


@dataclass(frozen=True)
class Display:
    """A complete page set, in page order"""
    pages: Tuple[Page, ...] = ()

    @classmethod
    def of(cls, pages: Iterable[Page]) -> "Display":
        return cls(tuple(pages))

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def to_lines(self) -> List[List[str]]:
        return [list(p.lines) for p in self.pages]


# ============================================================================
# COLLABORATOR INTERFACE
# ============================================================================

class IDisplay(Protocol):
    """Anything that can show a page set"""

    def write(self, display: Display) -> None:
        """Replace everything shown with ``display``"""
        ...


# ============================================================================
# COLLABORATORS
# ============================================================================

class LogDisplay:
    """Writes each page set to the log; keeps the last one for inspection"""

    def __init__(self, width: int = LINE_WIDTH, log: Optional[logging.Logger] = None):
        self.width = width
        self.last: Optional[Display] = None
        self._log = log or logger

    def write(self, display: Display) -> None:
        self.last = display
        for index, page in enumerate(display.pages, start=1):
            self._log.info("Page %d/%d", index, display.page_count)
            for line in page.fitted(self.width):
                self._log.info("| %s |", line)


class HttpLinesNotifier:
    """
    POSTs ``{"pages": [[line, ...], ...]}`` to ``url``.

    Sending happens on a short-lived thread so a slow endpoint never
    holds up the update cycle. Failures are logged only.
    """

    def __init__(self, url: str, timeout_s: float = 5.0, user_agent: str = "ED-MFD-Display"):
        self.url = url
        self.timeout_s = timeout_s
        self.user_agent = user_agent

    def build_request(self, display: Display) -> urllib.request.Request:
        body = json.dumps({"pages": display.to_lines()}).encode("utf-8")
        return urllib.request.Request(
            self.url,
            data=body,
            headers={
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
            },
            method="POST",
        )

    def send(self, display: Display) -> bool:
        req = self.build_request(display)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                resp.read()
            return True
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            logger.warning("Page notification to %s failed: %s", self.url, e)
            return False

    def write(self, display: Display) -> None:
        threading.Thread(
            target=self.send, args=(display,), name="page-notify", daemon=True
        ).start()


# ============================================================================
# CHANGE GATE
# ============================================================================

class DisplayChangeGate:
    """
    Diff-and-commit in front of the display collaborators.

    Usage:
        gate = DisplayChangeGate([LogDisplay()])
        gate.offer(display)   # True when the set was forwarded
    """

    def __init__(
        self,
        sinks: Sequence[IDisplay] = (),
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.sinks: List[IDisplay] = list(sinks)
        self.error_handler = error_handler
        self._committed: Optional[Display] = None
        self._lock = threading.Lock()
        self.commits = 0

    @property
    def committed(self) -> Optional[Display]:
        with self._lock:
            return self._committed

    def offer(self, display: Display) -> bool:
        """
        Commit ``display`` if it differs from the last committed set.

        Returns:
            True if the set was handed to the collaborators
        """
        with self._lock:
            if self._committed is not None and display == self._committed:
                return False
            self._committed = display
            self.commits += 1

        logger.debug("Display changed, writing %d page(s)", display.page_count)
        for sink in self.sinks:
            try:
                sink.write(display)
            except Exception as e:
                err = DisplayError(f"{type(sink).__name__} rejected page set: {e}")
                if self.error_handler:
                    self.error_handler.handle_error(
                        err, ErrorContext("write", "DisplayChangeGate"), notify_user=False
                    )
                else:
                    logger.error(err.message)
        return True

    def reset(self):
        """Forget the committed set so the next offer is always forwarded"""
        with self._lock:
            self._committed = None
