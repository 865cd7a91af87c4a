from __future__ import annotations

from typing import Any, Optional


class HarnessError(RuntimeError):
    """Base class for every error raised by the harness."""


class SessionConnectionError(HarnessError, ConnectionError):
    """The remote automation endpoint could not be reached."""


class CapabilityError(HarnessError):
    """The capability set is malformed or was rejected by the server."""


class SessionNotReadyError(HarnessError):
    """An operation needed an open session and there was none."""


class SessionBusyError(HarnessError):
    """A session is already open on this manager."""


class ElementNotFoundError(HarnessError):
    def __init__(self, locator: Any, elapsed_ms: int) -> None:
        super().__init__(f"Element not found for {locator} after {elapsed_ms}ms")
        self.locator = locator
        self.elapsed_ms = elapsed_ms


class StaleElementError(HarnessError):
    """An element handle was used after its session (or screen) went away."""


class AssertionMismatchError(HarnessError, AssertionError):
    def __init__(
        self,
        *,
        expected: Any,
        actual: Any,
        matcher: str,
        description: Optional[str] = None,
    ) -> None:
        prefix = f"{description}: " if description else ""
        super().__init__(f"{prefix}{matcher} failed. expected={expected!r}, actual={actual!r}")
        self.expected = expected
        self.actual = actual
        self.matcher = matcher
        self.description = description
