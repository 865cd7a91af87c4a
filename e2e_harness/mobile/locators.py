from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Union

from .appium_http_client import WebDriverElementRef
from .config import Platform
from .errors import ElementNotFoundError, StaleElementError
from .session import Session

LOG = logging.getLogger(__name__)


def _quoted(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


@dataclass(frozen=True)
class AccessibilityId:
    value: str

    def to_webdriver(self, platform: Platform) -> tuple[str, str]:
        return "accessibility id", self.value

    def __str__(self) -> str:
        return f"~{self.value}"


@dataclass(frozen=True)
class Text:
    value: str

    def to_webdriver(self, platform: Platform) -> tuple[str, str]:
        if platform is Platform.ANDROID:
            return "-android uiautomator", f'new UiSelector().text("{_quoted(self.value)}")'
        return "-ios predicate string", f'label == "{_quoted(self.value)}"'

    def __str__(self) -> str:
        return f"text={self.value}"


@dataclass(frozen=True)
class TestId:
    # React Native maps testID to resource-id on Android and to the accessibility identifier on iOS.
    value: str

    __test__ = False

    def to_webdriver(self, platform: Platform) -> tuple[str, str]:
        if platform is Platform.ANDROID:
            return "id", self.value
        return "accessibility id", self.value

    def __str__(self) -> str:
        return f"id={self.value}"


Locator = Union[AccessibilityId, Text, TestId]


def parse_locator(raw: str) -> Locator:
    """
    Parse the shorthand used by scenario files:
      "~login-button"    -> AccessibilityId
      "text=Top Manga"   -> Text
      "id=MyUniqueId123" -> TestId
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("locator must be a non-empty string")
    raw = raw.strip()
    if raw.startswith("~") and len(raw) > 1:
        return AccessibilityId(raw[1:])
    if raw.startswith("text="):
        return Text(raw[len("text=") :])
    if raw.startswith("id="):
        return TestId(raw[len("id=") :])
    raise ValueError(f"Unrecognized locator {raw!r}; use '~<accessibility id>', 'text=<text>' or 'id=<test id>'")


@dataclass(frozen=True)
class ElementHandle:
    session: Session
    locator: Locator
    ref: WebDriverElementRef
    resolved_at: float = field(default_factory=time.monotonic)

    @property
    def element_id(self) -> str:
        return self.ref.element_id

    @property
    def is_valid(self) -> bool:
        return self.session.is_open and self.session.client.session_id == self.session.id

    def require_valid(self) -> None:
        if not self.is_valid:
            raise StaleElementError(
                f"Handle for {self.locator} belongs to session {self.session.id}, "
                f"which is {self.session.status.value}"
            )


def _query(session: Session, locator: Locator) -> list[WebDriverElementRef]:
    using, value = locator.to_webdriver(session.config.platform)
    return session.client.find_elements(using=using, value=value)


def find(session: Session, locator: Locator, timeout_ms: Optional[int] = None) -> ElementHandle:
    """
    Resolve `locator` to a live element, polling until it exists.

    Nothing is cached: every call re-queries the UI tree, so re-find after
    anything that may have changed the screen.
    """
    session.require_open()
    timeout_ms = session.config.find_timeout_ms if timeout_ms is None else timeout_ms
    poll_s = session.config.poll_interval_ms / 1000.0
    started = time.monotonic()
    deadline = started + timeout_ms / 1000.0

    while True:
        elements = _query(session, locator)
        if elements:
            return ElementHandle(session=session, locator=locator, ref=elements[0])
        now = time.monotonic()
        if now >= deadline:
            break
        time.sleep(min(poll_s, deadline - now))

    elapsed_ms = int((time.monotonic() - started) * 1000)
    LOG.debug("find %s timed out after %dms", locator, elapsed_ms)
    raise ElementNotFoundError(locator, elapsed_ms)


def exists(session: Session, locator: Locator) -> bool:
    session.require_open()
    return bool(_query(session, locator))


def wait_until_ready(session: Session, locator: Locator, timeout_ms: int) -> ElementHandle:
    """Bounded startup wait: the app counts as ready once `locator` resolves."""
    LOG.info("Waiting up to %dms for %s", timeout_ms, locator)
    return find(session, locator, timeout_ms=timeout_ms)
