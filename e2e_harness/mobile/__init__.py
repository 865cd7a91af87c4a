"""
Session-driven E2E harness for mobile apps behind an Appium/WebDriver server.

Scenarios open one session each, drive the UI through locators, actions and
gestures, check what the app shows, and always close the session afterwards.
"""

from .actions import ActionExecutor, Direction, GestureKind, GesturePoint
from .appium_http_client import AppiumHTTPClient, AppiumHTTPError, WebDriverElementRef
from .assertions import Assertion, Matcher, check
from .config import Platform, SessionConfig, load_session_config
from .errors import (
    AssertionMismatchError,
    CapabilityError,
    ElementNotFoundError,
    HarnessError,
    SessionBusyError,
    SessionConnectionError,
    SessionNotReadyError,
    StaleElementError,
)
from .locators import AccessibilityId, ElementHandle, TestId, Text, find, parse_locator
from .orchestrator import Orchestrator, Outcome, Scenario, ScenarioContext, ScenarioResult, SuiteReport
from .session import Session, SessionManager, SessionStatus

__all__ = [
    "AccessibilityId",
    "ActionExecutor",
    "AppiumHTTPClient",
    "AppiumHTTPError",
    "Assertion",
    "AssertionMismatchError",
    "CapabilityError",
    "Direction",
    "ElementHandle",
    "ElementNotFoundError",
    "GestureKind",
    "GesturePoint",
    "HarnessError",
    "Matcher",
    "Orchestrator",
    "Outcome",
    "Platform",
    "Scenario",
    "ScenarioContext",
    "ScenarioResult",
    "Session",
    "SessionBusyError",
    "SessionConfig",
    "SessionConnectionError",
    "SessionManager",
    "SessionNotReadyError",
    "SessionStatus",
    "StaleElementError",
    "SuiteReport",
    "TestId",
    "Text",
    "WebDriverElementRef",
    "check",
    "find",
    "load_session_config",
    "parse_locator",
]
