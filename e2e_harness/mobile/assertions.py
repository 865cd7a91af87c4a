from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .errors import AssertionMismatchError
from .locators import ElementHandle


class Matcher(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    VISIBLE = "visible"


@dataclass(frozen=True)
class Assertion:
    actual_producer: Callable[[], Any]
    expected: Any
    matcher: Matcher = Matcher.EQUALS
    description: Optional[str] = None


def _matches(matcher: Matcher, actual: Any, expected: Any) -> bool:
    if matcher is Matcher.EQUALS:
        return actual == expected
    if matcher is Matcher.CONTAINS:
        try:
            return expected in actual
        except TypeError:
            return False
    if matcher is Matcher.VISIBLE:
        return bool(actual) == bool(expected)
    raise ValueError(f"Unknown matcher: {matcher!r}")


def check(assertion: Assertion) -> None:
    """
    Fetch the actual value once and compare it with the expectation.

    There is no implicit waiting here; sequence actions before checking.
    """
    actual = assertion.actual_producer()
    if not _matches(assertion.matcher, actual, assertion.expected):
        raise AssertionMismatchError(
            expected=assertion.expected,
            actual=actual,
            matcher=assertion.matcher.value,
            description=assertion.description,
        )


def text_of(handle: ElementHandle) -> Callable[[], str]:
    def _produce() -> str:
        handle.require_valid()
        return handle.session.client.get_element_text(handle.ref)

    return _produce


def _intersects(rect: dict[str, int], window: dict[str, int]) -> bool:
    return (
        rect["width"] > 0
        and rect["height"] > 0
        and rect["x"] < window["x"] + window["width"]
        and rect["x"] + rect["width"] > window["x"]
        and rect["y"] < window["y"] + window["height"]
        and rect["y"] + rect["height"] > window["y"]
    )


def visibility_of(handle: ElementHandle) -> Callable[[], bool]:
    """Rendered (as the driver reports it) and at least partly inside the viewport."""

    def _produce() -> bool:
        handle.require_valid()
        client = handle.session.client
        if not client.is_element_displayed(handle.ref):
            return False
        return _intersects(client.get_element_rect(handle.ref), client.get_window_rect())

    return _produce


def expect_text(handle: ElementHandle, expected: str, *, description: Optional[str] = None) -> None:
    check(Assertion(text_of(handle), expected, Matcher.EQUALS, description or f"text of {handle.locator}"))


def expect_contains(handle: ElementHandle, expected: str, *, description: Optional[str] = None) -> None:
    check(Assertion(text_of(handle), expected, Matcher.CONTAINS, description or f"text of {handle.locator}"))


def expect_visible(handle: ElementHandle, visible: bool = True, *, description: Optional[str] = None) -> None:
    check(Assertion(visibility_of(handle), visible, Matcher.VISIBLE, description or f"visibility of {handle.locator}"))
