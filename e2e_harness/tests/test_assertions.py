"""Tests for the assertion layer."""
import pytest

from e2e_harness.mobile.actions import ActionExecutor
from e2e_harness.mobile.assertions import (
    Assertion,
    Matcher,
    check,
    expect_contains,
    expect_text,
    expect_visible,
    text_of,
    visibility_of,
)
from e2e_harness.mobile.errors import AssertionMismatchError, StaleElementError
from e2e_harness.mobile.locators import AccessibilityId, find


def test_check_equals_passes_silently():
    check(Assertion(lambda: "Login", "Login"))


def test_mismatch_reports_expected_and_actual():
    with pytest.raises(AssertionMismatchError) as exc_info:
        check(Assertion(lambda: "Click to turn the switch ON", "Click to turn the switch OFF", description="switch"))
    err = exc_info.value
    assert err.expected == "Click to turn the switch OFF"
    assert err.actual == "Click to turn the switch ON"
    assert err.matcher == "equals"
    assert str(err).startswith("switch: equals failed.")


def test_mismatch_is_an_assertion_error():
    """Test runners that only know AssertionError still see a failure."""
    with pytest.raises(AssertionError):
        check(Assertion(lambda: 1, 2))


def test_contains_matcher():
    check(Assertion(lambda: "End of screen", "of scr", Matcher.CONTAINS))
    with pytest.raises(AssertionMismatchError):
        check(Assertion(lambda: "End of screen", "Start", Matcher.CONTAINS))
    with pytest.raises(AssertionMismatchError):
        check(Assertion(lambda: None, "x", Matcher.CONTAINS))


def test_visible_matcher_compares_truthiness():
    check(Assertion(lambda: True, True, Matcher.VISIBLE))
    check(Assertion(lambda: False, False, Matcher.VISIBLE))
    with pytest.raises(AssertionMismatchError):
        check(Assertion(lambda: False, True, Matcher.VISIBLE))


def test_actual_is_produced_once():
    calls = []

    def produce():
        calls.append(1)
        return "x"

    check(Assertion(produce, "x"))
    assert calls == [1]


def test_expect_text_against_device(session):
    button = find(session, AccessibilityId("login-button"))
    expect_text(button, "Login")
    expect_contains(button, "Log")
    with pytest.raises(AssertionMismatchError) as exc_info:
        expect_text(button, "Logout")
    assert exc_info.value.description == "text of ~login-button"


def test_visibility_follows_screen_position(session):
    """Elements scrolled out of the viewport are not visible even though they exist."""
    executor = ActionExecutor()
    executor.tap(find(session, AccessibilityId("login-button")))
    executor.tap(find(session, AccessibilityId("general-info-button")))

    endscreen = find(session, AccessibilityId("endscreen"))
    assert visibility_of(endscreen)() is False
    expect_visible(endscreen, False)
    with pytest.raises(AssertionMismatchError):
        expect_visible(endscreen)

    expect_visible(find(session, AccessibilityId("scrollviewarea")))


def test_producers_refuse_stale_handles(manager, ios_config):
    session = manager.open(ios_config)
    button = find(session, AccessibilityId("login-button"))
    producer = text_of(button)
    manager.close(session)

    with pytest.raises(StaleElementError):
        producer()
