"""
Scenarios for the React Native login/form/profile demo app.

Every screen root carries the `app-root` accessibility id, which doubles as
the readiness locator while the launch screen is still up.
"""

from __future__ import annotations

from .actions import Direction, GesturePoint
from .locators import AccessibilityId
from .orchestrator import Scenario, ScenarioContext

READY_LOCATOR = AccessibilityId("app-root")

USERNAME = "Morgan Freeman"
PASSWORD = "god"
MASKED_PASSWORD = "•" * len(PASSWORD)

# Navigation bar back button on the iOS build.
BACK_BUTTON_POINT = (21, 72)


def login(ctx: ScenarioContext) -> None:
    ctx.set_value("~username-textinput", USERNAME)
    ctx.expect_text("~username-textinput", USERNAME)

    ctx.set_value("~password-textinput", PASSWORD)
    ctx.expect_text("~password-textinput", MASKED_PASSWORD)

    ctx.tap("~login-button")


def login_reaches_form(ctx: ScenarioContext) -> None:
    login(ctx)
    ctx.expect_visible("~general-info-button")


def toggle_switch(ctx: ScenarioContext) -> None:
    ctx.expect_text("~switch-text", "Click to turn the switch ON")
    ctx.tap("~switch")
    ctx.expect_text("~switch-text", "Click to turn the switch OFF")


def navigate_and_back(ctx: ScenarioContext) -> None:
    ctx.tap("~general-info-button")
    ctx.expect_visible("~scrollviewarea")

    x, y = BACK_BUTTON_POINT
    ctx.gesture(
        "~app-root",
        [GesturePoint.press(x, y), GesturePoint.wait(1000), GesturePoint.release()],
    )
    ctx.expect_visible("~general-info-button")


def swipe_slides(ctx: ScenarioContext) -> None:
    ctx.tap("~general-info-button")
    ctx.swipe("~slides", Direction.LEFT)
    ctx.swipe("~slides", Direction.RIGHT)
    ctx.expect_visible("~slides")


def scroll_to_end(ctx: ScenarioContext) -> None:
    ctx.tap("~general-info-button")
    ctx.scroll_to_end("~scrollviewarea", Direction.DOWN, amplitude=1.0)
    ctx.expect_visible("~endscreen")
    ctx.expect_text("~endscreen", "End of screen")


def demo_suite() -> list[Scenario]:
    return [
        Scenario("login", login_reaches_form),
        Scenario("switch toggle", toggle_switch, setup=(login,)),
        Scenario("navigate and back", navigate_and_back, setup=(login,)),
        Scenario("swipe slides", swipe_slides, setup=(login,)),
        Scenario("scroll to end", scroll_to_end, setup=(login,)),
    ]
