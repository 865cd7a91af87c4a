from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Union

from .config import Platform
from .locators import ElementHandle, Locator, find
from .page_source import ui_snapshot
from .session import Session

LOG = logging.getLogger(__name__)

DEFAULT_MOVE_DURATION_MS = 250
# Fraction of the element kept clear at each edge when synthesizing a drag.
EDGE_MARGIN = 0.1


class GestureKind(str, Enum):
    PRESS = "press"
    WAIT = "wait"
    MOVE_TO = "moveTo"
    RELEASE = "release"


@dataclass(frozen=True)
class GesturePoint:
    kind: GestureKind
    x: Optional[int] = None
    y: Optional[int] = None
    duration_ms: Optional[int] = None

    @classmethod
    def press(cls, x: int, y: int) -> "GesturePoint":
        return cls(GestureKind.PRESS, x=x, y=y)

    @classmethod
    def wait(cls, duration_ms: int) -> "GesturePoint":
        return cls(GestureKind.WAIT, duration_ms=duration_ms)

    @classmethod
    def move_to(cls, x: int, y: int, duration_ms: int = DEFAULT_MOVE_DURATION_MS) -> "GesturePoint":
        return cls(GestureKind.MOVE_TO, x=x, y=y, duration_ms=duration_ms)

    @classmethod
    def release(cls) -> "GesturePoint":
        return cls(GestureKind.RELEASE)


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def parse(cls, raw: Any) -> "Direction":
        if isinstance(raw, Direction):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError as e:
            raise ValueError("direction must be one of up/down/left/right") from e


@dataclass(frozen=True)
class SetValue:
    text: str


@dataclass(frozen=True)
class Tap:
    pass


@dataclass(frozen=True)
class Gesture:
    points: tuple[GesturePoint, ...]


@dataclass(frozen=True)
class Scroll:
    direction: Direction
    amplitude: float = 1.0


@dataclass(frozen=True)
class Swipe:
    direction: Direction


Action = Union[SetValue, Tap, Gesture, Scroll, Swipe]


def _require_xy(point: GesturePoint, index: int) -> tuple[int, int]:
    if point.x is None or point.y is None:
        raise ValueError(f"gesture point {index} ({point.kind.value}) needs x and y")
    return int(point.x), int(point.y)


def gesture_to_w3c(points: Sequence[GesturePoint]) -> dict[str, Any]:
    """
    Translate gesture points, in order, into one W3C touch pointer input source.
    """
    if not points:
        raise ValueError("gesture needs at least one point")
    steps: list[dict[str, Any]] = []
    for index, point in enumerate(points):
        if point.kind is GestureKind.PRESS:
            x, y = _require_xy(point, index)
            steps.append({"type": "pointerMove", "duration": 0, "origin": "viewport", "x": x, "y": y})
            steps.append({"type": "pointerDown", "button": 0})
        elif point.kind is GestureKind.WAIT:
            if point.duration_ms is None or point.duration_ms < 0:
                raise ValueError(f"gesture point {index} (wait) needs duration_ms >= 0")
            steps.append({"type": "pause", "duration": int(point.duration_ms)})
        elif point.kind is GestureKind.MOVE_TO:
            x, y = _require_xy(point, index)
            duration = DEFAULT_MOVE_DURATION_MS if point.duration_ms is None else int(point.duration_ms)
            steps.append({"type": "pointerMove", "duration": duration, "origin": "viewport", "x": x, "y": y})
        elif point.kind is GestureKind.RELEASE:
            steps.append({"type": "pointerUp", "button": 0})
        else:
            raise ValueError(f"unknown gesture point kind: {point.kind!r}")
    return {
        "type": "pointer",
        "id": "finger1",
        "parameters": {"pointerType": "touch"},
        "actions": steps,
    }


def dispatch_gesture(session: Session, points: Sequence[GesturePoint]) -> None:
    source = gesture_to_w3c(points)
    session.client.perform_actions([source])
    session.client.release_actions()


def _split_amplitude(amplitude: float) -> list[float]:
    if amplitude <= 0:
        raise ValueError("amplitude must be > 0")
    strokes = max(1, math.ceil(amplitude))
    return [amplitude / strokes] * strokes


def _drag(rect: dict[str, int], finger: Direction, fraction: float) -> tuple[tuple[int, int], tuple[int, int]]:
    """Start/end points of a finger moving `finger`-wards across `fraction` of the usable rect."""
    x, y, width, height = rect["x"], rect["y"], rect["width"], rect["height"]
    mid_x = x + width // 2
    mid_y = y + height // 2
    usable_w = width * (1 - 2 * EDGE_MARGIN)
    usable_h = height * (1 - 2 * EDGE_MARGIN)
    low_x, high_x = x + int(width * EDGE_MARGIN), x + int(width * (1 - EDGE_MARGIN))
    low_y, high_y = y + int(height * EDGE_MARGIN), y + int(height * (1 - EDGE_MARGIN))

    if finger is Direction.UP:
        return (mid_x, high_y), (mid_x, high_y - int(usable_h * fraction))
    if finger is Direction.DOWN:
        return (mid_x, low_y), (mid_x, low_y + int(usable_h * fraction))
    if finger is Direction.LEFT:
        return (high_x, mid_y), (high_x - int(usable_w * fraction), mid_y)
    return (low_x, mid_y), (low_x + int(usable_w * fraction), mid_y)


_OPPOSITE = {
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
    Direction.LEFT: Direction.RIGHT,
    Direction.RIGHT: Direction.LEFT,
}


class TouchGestureStrategy:
    """Scroll and swipe by replaying synthesized touch-point drags over the element."""

    name = "touch"

    def scroll(self, handle: ElementHandle, direction: Direction, fraction: float) -> None:
        # Revealing content below means dragging the finger up.
        rect = handle.session.client.get_element_rect(handle.ref)
        start, end = _drag(rect, _OPPOSITE[direction], fraction)
        dispatch_gesture(
            handle.session,
            [
                GesturePoint.press(*start),
                GesturePoint.wait(100),
                GesturePoint.move_to(*end, duration_ms=500),
                GesturePoint.release(),
            ],
        )

    def swipe(self, handle: ElementHandle, direction: Direction) -> None:
        rect = handle.session.client.get_element_rect(handle.ref)
        start, end = _drag(rect, direction, 1.0)
        dispatch_gesture(
            handle.session,
            [
                GesturePoint.press(*start),
                GesturePoint.wait(100),
                GesturePoint.move_to(*end, duration_ms=300),
                GesturePoint.release(),
            ],
        )


class NativeGestureStrategy:
    """Scroll and swipe through the driver's own `mobile:` gesture commands."""

    name = "native"

    def __init__(self, *, scroll_command: str, swipe_command: str, takes_percent: bool) -> None:
        self.scroll_command = scroll_command
        self.swipe_command = swipe_command
        self.takes_percent = takes_percent

    def _args(self, handle: ElementHandle, direction: Direction, fraction: float) -> dict[str, Any]:
        args: dict[str, Any] = {"elementId": handle.element_id, "direction": direction.value}
        if self.takes_percent:
            args["percent"] = round(fraction, 3)
        return args

    def scroll(self, handle: ElementHandle, direction: Direction, fraction: float) -> None:
        handle.session.client.execute_mobile(self.scroll_command, self._args(handle, direction, fraction))

    def swipe(self, handle: ElementHandle, direction: Direction) -> None:
        handle.session.client.execute_mobile(self.swipe_command, self._args(handle, direction, 1.0))


TOUCH_STRATEGY = TouchGestureStrategy()

NATIVE_STRATEGIES: dict[Platform, NativeGestureStrategy] = {
    # XCUITest: direction names the content movement, one page per call.
    Platform.IOS: NativeGestureStrategy(
        scroll_command="mobile: scroll",
        swipe_command="mobile: swipe",
        takes_percent=False,
    ),
    # UiAutomator2: percent is the share of the element size to travel.
    Platform.ANDROID: NativeGestureStrategy(
        scroll_command="mobile: scrollGesture",
        swipe_command="mobile: swipeGesture",
        takes_percent=True,
    ),
}


def strategy_for(session: Session) -> Union[TouchGestureStrategy, NativeGestureStrategy]:
    if session.config.gesture_strategy == "touch":
        return TOUCH_STRATEGY
    return NATIVE_STRATEGIES[session.config.platform]


class ActionExecutor:
    """
    Performs actions against located elements. Holds no state between calls;
    every call checks that the handle's session is still open.
    """

    def set_value(self, handle: ElementHandle, text: str) -> None:
        handle.require_valid()
        client = handle.session.client
        client.clear(handle.ref)
        client.send_keys(handle.ref, text=text)

    def tap(self, handle: ElementHandle) -> None:
        handle.require_valid()
        handle.session.client.click(handle.ref)

    def gesture(self, handle: ElementHandle, points: Sequence[GesturePoint]) -> None:
        handle.require_valid()
        dispatch_gesture(handle.session, points)

    def scroll(self, handle: ElementHandle, direction: Direction, amplitude: float = 1.0) -> None:
        handle.require_valid()
        direction = Direction.parse(direction)
        strategy = strategy_for(handle.session)
        strokes = _split_amplitude(amplitude)
        LOG.debug("scroll %s x%d via %s strategy", direction.value, len(strokes), strategy.name)
        for fraction in strokes:
            strategy.scroll(handle, direction, fraction)

    def swipe(self, handle: ElementHandle, direction: Direction) -> None:
        handle.require_valid()
        strategy_for(handle.session).swipe(handle, Direction.parse(direction))

    def perform(self, handle: ElementHandle, action: Action) -> None:
        if isinstance(action, SetValue):
            self.set_value(handle, action.text)
        elif isinstance(action, Tap):
            self.tap(handle)
        elif isinstance(action, Gesture):
            self.gesture(handle, action.points)
        elif isinstance(action, Scroll):
            self.scroll(handle, action.direction, action.amplitude)
        elif isinstance(action, Swipe):
            self.swipe(handle, action.direction)
        else:
            raise TypeError(f"Unsupported action: {action!r}")

    def scroll_to_end(
        self,
        session: Session,
        locator: Locator,
        direction: Direction = Direction.DOWN,
        amplitude: float = 1.0,
        *,
        max_scrolls: int = 10,
        timeout_ms: Optional[int] = None,
    ) -> int:
        """
        Scroll the container until a scroll leaves the visible strings unchanged.

        Returns how many scrolls changed the screen.
        """
        if max_scrolls <= 0:
            raise ValueError("max_scrolls must be > 0")
        before = ui_snapshot(session.client.get_page_source())
        changed = 0
        for _ in range(max_scrolls):
            handle = find(session, locator, timeout_ms=timeout_ms)
            self.scroll(handle, direction, amplitude)
            after = ui_snapshot(session.client.get_page_source())
            if after == before:
                return changed
            changed += 1
            before = after
        LOG.warning("%s still changing after %d scrolls", locator, max_scrolls)
        return changed
