from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from .actions import Direction, GesturePoint, GestureKind
from .config import load_json_file, require_key
from .errors import HarnessError
from .locators import Locator, parse_locator
from .orchestrator import Scenario, ScenarioContext, ScenarioStep


class ScenarioFileError(HarnessError):
    pass


STEP_ACTIONS = frozenset(
    {
        "sleep",
        "set_value",
        "tap",
        "wait_for",
        "gesture",
        "scroll",
        "scroll_to_end",
        "swipe",
        "assert_text",
        "assert_contains",
        "assert_visible",
    }
)


@dataclass(frozen=True)
class ScenarioSuite:
    path: Path
    scenarios: list[Scenario]
    ready: Optional[Locator] = None
    ready_timeout_ms: Optional[int] = None

    def select(self, names: Optional[list[str]]) -> list[Scenario]:
        if not names:
            return list(self.scenarios)
        known = {s.name for s in self.scenarios}
        unknown = [n for n in names if n not in known]
        if unknown:
            raise ScenarioFileError(f"{self.path}: unknown scenario(s): {', '.join(unknown)}")
        return [s for s in self.scenarios if s.name in names]


def _require(obj: dict[str, Any], key: str, *, context: str) -> Any:
    try:
        return require_key(obj, key, context=context)
    except ValueError as e:
        raise ScenarioFileError(str(e)) from e


def _as_non_empty_str(value: Any, *, field: str, context: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ScenarioFileError(f"{context}: '{field}' must be a non-empty string")
    return value.strip()


def _as_positive_int(value: Any, *, field: str, context: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as e:
        raise ScenarioFileError(f"{context}: '{field}' must be an integer") from e
    if parsed <= 0:
        raise ScenarioFileError(f"{context}: '{field}' must be > 0")
    return parsed


def _as_non_negative_float(value: Any, *, field: str, context: str) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as e:
        raise ScenarioFileError(f"{context}: '{field}' must be a number") from e
    if parsed < 0:
        raise ScenarioFileError(f"{context}: '{field}' must be >= 0")
    return parsed


def _optional_timeout(step: dict[str, Any], *, context: str) -> Optional[int]:
    if step.get("timeout_ms") is None:
        return None
    return int(_as_non_negative_float(step["timeout_ms"], field="timeout_ms", context=context))


def _parse_locator(raw: Any, *, context: str) -> Locator:
    text = _as_non_empty_str(raw, field="locator", context=context)
    try:
        return parse_locator(text)
    except ValueError as e:
        raise ScenarioFileError(f"{context}: {e}") from e


def _parse_direction(raw: Any, *, context: str) -> Direction:
    try:
        return Direction.parse(raw)
    except ValueError as e:
        raise ScenarioFileError(f"{context}: {e}") from e


def _parse_points(raw: Any, *, context: str) -> list[GesturePoint]:
    if not isinstance(raw, list) or not raw:
        raise ScenarioFileError(f"{context}: 'points' must be a non-empty list")
    points: list[GesturePoint] = []
    for idx, item in enumerate(raw, 1):
        point_context = f"{context}: points[{idx}]"
        if not isinstance(item, dict):
            raise ScenarioFileError(f"{point_context}: must be an object")
        try:
            kind = GestureKind(_as_non_empty_str(item.get("kind"), field="kind", context=point_context))
        except ValueError as e:
            raise ScenarioFileError(f"{point_context}: kind must be press/wait/moveTo/release") from e
        x = item.get("x")
        y = item.get("y")
        if kind in (GestureKind.PRESS, GestureKind.MOVE_TO) and (x is None or y is None):
            raise ScenarioFileError(f"{point_context}: {kind.value} needs x and y")
        duration = item.get("duration_ms")
        if kind is GestureKind.WAIT and duration is None:
            raise ScenarioFileError(f"{point_context}: wait needs duration_ms")
        points.append(
            GesturePoint(
                kind,
                x=int(x) if x is not None else None,
                y=int(y) if y is not None else None,
                duration_ms=int(duration) if duration is not None else None,
            )
        )
    return points


def _compile_step(step: Any, *, context: str) -> ScenarioStep:
    if not isinstance(step, dict):
        raise ScenarioFileError(f"{context}: step must be an object")
    action = _as_non_empty_str(step.get("action"), field="action", context=context).lower()
    if action not in STEP_ACTIONS:
        raise ScenarioFileError(f"{context}: unknown action {action!r}")
    timeout_ms = _optional_timeout(step, context=context)

    if action == "sleep":
        seconds = _as_non_negative_float(step.get("seconds"), field="seconds", context=context)
        return lambda ctx: time.sleep(seconds)

    locator = _parse_locator(_require(step, "locator", context=context), context=context)

    if action == "set_value":
        text = step.get("text")
        if not isinstance(text, str):
            raise ScenarioFileError(f"{context}: 'text' must be a string")
        return lambda ctx: ctx.set_value(locator, text, timeout_ms=timeout_ms)

    if action == "tap":
        return lambda ctx: ctx.tap(locator, timeout_ms=timeout_ms)

    if action == "wait_for":
        return lambda ctx: ctx.find(locator, timeout_ms=timeout_ms)

    if action == "gesture":
        points = _parse_points(_require(step, "points", context=context), context=context)
        return lambda ctx: ctx.gesture(locator, points, timeout_ms=timeout_ms)

    if action in {"scroll", "scroll_to_end"}:
        direction = _parse_direction(step.get("direction", "down"), context=context)
        amplitude = _as_non_negative_float(step.get("amplitude", 1.0), field="amplitude", context=context)
        if amplitude == 0:
            raise ScenarioFileError(f"{context}: 'amplitude' must be > 0")
        if action == "scroll":
            return lambda ctx: ctx.scroll(locator, direction, amplitude, timeout_ms=timeout_ms)
        max_scrolls = _as_positive_int(step.get("max_scrolls", 10), field="max_scrolls", context=context)
        return lambda ctx: ctx.scroll_to_end(
            locator, direction, amplitude, max_scrolls=max_scrolls, timeout_ms=timeout_ms
        )

    if action == "swipe":
        direction = _parse_direction(_require(step, "direction", context=context), context=context)
        return lambda ctx: ctx.swipe(locator, direction, timeout_ms=timeout_ms)

    if action in {"assert_text", "assert_contains"}:
        expected = step.get("expected")
        if not isinstance(expected, str):
            raise ScenarioFileError(f"{context}: 'expected' must be a string")
        if action == "assert_text":
            return lambda ctx: ctx.expect_text(locator, expected, timeout_ms=timeout_ms)
        return lambda ctx: ctx.expect_contains(locator, expected, timeout_ms=timeout_ms)

    if action == "assert_visible":
        visible = step.get("visible", True)
        if not isinstance(visible, bool):
            raise ScenarioFileError(f"{context}: 'visible' must be true or false")
        return lambda ctx: ctx.expect_visible(locator, visible, timeout_ms=timeout_ms)

    raise ScenarioFileError(f"{context}: unknown action {action!r}")


def _compile_steps(raw: Any, *, context: str, allow_empty: bool = False) -> list[ScenarioStep]:
    if not isinstance(raw, list) or (not raw and not allow_empty):
        raise ScenarioFileError(f"{context}: steps must be a non-empty list")
    steps = []
    for idx, step in enumerate(raw, 1):
        name = step.get("name") if isinstance(step, dict) else None
        step_context = f"{context}: steps[{idx}]" + (f" ({name})" if name else "")
        steps.append(_compile_step(step, context=step_context))
    return steps


def _sequence(steps: list[ScenarioStep]) -> Callable[[ScenarioContext], None]:
    def _run(ctx: ScenarioContext) -> None:
        for step in steps:
            step(ctx)

    return _run


def load_scenario_file(path: str) -> ScenarioSuite:
    """
    Load a declarative scenario suite from JSON.

    Schema (fail-fast):
      {
        "ready": "~app-root",
        "ready_timeout_ms": 10000,
        "setup": [{"action": "tap", "locator": "~login-button"}],
        "scenarios": [
          {"name": "switch toggle", "steps": [
            {"action": "assert_text", "locator": "~switch-text", "expected": "Click to turn the switch ON"},
            {"action": "tap", "locator": "~switch"}
          ]}
        ]
      }
    """
    try:
        data = load_json_file(path)
        scenarios_raw = require_key(data, "scenarios", context=path)
    except ValueError as e:
        raise ScenarioFileError(str(e)) from e
    if not isinstance(scenarios_raw, list) or not scenarios_raw:
        raise ScenarioFileError(f"{path}: 'scenarios' must be a non-empty list")

    setup = tuple(_compile_steps(data.get("setup", []), context=f"{path}: setup", allow_empty=True))

    ready = None
    if data.get("ready") is not None:
        ready = _parse_locator(data["ready"], context=f"{path}: ready")
    ready_timeout_ms = None
    if data.get("ready_timeout_ms") is not None:
        ready_timeout_ms = _as_positive_int(data["ready_timeout_ms"], field="ready_timeout_ms", context=path)

    scenarios: list[Scenario] = []
    seen: set[str] = set()
    for idx, raw in enumerate(scenarios_raw, 1):
        context = f"{path}: scenarios[{idx}]"
        if not isinstance(raw, dict):
            raise ScenarioFileError(f"{context}: must be an object")
        name = _as_non_empty_str(raw.get("name"), field="name", context=context)
        if name in seen:
            raise ScenarioFileError(f"{context}: duplicate scenario name {name!r}")
        seen.add(name)
        steps = _compile_steps(_require(raw, "steps", context=context), context=context)
        scenarios.append(Scenario(name=name, body=_sequence(steps), setup=setup))

    return ScenarioSuite(path=Path(path).resolve(), scenarios=scenarios, ready=ready, ready_timeout_ms=ready_timeout_ms)
