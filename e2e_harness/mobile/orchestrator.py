from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from .actions import ActionExecutor, Direction, GesturePoint
from .assertions import Assertion, check, expect_contains, expect_text, expect_visible, text_of
from .config import SessionConfig
from .locators import ElementHandle, Locator, find, parse_locator, wait_until_ready
from .session import Session, SessionManager

LOG = logging.getLogger(__name__)

LocatorLike = Union[Locator, str]


class Outcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"


class ScenarioState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"
    REPORTED = "reported"


_TRANSITIONS = {
    ScenarioState.PENDING: {ScenarioState.RUNNING},
    ScenarioState.RUNNING: {ScenarioState.PASSED, ScenarioState.FAILED, ScenarioState.ERRORED},
    ScenarioState.PASSED: {ScenarioState.REPORTED},
    ScenarioState.FAILED: {ScenarioState.REPORTED},
    ScenarioState.ERRORED: {ScenarioState.REPORTED},
    ScenarioState.REPORTED: set(),
}


@dataclass
class ScenarioRun:
    name: str
    state: ScenarioState = ScenarioState.PENDING
    history: list[ScenarioState] = field(default_factory=lambda: [ScenarioState.PENDING])

    def advance(self, target: ScenarioState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Scenario {self.name!r}: illegal transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)


@dataclass(frozen=True)
class ScenarioResult:
    name: str
    outcome: Outcome
    failure_detail: Optional[str] = None
    duration_s: float = 0.0
    artifacts: tuple[str, ...] = ()


@dataclass
class SuiteReport:
    results: list[ScenarioResult] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.outcome is Outcome.PASSED)

    @property
    def exit_code(self) -> int:
        return 0 if all(r.outcome is Outcome.PASSED for r in self.results) else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "total": len(self.results),
            "passed": self.passed,
            "failed": sum(1 for r in self.results if r.outcome is Outcome.FAILED),
            "errored": sum(1 for r in self.results if r.outcome is Outcome.ERRORED),
            "results": [
                {**asdict(r), "outcome": r.outcome.value, "artifacts": list(r.artifacts)} for r in self.results
            ],
        }

    def write_json(self, path: Union[str, Path]) -> Path:
        out = Path(path).resolve()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        return out

    def format_lines(self) -> list[str]:
        lines = []
        for r in self.results:
            lines.append(f"{r.outcome.value.upper():<8} {r.name} ({r.duration_s:.1f}s)")
            if r.failure_detail:
                lines.append(f"         {r.failure_detail}")
        lines.append(f"{self.passed}/{len(self.results)} scenario(s) passed")
        return lines


class ScenarioContext:
    """
    What a scenario body gets to work with: the open session plus helpers that
    re-resolve locators on every call.
    """

    def __init__(self, session: Session, actions: Optional[ActionExecutor] = None) -> None:
        self.session = session
        self.actions = actions or ActionExecutor()

    def _locator(self, locator: LocatorLike) -> Locator:
        return parse_locator(locator) if isinstance(locator, str) else locator

    def find(self, locator: LocatorLike, timeout_ms: Optional[int] = None) -> ElementHandle:
        return find(self.session, self._locator(locator), timeout_ms=timeout_ms)

    def set_value(self, locator: LocatorLike, text: str, *, timeout_ms: Optional[int] = None) -> None:
        self.actions.set_value(self.find(locator, timeout_ms), text)

    def tap(self, locator: LocatorLike, *, timeout_ms: Optional[int] = None) -> None:
        self.actions.tap(self.find(locator, timeout_ms))

    def gesture(
        self, locator: LocatorLike, points: Sequence[GesturePoint], *, timeout_ms: Optional[int] = None
    ) -> None:
        self.actions.gesture(self.find(locator, timeout_ms), points)

    def scroll(
        self,
        locator: LocatorLike,
        direction: Union[Direction, str],
        amplitude: float = 1.0,
        *,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self.actions.scroll(self.find(locator, timeout_ms), Direction.parse(direction), amplitude)

    def swipe(self, locator: LocatorLike, direction: Union[Direction, str], *, timeout_ms: Optional[int] = None) -> None:
        self.actions.swipe(self.find(locator, timeout_ms), Direction.parse(direction))

    def scroll_to_end(
        self,
        locator: LocatorLike,
        direction: Union[Direction, str] = Direction.DOWN,
        amplitude: float = 1.0,
        *,
        max_scrolls: int = 10,
        timeout_ms: Optional[int] = None,
    ) -> int:
        return self.actions.scroll_to_end(
            self.session,
            self._locator(locator),
            Direction.parse(direction),
            amplitude,
            max_scrolls=max_scrolls,
            timeout_ms=timeout_ms,
        )

    def text(self, locator: LocatorLike, *, timeout_ms: Optional[int] = None) -> str:
        return text_of(self.find(locator, timeout_ms))()

    def expect_text(self, locator: LocatorLike, expected: str, *, timeout_ms: Optional[int] = None) -> None:
        expect_text(self.find(locator, timeout_ms), expected)

    def expect_contains(self, locator: LocatorLike, expected: str, *, timeout_ms: Optional[int] = None) -> None:
        expect_contains(self.find(locator, timeout_ms), expected)

    def expect_visible(self, locator: LocatorLike, visible: bool = True, *, timeout_ms: Optional[int] = None) -> None:
        expect_visible(self.find(locator, timeout_ms), visible)

    def expect(self, assertion: Assertion) -> None:
        check(assertion)


ScenarioStep = Callable[[ScenarioContext], None]


@dataclass(frozen=True)
class Scenario:
    name: str
    body: ScenarioStep
    setup: tuple[ScenarioStep, ...] = ()


def _timestamp() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S-%f")


def _artifact_path(*, artifacts_dir: Path, stem: str, ext: str) -> Path:
    safe_stem = "".join(c if c.isalnum() or c in ("-", "_") else "_" for c in stem.strip())
    if not safe_stem:
        safe_stem = "artifact"
    filename = f"{safe_stem}_{_timestamp()}.{ext.lstrip('.')}"
    return artifacts_dir / filename


class Orchestrator:
    """
    Runs scenarios one after another, each in its own session.

    Assertion mismatches mark a scenario failed, anything else marks it
    errored; either way the session is closed before the next scenario opens.
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        manager: Optional[SessionManager] = None,
        ready_locator: Optional[LocatorLike] = None,
        ready_timeout_ms: Optional[int] = None,
        artifacts_dir: Optional[Union[str, Path]] = None,
        echo: bool = True,
    ) -> None:
        self.config = config
        self.manager = manager or SessionManager()
        self.ready_locator = parse_locator(ready_locator) if isinstance(ready_locator, str) else ready_locator
        self.ready_timeout_ms = ready_timeout_ms if ready_timeout_ms is not None else config.find_timeout_ms
        self.artifacts_dir = Path(artifacts_dir).resolve() if artifacts_dir else None
        self.echo = echo
        self.actions = ActionExecutor()
        self.runs: list[ScenarioRun] = []

    def run(self, scenarios: Iterable[Scenario]) -> SuiteReport:
        report = SuiteReport()
        for scenario in scenarios:
            result = self.run_scenario(scenario)
            report.results.append(result)
        return report

    def run_scenario(self, scenario: Scenario) -> ScenarioResult:
        run = ScenarioRun(scenario.name)
        self.runs.append(run)
        run.advance(ScenarioState.RUNNING)
        if self.echo:
            print(f"\n=== {scenario.name} ===")

        started = time.time()
        session: Optional[Session] = None
        artifacts: list[Path] = []
        outcome = Outcome.ERRORED
        detail: Optional[str] = None
        try:
            try:
                session = self.manager.open(self.config)
                if self.ready_locator is not None:
                    wait_until_ready(session, self.ready_locator, self.ready_timeout_ms)
                ctx = ScenarioContext(session, self.actions)
                for step in scenario.setup:
                    step(ctx)
                scenario.body(ctx)
                outcome = Outcome.PASSED
            except AssertionError as e:
                outcome, detail = Outcome.FAILED, str(e) or "assertion failed"
            except Exception as e:
                LOG.debug("Scenario %r errored", scenario.name, exc_info=True)
                outcome, detail = Outcome.ERRORED, f"{type(e).__name__}: {e}"

            if outcome is not Outcome.PASSED:
                artifacts = self._capture_artifacts(session, scenario.name)
        finally:
            close_error = self._teardown(session)

        if close_error is not None and outcome is Outcome.PASSED:
            outcome, detail = Outcome.ERRORED, f"teardown failed: {type(close_error).__name__}: {close_error}"

        run.advance(ScenarioState(outcome.value))
        result = ScenarioResult(
            name=scenario.name,
            outcome=outcome,
            failure_detail=detail,
            duration_s=round(time.time() - started, 3),
            artifacts=tuple(str(p) for p in artifacts),
        )
        if self.echo:
            print(f"  {outcome.value.upper()}" + (f": {detail}" if detail else ""))
        run.advance(ScenarioState.REPORTED)
        return result

    def _teardown(self, session: Optional[Session]) -> Optional[Exception]:
        try:
            self.manager.close(session)
        except Exception as e:
            LOG.error("Failed to close session %s: %s", session.id if session else None, e)
            return e
        return None

    def _capture_artifacts(self, session: Optional[Session], name: str) -> list[Path]:
        if self.artifacts_dir is None or session is None or not session.is_open:
            return []
        try:
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            LOG.warning("Could not create artifacts dir %s for %r: %s", self.artifacts_dir, name, e)
            return []

        saved: list[Path] = []
        try:
            screenshot = _artifact_path(artifacts_dir=self.artifacts_dir, stem=name, ext="png")
            screenshot.write_bytes(session.client.get_screenshot_png_bytes())
            saved.append(screenshot)
        except Exception as e:
            LOG.warning("Could not save screenshot for %r: %s", name, e)
        try:
            source = _artifact_path(artifacts_dir=self.artifacts_dir, stem=name, ext="xml")
            source.write_text(session.client.get_page_source(), encoding="utf-8")
            saved.append(source)
        except Exception as e:
            LOG.warning("Could not save page source for %r: %s", name, e)
        return saved
