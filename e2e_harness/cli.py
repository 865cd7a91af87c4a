#!/usr/bin/env python3
"""
CLI entry point for the E2E harness.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional

from e2e_harness.log_setup import setup_logging
from e2e_harness.mobile.appium_http_client import AppiumHTTPError
from e2e_harness.mobile.config import load_session_config
from e2e_harness.mobile.errors import CapabilityError, HarnessError
from e2e_harness.mobile.orchestrator import Orchestrator, Scenario, SuiteReport
from e2e_harness.mobile.scenario_file import ScenarioFileError, load_scenario_file

USAGE_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="e2e-harness",
        description="Run end-to-end mobile scenarios against an Appium server.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    parser.add_argument("--log-file", default="", help="Also write logs to this file.")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", required=True, help="Path to a session config JSON file.")
        p.add_argument(
            "--report-path",
            default="",
            help="Write a JSON report of scenario outcomes to this path.",
        )
        p.add_argument(
            "--artifacts-dir",
            default="",
            help="Save a screenshot and page source here for failed scenarios.",
        )

    run = sub.add_parser("run", help="Run the scenarios of a scenario JSON file.")
    add_common(run)
    run.add_argument("--scenarios", required=True, help="Path to a scenario suite JSON file.")
    run.add_argument(
        "--only",
        action="append",
        default=[],
        help="Run only the named scenario (repeatable).",
    )

    demo = sub.add_parser("demo", help="Run the built-in React Native demo suite.")
    add_common(demo)

    dump = sub.add_parser("dump-strings", help="Open a session and print the visible strings.")
    dump.add_argument("--config", required=True, help="Path to a session config JSON file.")
    dump.add_argument("--max-strings", type=int, default=200, help="Maximum strings to print (default: 200).")
    return parser


def _run_suite(
    args: argparse.Namespace,
    scenarios: list[Scenario],
    *,
    ready=None,
    ready_timeout_ms: Optional[int] = None,
) -> int:
    config = load_session_config(args.config)
    orchestrator = Orchestrator(
        config,
        ready_locator=ready,
        ready_timeout_ms=ready_timeout_ms,
        artifacts_dir=args.artifacts_dir or None,
    )
    report: SuiteReport = orchestrator.run(scenarios)

    print("\n=== Report ===")
    for line in report.format_lines():
        print(line)
    if args.report_path:
        out = report.write_json(args.report_path)
        print(f"Report: {out}")
    return report.exit_code


def _cmd_run(args: argparse.Namespace) -> int:
    suite = load_scenario_file(args.scenarios)
    scenarios = suite.select(args.only)
    return _run_suite(args, scenarios, ready=suite.ready, ready_timeout_ms=suite.ready_timeout_ms)


def _cmd_demo(args: argparse.Namespace) -> int:
    from e2e_harness.mobile.demo_scenarios import READY_LOCATOR, demo_suite

    return _run_suite(args, demo_suite(), ready=READY_LOCATOR)


def _cmd_dump_strings(args: argparse.Namespace) -> int:
    from e2e_harness.mobile.page_source import extract_visible_strings
    from e2e_harness.mobile.session import SessionManager

    if args.max_strings <= 0:
        print("ERROR: --max-strings must be > 0", file=sys.stderr)
        return USAGE_ERROR

    config = load_session_config(args.config)
    with SessionManager().session(config) as session:
        strings = extract_visible_strings(session.client.get_page_source())[: args.max_strings]

    print("\n=== Visible strings ===")
    if not strings:
        print("(none found)")
    for i, s in enumerate(strings, 1):
        print(f"{i:>3}. {s}")
    return 0


_COMMANDS = {
    "run": _cmd_run,
    "demo": _cmd_demo,
    "dump-strings": _cmd_dump_strings,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(args.log_level, args.log_file or None)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return USAGE_ERROR

    try:
        return _COMMANDS[args.command](args)
    except (FileNotFoundError, IsADirectoryError, ValueError, ScenarioFileError, CapabilityError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return USAGE_ERROR
    except (HarnessError, AppiumHTTPError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
