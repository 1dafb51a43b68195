#!/usr/bin/env python3
"""
Analyze a task description and print the orchestration plan.

Usage:
    analyze_task.py "Implement login with JWT and OAuth"
    echo "Fix typo in README.md" | analyze_task.py --run

Output is a single JSON document on stdout: the analysis and planned
subtasks, plus the execution report when --run is given.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from orchestration_engine.config import EngineConfig  # noqa: E402
from orchestration_engine.orchestrator import AutoOrchestrator  # noqa: E402
from orchestration_engine.types import OrchestrationError  # noqa: E402


def analyze_task(description: str, run: bool = False, config: EngineConfig | None = None) -> dict:
    """
    Plan (and optionally execute) a task.

    Returns:
        JSON-serializable report
    """
    orchestrator = AutoOrchestrator(config=config)

    try:
        report = orchestrator.plan_task(description).to_dict()
    except OrchestrationError as e:
        return {"description": description, "error": str(e)}

    if run:
        result = asyncio.run(orchestrator.orchestrate_task(description))
        report["result"] = result.to_dict()

    return report


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Analyze and plan a task")
    parser.add_argument("task", nargs="*", help="Task description (read from stdin if omitted)")
    parser.add_argument("--run", action="store_true", help="Execute the plan")
    parser.add_argument("--verbose", action="store_true", help="Log planning and scheduling")
    parser.add_argument("--config", type=Path, help="Path to a JSON config file")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
            stream=sys.stderr,
        )

    description = " ".join(args.task) if args.task else sys.stdin.read()
    config = EngineConfig.from_env(args.config)

    report = analyze_task(description, run=args.run, config=config)
    print(json.dumps(report, indent=2))

    if "error" in report:
        return 1
    if args.run and not report["result"]["success"]:
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
