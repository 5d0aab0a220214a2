#!/usr/bin/env python3
# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Run all CI checks locally: format, lint, type check, tests, example forms and build."""

import argparse
import subprocess
import sys
import time
from pathlib import Path

from yachalk import chalk

# ###############
# Public Interface
# ###############

STEPS: list[tuple[str, list[str]]] = [
    ("Format check", ["uv", "run", "ruff", "format", "--check", "src/", "tests/", "tools/"]),
    ("Lint", ["uv", "run", "ruff", "check", "src/", "tests/", "tools/"]),
    ("Type check", ["uv", "run", "ty", "check", "src/"]),
    ("Tests", ["uv", "run", "pytest", "--cov=semform", "--cov-report=term-missing"]),
    ("Build", ["uv", "build"]),
]

EXAMPLE_FORMS_DIR = "docs/forms"


def main() -> int:
    """Run the selected CI steps and report results."""
    parser = argparse.ArgumentParser(description="Run the semform CI checks.")
    parser.add_argument(
        "--only",
        action="append",
        default=[],
        metavar="STEP",
        help="Run only the named step (may be repeated)",
    )
    args = parser.parse_args()

    steps = [*STEPS, *_example_form_steps()]
    if args.only:
        wanted = {name.lower() for name in args.only}
        steps = [step for step in steps if step[0].lower() in wanted]
        if not steps:
            print(chalk.red(f"No CI step named {', '.join(args.only)}"))
            return 1

    results: list[tuple[str, bool, float]] = []
    for name, cmd in steps:
        sep = chalk.blue("=" * 60)
        print(f"\n{sep}")
        print(chalk.blue(name))
        print(sep)
        start = time.monotonic()
        proc = subprocess.run(cmd, cwd=_repo_root())
        elapsed = time.monotonic() - start
        results.append((name, proc.returncode == 0, elapsed))

    _print_summary(results)
    return 0 if all(passed for _, passed, _ in results) else 1


# ################
# Implementation
# ################


def _repo_root() -> Path:
    return Path(__file__).parent.parent


def _example_form_steps() -> list[tuple[str, list[str]]]:
    """One ``semform check`` step per example form configuration."""
    forms = sorted((_repo_root() / EXAMPLE_FORMS_DIR).glob("*.yaml"))
    return [
        (f"Example form {form.stem}", ["uv", "run", "semform", "check", str(form.relative_to(_repo_root()))])
        for form in forms
    ]


def _print_summary(results: list[tuple[str, bool, float]]) -> None:
    sep = "=" * 60
    print(f"\n{chalk.blue(sep)}")
    print(chalk.blue("  Summary"))
    print(chalk.blue(sep))
    for name, passed, elapsed in results:
        if passed:
            print(chalk.green(f"  {chalk.green('PASS')}  {name} ({elapsed:.1f}s)"))
        else:
            print(chalk.red(f"  {chalk.red('FAIL')}  {name} ({elapsed:.1f}s)"))
    print()


if __name__ == "__main__":
    sys.exit(main())
