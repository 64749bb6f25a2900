#!/usr/bin/env python3
"""Run formatters, linters and the test suite in one go.

Steps, in order:
1. black (check only)
2. isort (check only)
3. ruff
4. pylint over the three packages and main.py
5. pytest

Every step runs even when an earlier one fails; a summary follows.
"""

from pathlib import Path
import subprocess
import sys

ROOT = Path(__file__).parent

CHECKS: list[tuple[list[str], str]] = [
    (["black", ".", "--check"], "black"),
    (["isort", ".", "--check-only"], "isort"),
    (["ruff", "check", "."], "ruff"),
    (["pylint", "app", "core", "infrastructure", "main.py"], "pylint"),
    (["pytest", "-q"], "pytest"),
]


def run_check(module_args: list[str], description: str) -> tuple[bool, str]:
    """Run `python -m <module_args>` from the project root."""
    cmd = [sys.executable, "-m", *module_args]
    print(f"\n{'=' * 60}")
    print(f"{description}: {' '.join(cmd)}")
    print("=" * 60)

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False, cwd=ROOT)
    except OSError as ex:
        print(f"[E] could not start: {ex}")
        return False, str(ex)

    output = result.stdout + result.stderr
    success = result.returncode == 0
    print("[+] passed" if success else "[-] failed")
    if output.strip():
        print(output)
    return success, output


def main() -> int:
    results = [(description, *run_check(cmd, description)) for cmd, description in CHECKS]

    print(f"\n{'=' * 60}")
    print("summary")
    print("=" * 60)
    for description, success, _ in results:
        print(f"{description:<8} {'ok' if success else 'FAILED'}")

    return 0 if all(success for _, success, _ in results) else 1


if __name__ == "__main__":
    sys.exit(main())
