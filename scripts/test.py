#!/usr/bin/env python3
"""Install the package with its dev extra and run the test suite.

Extra arguments are passed through to pytest, e.g. ``scripts/test.py -k queue``.
"""

from __future__ import annotations

import os
import subprocess
import sys


def run(command: list[str], env: dict[str, str] | None = None) -> None:
    print(f"+ {' '.join(command)}", flush=True)
    subprocess.run(command, check=True, env=env)


def main(argv: list[str]) -> int:
    skip_install = "--no-install" in argv
    pytest_args = [arg for arg in argv if arg != "--no-install"]
    env = {**os.environ, "AFTERHANDLER_LOG_TO_FILE": "off"}
    try:
        if not skip_install:
            run([sys.executable, "-m", "pip", "install", "-e", ".[dev]"])
        run([sys.executable, "-m", "pytest", "-q", *pytest_args], env=env)
    except subprocess.CalledProcessError as exc:
        return exc.returncode or 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
