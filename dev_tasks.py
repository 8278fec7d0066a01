#!/usr/bin/env python3
"""
Development tasks for introql.

Usage: python dev_tasks.py <command>
"""

import os
import shutil
import subprocess
import sys

PACKAGE = "introql"


def run_command(command, check=True):
    print(f"Running: {command}")
    result = subprocess.run(command, shell=True, check=check)
    return result.returncode == 0


def clean():
    print("Cleaning build artifacts...")
    for path in ["build", "dist", ".pytest_cache", ".mypy_cache", "htmlcov"]:
        shutil.rmtree(path, ignore_errors=True)
    for name in os.listdir("."):
        if name.endswith(".egg-info"):
            shutil.rmtree(name, ignore_errors=True)
    for root, dirs, _files in os.walk("."):
        if "__pycache__" in dirs:
            shutil.rmtree(os.path.join(root, "__pycache__"), ignore_errors=True)
    print("Clean completed.")


def format_code():
    run_command(f"black {PACKAGE} tests")
    run_command(f"isort {PACKAGE} tests")


def lint():
    ok = run_command(f"mypy {PACKAGE}", check=False)
    ok = run_command(f"flake8 {PACKAGE} tests", check=False) and ok
    if not ok:
        print("Linting failed.")
        sys.exit(1)
    print("Linting passed.")


def test():
    # INTROQL_TEST_DATABASE_URL switches the integration tests to another database
    ok = run_command(f"pytest tests/ -v --cov={PACKAGE} --cov-report=term", check=False)
    if not ok:
        sys.exit(1)


def build():
    clean()
    run_command("python -m build")


def install_dev():
    run_command("pip install -e .[dev,test]")


def main():
    commands = {
        "clean": clean,
        "format": format_code,
        "lint": lint,
        "test": test,
        "build": build,
        "install-dev": install_dev,
        "all": lambda: (format_code(), lint(), test()),
    }
    if len(sys.argv) < 2 or sys.argv[1] not in commands:
        print("Usage: python dev_tasks.py <command>")
        print("Commands: " + ", ".join(commands))
        sys.exit(1)
    commands[sys.argv[1]]()


if __name__ == "__main__":
    main()
