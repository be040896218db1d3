#!/usr/bin/env python3
"""Unified test runner for the swarm coordination engine.

Usage:
    # Run fast unit tests (default)
    python scripts/run_tests.py --unit

    # Include tests marked slow (background loops, large swarms)
    python scripts/run_tests.py --all

    # Pass extra arguments through to pytest
    python scripts/run_tests.py --unit -- -k auction
"""

import argparse
import signal
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def run_unit_tests(pytest_args: list) -> int:
    """Run unit tests, skipping slow ones."""
    import pytest

    args = ["-v", "--tb=short", "-m", "unit and not slow", "tests/unit/"] + pytest_args
    print(f"\n{'='*60}")
    print("RUNNING UNIT TESTS")
    print(f"{'='*60}\n")

    return pytest.main(args)


def run_all_tests(pytest_args: list) -> int:
    """Run every test including slow ones."""
    import pytest

    print(f"\n{'='*60}")
    print("RUNNING ALL TESTS")
    print(f"{'='*60}\n")

    return pytest.main(["-v", "--tb=short", "tests/"] + pytest_args)


def main():
    parser = argparse.ArgumentParser(
        description="Unified test runner for the swarm coordination engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python scripts/run_tests.py --unit              # Unit tests only (fast)
    python scripts/run_tests.py --all               # Including slow tests
        """,
    )

    test_group = parser.add_mutually_exclusive_group()
    test_group.add_argument(
        "--unit",
        action="store_true",
        help="Run fast unit tests only",
    )
    test_group.add_argument(
        "--all",
        action="store_true",
        help="Run all tests including slow ones",
    )

    # Pytest passthrough
    parser.add_argument(
        "pytest_args",
        nargs="*",
        help="Additional arguments passed to pytest",
    )

    args = parser.parse_args()

    def signal_handler(sig, frame):
        print("\nInterrupted!")
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if args.all:
        return run_all_tests(args.pytest_args)
    return run_unit_tests(args.pytest_args)


if __name__ == "__main__":
    sys.exit(main())
