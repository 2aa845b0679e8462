#!/usr/bin/env python3
"""
Command-line interface for the library event services.

Usage:
    uv run python cli.py [command] [options]

Commands:
    demo        Run demo scenarios
    test        Run the test suite
    serve       Start the API server

Examples:
    uv run python cli.py demo new-book
    uv run python cli.py demo availability
    uv run python cli.py demo all
    uv run python cli.py serve
"""

import argparse
import asyncio
import subprocess
import sys

SCENARIOS = ["new-book", "dedup", "availability", "broker-down", "all"]


def run_demo(scenario: str) -> None:
    """Run a demo scenario."""
    from event_driven import demo

    demo.configure_logging()
    if scenario == "new-book":
        asyncio.run(demo.run_category_subscription_demo())
    elif scenario == "dedup":
        asyncio.run(demo.run_dedup_demo())
    elif scenario == "availability":
        asyncio.run(demo.run_availability_demo())
    elif scenario == "broker-down":
        asyncio.run(demo.run_broker_down_demo())
    elif scenario == "all":
        asyncio.run(demo.run_all_demos())
    else:
        print(f"Unknown scenario: {scenario}")
        sys.exit(1)


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = ["uv", "run", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = ["uv", "run", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Library event services CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo new-book
  %(prog)s demo broker-down
  %(prog)s demo all
  %(prog)s test -v
  %(prog)s serve --reload
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demo scenarios")
    demo_parser.add_argument(
        "scenario",
        choices=SCENARIOS,
        help="Which scenario to run",
    )

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.command == "demo":
        run_demo(args.scenario)
    elif args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
