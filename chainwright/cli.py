"""CLI entry point for chainwright."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from chainwright.registry import BROWSERS, DRIVERS, REPORTERS
from chainwright.runner import EXIT_FAILED, Runner


def _split(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_vars(value: str | None) -> dict[str, str]:
    """``KEY=VAL,OTHER=VAL`` -> dict."""
    parsed: dict[str, str] = {}
    for pair in _split(value) or []:
        key, sep, val = pair.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {pair!r}")
        parsed[key.strip()] = val.strip()
    return parsed


def build_options(args: argparse.Namespace) -> dict:
    options: dict = {
        "tests": list(args.tests),
        "driver": _split(args.driver),
        "browser": _split(args.browser),
        "reporter": _split(args.reporter),
        "baseUrl": args.baseurl,
        "config": args.config,
    }
    options.update(_parse_vars(args.vars))
    return {k: v for k, v in options.items() if v is not None}


async def cmd_run(args: argparse.Namespace) -> int:
    """Run test files."""
    runner = Runner(build_options(args))
    return await runner.run()


async def cmd_host(args: argparse.Namespace) -> int:
    """Serve local browsers to remote runs."""
    options = {"remote": args.port or True, "secret": args.secret, "config": args.config}
    runner = Runner({k: v for k, v in options.items() if v is not None})
    return await runner.run()


def main():
    parser = argparse.ArgumentParser(description="chainwright browser test runner")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    # Run tests
    run_parser = subparsers.add_parser("run", help="Run test files")
    run_parser.add_argument("tests", nargs="*", help="Test files to run")
    run_parser.add_argument("-d", "--driver", help=f"Comma separated drivers ({', '.join(DRIVERS.names())})")
    run_parser.add_argument("-b", "--browser", help=f"Comma separated browsers ({', '.join(BROWSERS.names())})")
    run_parser.add_argument("-r", "--reporter", help=f"Comma separated reporters ({', '.join(REPORTERS.names())})")
    run_parser.add_argument("-u", "--baseurl", help="Base URL prefixed to paths passed to open()")
    run_parser.add_argument("-c", "--config", help="Config file (default: Chainfile.json)")
    run_parser.add_argument("--vars", help="Extra config values: KEY=VAL,KEY2=VAL2")

    # Tunnel host
    host_parser = subparsers.add_parser("host", help="Let remote runs drive browsers on this machine")
    host_parser.add_argument("-p", "--port", type=int, help="Port to listen on (default: 9020)")
    host_parser.add_argument("-s", "--secret", help="Shared secret remote runs must send")
    host_parser.add_argument("-c", "--config", help="Config file (default: Chainfile.json)")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.command == "run":
        try:
            code = asyncio.run(cmd_run(args))
        except argparse.ArgumentTypeError as exc:
            parser.error(str(exc))
    elif args.command == "host":
        code = asyncio.run(cmd_host(args))
    else:
        parser.print_help()
        code = EXIT_FAILED
    sys.exit(code)


if __name__ == "__main__":
    main()
