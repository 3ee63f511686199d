#!/usr/bin/env python3
"""Deploy and destroy the application stack for one environment."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from twinops.commands import deploy, destroy
from twinops.core import logging
from twinops.core.errors import ConfigError, DeployError
from twinops.core.runner import CommandRunner

PROG = "twinops"


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        print(f"Error: {message}", file=sys.stderr)
        raise SystemExit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=PROG,
        description="Build, provision and publish (or tear down) one environment",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print commands and cloud actions without executing them",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    deploy.register_parser(subparsers)
    destroy.register_parser(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    runner = CommandRunner(dry_run=bool(args.dry_run))

    try:
        return int(args.func(args, runner))
    except ConfigError as exc:
        logging.error(f"Configuration error: {exc}")
        return 1
    except DeployError as exc:
        logging.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
