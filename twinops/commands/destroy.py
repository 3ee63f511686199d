"""CLI parser for the destroy command."""

from __future__ import annotations

import argparse
from pathlib import Path

from twinops.core import logging
from twinops.core.context import ACTION_DESTROY, load_run_context
from twinops.core.models import Environment
from twinops.core.orchestrator import execute_destroy, print_summary
from twinops.core.runner import CommandRunner


def register_parser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser(
        "destroy",
        help="Empty provisioned buckets and destroy the environment's infrastructure",
    )
    parser.add_argument("environment", choices=Environment.names(), help="Target environment")
    parser.add_argument(
        "project_name",
        nargs="?",
        help="Project name (default: PROJECT_NAME or 'twin')",
    )
    parser.add_argument(
        "--project-dir",
        default=".",
        help="Project root holding backend/ and terraform/",
    )
    parser.set_defaults(func=run)


def run(args: argparse.Namespace, runner: CommandRunner) -> int:
    context = load_run_context(
        ACTION_DESTROY,
        args.environment,
        project_name=args.project_name,
        project_root=Path(args.project_dir),
    )
    logging.info(
        f"Destroying {logging.highlight(context.project_name)} "
        f"({logging.highlight(context.environment.value)})"
    )
    logging.info(f"Project root: {context.project_root}")
    summary = execute_destroy(context, runner)
    print_summary(summary)
    if summary.ok:
        print("")
        print("Optional cleanup:")
        print("   terraform workspace select default")
        print(f"   terraform workspace delete {context.environment.value}")
    return summary.exit_code
