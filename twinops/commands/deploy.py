"""CLI parser for the deploy command."""

from __future__ import annotations

import argparse
from pathlib import Path

from twinops.core import logging
from twinops.core.context import ACTION_DEPLOY, load_run_context
from twinops.core.models import Environment
from twinops.core.orchestrator import execute_deploy, print_summary
from twinops.core.runner import CommandRunner


def register_parser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser(
        "deploy",
        help="Package the backend, apply infrastructure and publish the frontend",
    )
    parser.add_argument("environment", choices=Environment.names(), help="Target environment")
    parser.add_argument(
        "--project-name",
        help="Project name (default: PROJECT_NAME or 'twin')",
    )
    parser.add_argument(
        "--project-dir",
        default=".",
        help="Project root holding backend/, terraform/ and frontend/",
    )
    parser.set_defaults(func=run)


def run(args: argparse.Namespace, runner: CommandRunner) -> int:
    context = load_run_context(
        ACTION_DEPLOY,
        args.environment,
        project_name=args.project_name,
        project_root=Path(args.project_dir),
    )
    logging.info(
        f"Deploying {logging.highlight(context.project_name)} to "
        f"{logging.highlight(context.environment.value)} ({context.region})"
    )
    summary = execute_deploy(context, runner)
    print_summary(summary)
    return summary.exit_code
