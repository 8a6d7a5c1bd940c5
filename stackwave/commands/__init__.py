"""Shared CLI plumbing: project arguments and app construction."""

import logging

from stackwave.config import build_app, load_project
from stackwave.errors import plugin_label
from stackwave.provisioning.operations import Operations
from stackwave.provisioning.stacks import InMemoryStackBackend

logger = logging.getLogger(__name__)


def add_project_args(parser):
    """Arguments every command accepts."""
    parser.add_argument(
        "--project",
        default=".",
        help="Path to stackwave.yaml or the directory holding it (default: current directory)",
    )
    parser.add_argument("--profile", default=None, help="AWS CLI profile")


def make_operations(project, args, dry_run=False):
    """Operations for a command. Dry runs plan stacks in memory and log every mutating command."""
    if dry_run:
        return Operations(stacks=InMemoryStackBackend(label="dry-run"), region=project.region, dry_run=True)
    return Operations(region=project.region, profile=args.profile)


def load_app(args, dry_run=False):
    """Load the project named by ``--project`` and build its App.

    Returns:
        (project, app) tuple.
    """
    project = load_project(args.project)
    app = build_app(project, operations=make_operations(project, args, dry_run=dry_run))
    return project, app


def log_waves(app):
    for index, wave in enumerate(app.waves):
        logger.info(f"Wave {index + 1}: {', '.join(plugin_label(p) for p in wave)}")
