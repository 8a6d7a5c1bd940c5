"""Cloud commands: deploy a stage or show what is deployed on it."""

import asyncio
import logging

from stackwave.commands import add_project_args, load_app, log_waves
from stackwave.config import cloud_stage_config
from stackwave.errors import plugin_label
from stackwave.stage.cloud import CloudStage

logger = logging.getLogger(__name__)

# Version recorded by read-only commands, which never stamp artifacts.
STATUS_VERSION = "status"


async def _resolve_version(args, project, app):
    if args.version:
        return args.version
    configured = project.stage_settings(args.stage).get("version")
    if configured:
        return str(configured)
    return await app.operations.generate_timestamp_and_commit_version(cwd=project.root_dir)


def handle_cloud_deploy(args):
    """Handle 'cloud deploy'."""
    asyncio.run(_handle_cloud_deploy(args))


async def _handle_cloud_deploy(args):
    project, app = load_app(args, dry_run=args.dry_run)
    version = await _resolve_version(args, project, app)
    stage = await CloudStage.open(cloud_stage_config(project, app, args.stage, version=version))

    prefix = "[dry-run] " if args.dry_run else ""
    logger.info(f"{prefix}Deploying '{app.config.name}' to stage '{stage.name}' ({stage.mode.value}, version {version})")
    log_waves(app)
    await stage.deploy(deadline=args.deadline)

    for plugin in app.plugins:
        logger.info(f"  {plugin_label(plugin)}: {stage.plugin_state(plugin)}")


def handle_cloud_status(args):
    """Handle 'cloud status'."""
    asyncio.run(_handle_cloud_status(args))


async def _handle_cloud_status(args):
    project, app = load_app(args)
    version = project.stage_settings(args.stage).get("version") or STATUS_VERSION
    stage = await CloudStage.open(cloud_stage_config(project, app, args.stage, version=str(version)))

    logger.info(f"Stage '{stage.name}' ({stage.mode.value}):")
    for plugin in app.plugins:
        logger.info(f"  {plugin_label(plugin)} [{plugin.stack_name}]: {stage.plugin_state(plugin)}")
    if stage.is_deployed():
        logger.info("All plugins deployed.")


def register_cloud_command(subparsers):
    """Register the 'cloud' command with deploy/status action subparsers."""
    parser = subparsers.add_parser("cloud", help="Deploy the app to a cloud stage")
    actions = parser.add_subparsers(dest="action", required=True)

    deploy_parser = actions.add_parser("deploy", help="Deploy every plugin, wave by wave")
    add_project_args(deploy_parser)
    deploy_parser.add_argument("--stage", required=True, help="Stage name from the project file")
    deploy_parser.add_argument(
        "--version",
        default=None,
        help="Version stamp (default: from the project file, else <UTC timestamp>-<git commit>)",
    )
    deploy_parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Fail if the whole deploy takes longer than this many seconds",
    )
    deploy_parser.add_argument("--dry-run", action="store_true", help="Plan stacks in memory and print commands")
    deploy_parser.set_defaults(func=handle_cloud_deploy)

    status_parser = actions.add_parser("status", help="Show which plugins are deployed on a stage")
    add_project_args(status_parser)
    status_parser.add_argument("--stage", required=True, help="Stage name from the project file")
    status_parser.set_defaults(func=handle_cloud_status)
