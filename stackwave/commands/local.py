"""Local commands: create or destroy the docker compose simulation of an app."""

import asyncio
import logging

from stackwave.commands import add_project_args, load_app
from stackwave.config import local_stage_config
from stackwave.deploy.local import ComposeBackend
from stackwave.stage.local import LocalStage

logger = logging.getLogger(__name__)


def _open_stage(args):
    project, app = load_app(args, dry_run=args.dry_run)
    compose = ComposeBackend(app.config.name, dry_run=args.dry_run)
    return LocalStage(local_stage_config(project, app, compose=compose))


def handle_local_create(args):
    """Handle 'local create'."""
    asyncio.run(_handle_local_create(args))


async def _handle_local_create(args):
    stage = _open_stage(args)
    await stage.create()
    for plugin in stage.app.plugins:
        metadata = plugin.get_local_metadata(require=False)
        if metadata is not None:
            logger.info(f"  {plugin.local_name}: {metadata}")


def handle_local_destroy(args):
    """Handle 'local destroy'."""
    asyncio.run(_handle_local_destroy(args))


async def _handle_local_destroy(args):
    stage = _open_stage(args)
    await stage.destroy()
    logger.info(f"Local services of '{stage.app.config.name}' destroyed.")


def register_local_command(subparsers):
    """Register the 'local' command with create/destroy action subparsers."""
    parser = subparsers.add_parser("local", help="Run the app locally with docker compose")
    actions = parser.add_subparsers(dest="action", required=True)

    create_parser = actions.add_parser("create", help="(Re)create every local service")
    add_project_args(create_parser)
    create_parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    create_parser.set_defaults(func=handle_local_create)

    destroy_parser = actions.add_parser("destroy", help="Tear down every local service")
    add_project_args(destroy_parser)
    destroy_parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    destroy_parser.set_defaults(func=handle_local_destroy)
