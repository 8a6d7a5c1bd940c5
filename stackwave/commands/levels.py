"""Levels command: print the deployment waves of a project."""

from stackwave.commands import add_project_args, load_app, log_waves


def handle_levels(args):
    _, app = load_app(args, dry_run=True)
    log_waves(app)


def register_levels_command(subparsers):
    """Register the 'levels' subcommand."""
    parser = subparsers.add_parser("levels", help="Show the order in which plugins are deployed")
    add_project_args(parser)
    parser.set_defaults(func=handle_levels)
