#!/usr/bin/env python3
"""Stackwave: deploy plugin-composed apps locally or to the cloud. CLI entrypoint."""

import argparse
import logging
import sys

from stackwave.commands.cloud import register_cloud_command
from stackwave.commands.levels import register_levels_command
from stackwave.commands.local import register_local_command
from stackwave.errors import StackwaveError
from stackwave.logging_setup import setup_cli_logging

logger = logging.getLogger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Deploy plugin-composed apps locally or to the cloud")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_levels_command(subparsers)
    register_local_command(subparsers)
    register_cloud_command(subparsers)

    args = parser.parse_args(argv)
    setup_cli_logging(verbose=args.verbose)
    try:
        args.func(args)
    except StackwaveError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
