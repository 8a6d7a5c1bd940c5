"""CLI logging setup: plain %(message)s format, secrets redacted."""

import logging
import sys

from stackwave.redact import SecretRedactingFilter


def setup_cli_logging(verbose=False):
    """Configure the root logger for CLI commands.

    INFO by default, DEBUG with *verbose* (adds compose documents, wave
    contents and hook firing). Output goes to stdout, one message per line.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
