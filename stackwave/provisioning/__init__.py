"""Provisioning: shell helper, stack backends, operations surface."""

from stackwave.provisioning.operations import Operations
from stackwave.provisioning.shell import run_shell_cmd
from stackwave.provisioning.stacks import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STACK_TIMEOUT,
    AwsCliStackBackend,
    InMemoryStackBackend,
    StackBackend,
)
from stackwave.provisioning.types import DeployedStack

__all__ = [
    "DeployedStack",
    "run_shell_cmd",
    "StackBackend",
    "AwsCliStackBackend",
    "InMemoryStackBackend",
    "DEFAULT_STACK_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "Operations",
]
