"""Local composition backend: apply and tear down a compose document via docker compose."""

import logging
import os

from stackwave.errors import CommandError
from stackwave.provisioning.shell import run_shell_cmd

logger = logging.getLogger(__name__)

APPLY_TIMEOUT = 1800
TEAR_DOWN_TIMEOUT = 600


class ComposeBackend:
    """Runs ``docker compose`` with the document piped on stdin.

    Args:
        project: compose project name (the app name)
        command: compose executable, e.g. ["docker", "compose"]
        dry_run: log commands instead of running them
    """

    def __init__(self, project, command=None, dry_run=False):
        self.project = project
        self.command = list(command or ["docker", "compose"])
        self.dry_run = dry_run

    def _base_args(self):
        return [*self.command, "-p", self.project, "-f", "-"]

    async def _run(self, spec, args, timeout):
        document = spec.to_yaml()
        logger.debug(document)
        command = [*self._base_args(), *args]
        rc, _, stderr = await run_shell_cmd(
            command,
            dry_run=self.dry_run,
            timeout=timeout,
            input=document,
            log_output=True,
        )
        if rc != 0:
            raise CommandError(" ".join(command), rc, stderr)

    async def apply(self, spec):
        """Build and start every service in *spec* as one unit."""
        logger.info(f"Starting services ({len(spec.services)}) for project '{self.project}'...")
        await self._run(spec, ["up", "--build", "-d", "--remove-orphans"], APPLY_TIMEOUT)

    async def tear_down(self, spec):
        """Stop and remove every service, volume and locally built image of the project."""
        # docker compose refuses to run "down" when a build context is missing.
        for context in spec.build_contexts():
            if not self.dry_run:
                os.makedirs(context, exist_ok=True)
        logger.info(f"Tearing down project '{self.project}'...")
        await self._run(spec, ["down", "-v", "--rmi", "local", "--remove-orphans"], TEAR_DOWN_TIMEOUT)
