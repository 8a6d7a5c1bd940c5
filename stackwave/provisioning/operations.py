"""Operations surface: side-channel services available to plugins and hooks.

Encryption and object storage go through the AWS CLI; builds and version
stamps go through local commands. Every mutating operation honors dry_run.
"""

import base64
import logging
import os
import tempfile
from datetime import datetime, timezone

from stackwave.errors import CommandError
from stackwave.provisioning.shell import run_shell_cmd
from stackwave.provisioning.stacks import AwsCliStackBackend

logger = logging.getLogger(__name__)


class Operations:
    """Shared operational services.

    Args:
        stacks: StackBackend used by cloud stages (default: AwsCliStackBackend)
        region: AWS region passed to the CLI
        profile: AWS CLI profile
        dry_run: log mutating commands instead of running them
        aws_command: AWS CLI executable, e.g. ["aws"]
    """

    def __init__(self, stacks=None, region=None, profile=None, dry_run=False, aws_command=None):
        self.region = region
        self.profile = profile
        self.dry_run = dry_run
        self.aws_command = list(aws_command or ["aws"])
        self.stacks = stacks or AwsCliStackBackend(region=region, profile=profile, command=self.aws_command)

    def _aws(self, service, *args):
        cmd = [*self.aws_command, service, *args]
        if self.region:
            cmd += ["--region", self.region]
        if self.profile:
            cmd += ["--profile", self.profile]
        return cmd

    async def _run_checked(self, command, **kwargs):
        rc, stdout, stderr = await run_shell_cmd(command, **kwargs)
        if rc != 0:
            raise CommandError(" ".join(command), rc, stderr)
        return stdout

    async def _kms(self, operation, blob_flag, data: bytes, query, key_alias):
        fd, path = tempfile.mkstemp(prefix="stackwave-kms-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            command = self._aws(
                "kms",
                operation,
                "--key-id", f"alias/{key_alias}",
                blob_flag, f"fileb://{path}",
                "--query", query,
                "--output", "text",
            )
            stdout = await self._run_checked(command, dry_run=self.dry_run, timeout=120)
        finally:
            os.unlink(path)
        return base64.b64decode(stdout.strip())

    # ── Encryption ──────────────────────────────────────────────────

    async def encrypt(self, key_alias, data: bytes) -> bytes:
        """Encrypt *data* with the KMS key ``alias/<key_alias>``."""
        logger.debug(f"Encrypting {len(data)} bytes with key alias '{key_alias}'")
        return await self._kms("encrypt", "--plaintext", data, "CiphertextBlob", key_alias)

    async def decrypt(self, key_alias, data: bytes) -> bytes:
        logger.debug(f"Decrypting {len(data)} bytes with key alias '{key_alias}'")
        return await self._kms("decrypt", "--ciphertext-blob", data, "Plaintext", key_alias)

    # ── Object storage ──────────────────────────────────────────────

    async def upload_file(self, bucket, key, content_type, body: bytes):
        """Upload *body* to ``s3://<bucket>/<key>``."""
        logger.info(f"Uploading s3://{bucket}/{key} ({len(body)} bytes)")
        command = self._aws("s3", "cp", "-", f"s3://{bucket}/{key}", "--content-type", content_type)
        await self._run_checked(command, dry_run=self.dry_run, timeout=600, input=body)

    # ── Builds and versions ─────────────────────────────────────────

    async def run_build_command(self, command, cwd=None, env=None, timeout=1800):
        """Run an external build command, streaming its output. Raises CommandError on failure."""
        logger.info(f"Building: {' '.join(command)}")
        merged_env = {**os.environ, **env} if env else None
        return await self._run_checked(
            command, dry_run=self.dry_run, timeout=timeout, cwd=cwd, env=merged_env, log_output=True
        )

    async def generate_commit_version(self, cwd=None) -> str:
        """Short hash of the current git commit."""
        # Read-only, so it also runs in dry-run mode.
        stdout = await self._run_checked(["git", "rev-parse", "--short", "HEAD"], timeout=30, cwd=cwd)
        return stdout.strip()

    async def generate_timestamp_and_commit_version(self, cwd=None) -> str:
        """Version of the form ``20240102T030405-abc1234`` (UTC timestamp, commit)."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        return f"{timestamp}-{await self.generate_commit_version(cwd)}"
