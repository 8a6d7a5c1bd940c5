"""Deployment backends: describe, create, update and upsert CloudFormation stacks.

``StackBackend`` owns the upsert/wait logic; concrete backends only know
how to describe a stack and how to start a create or an update.
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod

from stackwave.errors import StackOperationError, StackTimeoutError
from stackwave.provisioning.shell import run_shell_cmd
from stackwave.provisioning.types import DeployedStack

logger = logging.getLogger(__name__)

DEFAULT_STACK_TIMEOUT = 1800  # 30 minutes
DEFAULT_POLL_INTERVAL = 10
NO_UPDATES_MESSAGE = "No updates are to be performed"


def _is_failure_status(status):
    return "FAILED" in status or "ROLLBACK" in status


class StackBackend(ABC):
    """Base class for stack backends.

    Args:
        timeout: seconds to wait for a create/update to complete
        interval: seconds between status polls
    """

    def __init__(self, timeout=DEFAULT_STACK_TIMEOUT, interval=DEFAULT_POLL_INTERVAL):
        self.timeout = timeout
        self.interval = interval

    @abstractmethod
    async def describe_stack(self, name) -> DeployedStack | None:
        """Return the stack, or None when it does not exist."""

    @abstractmethod
    async def _start_create(self, name, template_body, tags):
        ...

    @abstractmethod
    async def _start_update(self, name, template_body, tags) -> bool:
        """Start an update. Returns False when there is nothing to update."""

    async def create_stack(self, name, template_body, tags=None) -> DeployedStack:
        logger.info(f"Creating stack '{name}'...")
        await self._start_create(name, template_body, tags or {})
        stack = await self.wait_for_status(name, "CREATE_COMPLETE", "create")
        logger.info(f"Stack '{name}' created.")
        return stack

    async def update_stack(self, name, template_body, tags=None) -> DeployedStack:
        logger.info(f"Updating stack '{name}'...")
        if not await self._start_update(name, template_body, tags or {}):
            logger.info(f"Stack '{name}' is up to date.")
            stack = await self.describe_stack(name)
            if stack is None:
                raise StackOperationError(name, "update", "stack disappeared")
            return stack
        stack = await self.wait_for_status(name, "UPDATE_COMPLETE", "update")
        logger.info(f"Stack '{name}' updated.")
        return stack

    async def upsert_stack(self, name, template_body, tags=None) -> DeployedStack:
        """Create the stack if absent, otherwise update it. Unchanged templates are a no-op."""
        if await self.describe_stack(name) is None:
            return await self.create_stack(name, template_body, tags)
        return await self.update_stack(name, template_body, tags)

    async def wait_for_status(self, name, target_status, operation) -> DeployedStack:
        """Poll the stack until it reaches *target_status*.

        Raises:
            StackOperationError: the stack reached a failure or rollback status,
                or disappeared.
            StackTimeoutError: *target_status* was not reached within the timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        status = None
        while True:
            stack = await self.describe_stack(name)
            if stack is None:
                raise StackOperationError(name, operation, "stack disappeared")
            status = stack.status
            if status == target_status:
                return stack
            if _is_failure_status(status):
                raise StackOperationError(name, operation, f"reached status '{status}'")
            if loop.time() >= deadline:
                raise StackTimeoutError(name, operation, self.timeout, status)
            logger.debug(f"Stack '{name}': {status}, waiting...")
            await asyncio.sleep(self.interval)


# ── AWS CLI ─────────────────────────────────────────────────────────


def _parse_stack(raw) -> DeployedStack:
    return DeployedStack(
        name=raw["StackName"],
        status=raw.get("StackStatus", ""),
        outputs={o["OutputKey"]: o.get("OutputValue", "") for o in raw.get("Outputs", [])},
        tags={t["Key"]: t.get("Value", "") for t in raw.get("Tags", [])},
        stack_id=raw.get("StackId"),
    )


class AwsCliStackBackend(StackBackend):
    """Stack backend driving ``aws cloudformation`` through the AWS CLI."""

    def __init__(self, region=None, profile=None, command=None, **kwargs):
        super().__init__(**kwargs)
        self.region = region
        self.profile = profile
        self.command = list(command or ["aws"])

    def _aws(self, *args):
        cmd = [*self.command, "cloudformation", *args, "--output", "json"]
        if self.region:
            cmd += ["--region", self.region]
        if self.profile:
            cmd += ["--profile", self.profile]
        return cmd

    @staticmethod
    def _tags_args(tags):
        if not tags:
            return []
        return ["--tags", *(f"Key={k},Value={v}" for k, v in sorted(tags.items()))]

    async def describe_stack(self, name):
        rc, stdout, stderr = await run_shell_cmd(self._aws("describe-stacks", "--stack-name", name), timeout=120)
        if rc != 0:
            if "does not exist" in stderr:
                return None
            raise StackOperationError(name, "describe", stderr.strip() or f"exit code {rc}")

        stacks = json.loads(stdout).get("Stacks", [])
        if len(stacks) != 1:
            raise StackOperationError(name, "describe", f"unexpected number of stacks: {len(stacks)}")
        return _parse_stack(stacks[0])

    async def _with_template_file(self, template_body, build_cmd):
        fd, path = tempfile.mkstemp(prefix="stackwave-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(template_body)
            return await run_shell_cmd(build_cmd(f"file://{path}"), timeout=120)
        finally:
            os.unlink(path)

    async def _start_create(self, name, template_body, tags):
        def build_cmd(template_url):
            return self._aws(
                "create-stack",
                "--stack-name", name,
                "--template-body", template_url,
                "--capabilities", "CAPABILITY_IAM", "CAPABILITY_NAMED_IAM",
                "--on-failure", "ROLLBACK",
                "--timeout-in-minutes", str(max(1, self.timeout // 60)),
                "--no-enable-termination-protection",
                *self._tags_args(tags),
            )

        rc, _, stderr = await self._with_template_file(template_body, build_cmd)
        if rc != 0:
            raise StackOperationError(name, "create", stderr.strip() or f"exit code {rc}")

    async def _start_update(self, name, template_body, tags):
        def build_cmd(template_url):
            return self._aws(
                "update-stack",
                "--stack-name", name,
                "--template-body", template_url,
                "--capabilities", "CAPABILITY_IAM", "CAPABILITY_NAMED_IAM",
                *self._tags_args(tags),
            )

        rc, _, stderr = await self._with_template_file(template_body, build_cmd)
        if rc != 0:
            if NO_UPDATES_MESSAGE in stderr:
                return False
            raise StackOperationError(name, "update", stderr.strip() or f"exit code {rc}")
        return True


# ── In-memory ───────────────────────────────────────────────────────


class InMemoryStackBackend(StackBackend):
    """Stack backend keeping stacks in a dict. Used for dry runs and tests.

    Outputs are derived from the template's ``Outputs`` section as
    ``<stack>/<output key>`` unless overridden with set_outputs().

    Args:
        delay: seconds each create/update takes
        fail_stacks: stack names whose create/update ends in a rollback
    """

    def __init__(self, delay=0.0, fail_stacks=None, label="in-memory", **kwargs):
        kwargs.setdefault("interval", 0)
        super().__init__(**kwargs)
        self.delay = delay
        self.fail_stacks = set(fail_stacks or ())
        self.label = label
        self.stacks: dict[str, DeployedStack] = {}
        self.operations: list[tuple[str, str]] = []
        self._output_overrides: dict[str, dict[str, str]] = {}

    def set_outputs(self, name, outputs):
        self._output_overrides[name] = dict(outputs)
        if name in self.stacks:
            self.stacks[name].outputs.update(outputs)

    def _outputs_for(self, name, template_body):
        template = json.loads(template_body)
        outputs = {key: f"{name}/{key}" for key in template.get("Outputs", {})}
        outputs.update(self._output_overrides.get(name, {}))
        return outputs

    async def describe_stack(self, name):
        self.operations.append(("describe", name))
        stack = self.stacks.get(name)
        if stack is None:
            return None
        return DeployedStack(
            name=stack.name,
            status=stack.status,
            outputs=dict(stack.outputs),
            template_body=stack.template_body,
            tags=dict(stack.tags),
            stack_id=stack.stack_id,
        )

    async def _start_create(self, name, template_body, tags):
        self.operations.append(("create", name))
        logger.info(f"[{self.label}] create stack {name}")
        if name in self.stacks:
            raise StackOperationError(name, "create", "stack already exists")
        if self.delay:
            await asyncio.sleep(self.delay)
        failed = name in self.fail_stacks
        self.stacks[name] = DeployedStack(
            name=name,
            status="ROLLBACK_COMPLETE" if failed else "CREATE_COMPLETE",
            outputs={} if failed else self._outputs_for(name, template_body),
            template_body=template_body,
            tags=dict(tags),
            stack_id=f"{self.label}:{name}",
        )

    async def _start_update(self, name, template_body, tags):
        self.operations.append(("update", name))
        logger.info(f"[{self.label}] update stack {name}")
        stack = self.stacks.get(name)
        if stack is None:
            raise StackOperationError(name, "update", "stack does not exist")
        if stack.template_body == template_body and stack.tags == dict(tags):
            return False
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.fail_stacks:
            stack.status = "UPDATE_ROLLBACK_COMPLETE"
            return True
        stack.status = "UPDATE_COMPLETE"
        stack.template_body = template_body
        stack.tags = dict(tags)
        stack.outputs = self._outputs_for(name, template_body)
        return True
