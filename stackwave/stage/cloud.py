"""Cloud stage: deploy every plugin as its own CloudFormation stack.

Plugins are deployed wave by wave. Plugins inside a wave do not depend on
each other and are deployed concurrently (bounded by max_concurrency);
the next wave starts only after every plugin of the current one has been
hydrated, so it can resolve the exports of everything deployed before it.
"""

import asyncio
import logging
import posixpath
from dataclasses import dataclass

from stackwave.errors import DeployTimeoutError, ExportNotFoundError, NotDeployedError, plugin_label
from stackwave.plugin import Event
from stackwave.stage import Stage, StageConfig, StageMode, StageTarget
from stackwave.validation import require, require_resource_name

logger = logging.getLogger(__name__)


@dataclass
class CloudStageConfig(StageConfig):
    """Cloud stage config.

    ``max_concurrency`` bounds the number of plugins deployed at the same
    time inside one wave (None: the whole wave).
    """

    name: str = ""
    version: str = ""
    mode: StageMode = StageMode.STAGING
    max_concurrency: int | None = None

    def validate(self):
        super().validate()
        require_resource_name(self.name, "CloudStageConfig.name")
        require(self.name != StageTarget.LOCAL.value, "CloudStageConfig.name: 'local' is reserved for the local stage")
        require(bool(self.version), "CloudStageConfig.version: required")
        self.mode = StageMode.parse(self.mode)
        require(
            self.max_concurrency is None or (isinstance(self.max_concurrency, int) and self.max_concurrency >= 1),
            f"CloudStageConfig.max_concurrency: must be a positive integer, got {self.max_concurrency!r}",
        )


class CloudStage(Stage):
    """One named cloud environment (e.g. "staging" or "prod")."""

    def __init__(self, config: CloudStageConfig):
        config.validate()
        super().__init__(config)
        # Plugins known to have no cloud footprint on this stage.
        self._local_only: set = set()
        for wave in self.app.waves:
            for plugin in wave:
                plugin.configure(self)

    @classmethod
    async def open(cls, config: CloudStageConfig) -> "CloudStage":
        """Create the stage and hydrate the plugins whose stacks already exist."""
        stage = cls(config)
        await stage.refresh()
        return stage

    @property
    def name(self):
        return self.config.name

    @property
    def target(self):
        return StageTarget.CLOUD

    @property
    def mode(self):
        return self.config.mode

    @property
    def version(self) -> str:
        return self.config.version

    @property
    def stacks(self):
        return self.app.operations.stacks

    @property
    def dry_run(self) -> bool:
        return self.app.operations.dry_run

    def as_cloud(self):
        return self

    def artifacts_key_prefix(self, plugin, *parts) -> str:
        """Object key prefix for the plugin's build artifacts: ``<stage>-<version>-<kind>[-<instance>]/...``."""
        head = [self.name, self.version, plugin.name]
        if plugin.instance_name:
            head.append(plugin.instance_name)
        return posixpath.join("-".join(head), *parts)

    # ── State ───────────────────────────────────────────────────────

    async def refresh(self):
        """Hydrate every plugin from its existing stack, wave by wave."""
        for wave in self.app.waves:
            stacks = await asyncio.gather(*(self._describe(plugin) for plugin in wave))
            for plugin, stack in zip(wave, stacks):
                if stack is not None and stack.has_outputs:
                    plugin.update_cloud_metadata(stack)
                    logger.debug(f"{plugin_label(plugin)}: hydrated from stack '{stack.name}' ({stack.status})")
                elif self._has_no_footprint(plugin):
                    self._local_only.add(plugin)

    async def _describe(self, plugin):
        self._bind(plugin)
        return await self.stacks.describe_stack(plugin.stack_name)

    def _has_no_footprint(self, plugin) -> bool:
        try:
            return plugin.get_cloud_template(self.build_path_for_plugin(plugin)) is None
        except (ExportNotFoundError, NotDeployedError):
            # Needs exports of a dependency that is not deployed yet.
            return False

    def plugin_state(self, plugin) -> str:
        """"deployed", "no cloud footprint" or "not deployed"."""
        if plugin in self._local_only:
            return "no cloud footprint"
        self._bind(plugin)
        return "deployed" if plugin.is_deployed() else "not deployed"

    def is_deployed(self) -> bool:
        """True when every plugin with a cloud footprint has been hydrated."""
        return all(self.plugin_state(plugin) != "not deployed" for plugin in self.app.plugins)

    # ── Deploy ──────────────────────────────────────────────────────

    async def deploy(self, deadline=None):
        """Deploy every plugin in wave order.

        Args:
            deadline: optional bound in seconds for the whole pass

        Raises:
            StackOperationError: a stack failed; later waves are not started.
            DeployTimeoutError: *deadline* expired; outstanding waits are cancelled.
        """
        try:
            async with asyncio.timeout(deadline) as cm:
                await self._deploy_waves()
        except TimeoutError:
            # Only the deadline maps to DeployTimeoutError; a plugin's own TimeoutError propagates.
            if cm.expired():
                raise DeployTimeoutError(self.name, deadline) from None
            raise

    async def _deploy_waves(self):
        waves = self.app.waves
        for index, wave in enumerate(waves):
            logger.info(f"Deploying wave {index + 1}/{len(waves)}: {', '.join(plugin_label(p) for p in wave)}")
            sem = asyncio.Semaphore(self.config.max_concurrency or len(wave))

            async def _deploy_with_semaphore(plugin):
                async with sem:
                    await self._deploy_plugin(plugin)

            results = await asyncio.gather(
                *(_deploy_with_semaphore(p) for p in wave),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                for failure in failures[1:]:
                    logger.error(f"Also failed in wave {index + 1}: {failure}")
                raise failures[0]
        logger.info(f"Stage '{self.name}' deployed ({self.version})")

    async def _deploy_plugin(self, plugin):
        plugin.configure(self)
        build_dir = self.build_path_for_plugin(plugin)

        template = plugin.get_cloud_template(build_dir)
        if template is None:
            logger.debug(f"{plugin_label(plugin)}: no cloud footprint, skipping")
            self._local_only.add(plugin)
            return

        await plugin.event_hook(Event.CLOUD_BEFORE_DEPLOY, build_dir)
        stack = await self.stacks.upsert_stack(plugin.stack_name, template.to_json(), {"Stage": self.name})
        plugin.update_cloud_metadata(stack)
        await plugin.event_hook(Event.CLOUD_AFTER_DEPLOY, build_dir)
