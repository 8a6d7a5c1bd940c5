"""Local stage: simulate the app with docker compose.

Construction configures every plugin and lets it add its services to one
shared ComposeSpec (Built). ``create()`` tears down whatever is running,
fires the before-create hooks, applies the spec and fires the
after-create hooks (Created). ``destroy()`` tears everything down
(Destroyed).
"""

import logging
from dataclasses import dataclass
from enum import Enum

from stackwave.deploy.compose import ComposeSpec
from stackwave.deploy.local import ComposeBackend
from stackwave.errors import plugin_label
from stackwave.plugin import Event
from stackwave.stage import Stage, StageConfig, StageMode, StageTarget

logger = logging.getLogger(__name__)


class LocalState(Enum):
    UNBUILT = "unbuilt"
    BUILT = "built"
    CREATED = "created"
    DESTROYED = "destroyed"


@dataclass
class LocalStageConfig(StageConfig):
    """Local stage config. ``compose`` overrides the compose backend."""

    compose: ComposeBackend | None = None


class LocalStage(Stage):
    """The local execution target. There is exactly one per app, named "local"."""

    def __init__(self, config: LocalStageConfig):
        config.validate()
        super().__init__(config)
        self.state = LocalState.UNBUILT
        self.spec = ComposeSpec(self.app.config.name)
        self.compose = config.compose or ComposeBackend(self.app.config.name)
        self._build()

    @property
    def name(self):
        return StageTarget.LOCAL.value

    @property
    def target(self):
        return StageTarget.LOCAL

    @property
    def mode(self):
        return StageMode.STAGING

    @property
    def dry_run(self) -> bool:
        return self.compose.dry_run

    def as_local(self):
        return self

    def _build(self):
        # Plugins write to the shared spec one at a time, in wave order.
        for index, wave in enumerate(self.app.waves):
            logger.debug(f"Building wave {index}: {', '.join(plugin_label(p) for p in wave)}")
            for plugin in wave:
                plugin.configure(self)
                plugin.update_local_template(self.spec, self.build_path_for_plugin(plugin))
        self.state = LocalState.BUILT
        logger.info(f"Local stage built: {len(self.spec.services)} services")

    async def _fire(self, event):
        for wave in self.app.waves:
            for plugin in wave:
                self._bind(plugin)
                await plugin.event_hook(event, self.build_path_for_plugin(plugin))

    async def create(self):
        """(Re)create every local service. Anything already running is torn down first."""
        await self.destroy()
        await self._fire(Event.LOCAL_BEFORE_CREATE)
        await self.compose.apply(self.spec)
        await self._fire(Event.LOCAL_AFTER_CREATE)
        self.state = LocalState.CREATED
        logger.info(f"Local stage created for '{self.app.config.name}'")

    async def destroy(self):
        """Tear down every local service. Does nothing harmful when nothing is running."""
        await self.compose.tear_down(self.spec)
        self.state = LocalState.DESTROYED

    async def deploy(self):
        await self.create()
