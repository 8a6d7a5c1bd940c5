"""Plugin contract: the lifecycle every infrastructure component implements.

A plugin is created unconfigured. ``configure(stage)`` computes and
validates its config for one stage; the stage then materializes it
(``update_local_template`` or ``get_cloud_template``), fires lifecycle
hooks, commits, and hydrates the plugin's metadata from the result.

``BasePlugin`` keeps one binding (config + metadata) per stage it has been
configured against, so configuring a plugin for a second stage never
touches what was computed or deployed for the first one.
"""

import dataclasses
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from stackwave.errors import (
    DependencyError,
    ExportNotFoundError,
    NotConfiguredError,
    NotDeployedError,
    ValidationError,
    plugin_label,
)
from stackwave.refs import LocalExports, StackExports, make_stack_name

logger = logging.getLogger(__name__)


class Event(str, Enum):
    """Lifecycle events delivered to plugins through event_hook()."""

    LOCAL_BEFORE_CREATE = "localBeforeCreate"
    LOCAL_AFTER_CREATE = "localAfterCreate"
    CLOUD_BEFORE_DEPLOY = "cloudBeforeDeploy"
    CLOUD_AFTER_DEPLOY = "cloudAfterDeploy"


class Plugin(ABC):
    """Closed capability set shared by every component kind."""

    display_name: str = ""
    name: str = ""

    @property
    @abstractmethod
    def instance_name(self) -> str | None:
        """Instance name, or None for singleton kinds."""

    @abstractmethod
    def dependencies_set(self) -> set:
        """Plugins that must be configured and deployed before this one."""

    @abstractmethod
    def configure(self, stage) -> None:
        ...

    @property
    @abstractmethod
    def stage(self):
        ...

    @abstractmethod
    def is_deployed(self) -> bool:
        ...

    @abstractmethod
    def update_local_template(self, spec, build_dir) -> None:
        ...

    @abstractmethod
    def get_cloud_template(self, build_dir):
        """Return a CloudTemplate, or None when the plugin has no cloud footprint."""

    @abstractmethod
    def update_cloud_metadata(self, stack) -> None:
        ...

    @abstractmethod
    async def event_hook(self, event, build_dir) -> None:
        ...

    def __repr__(self):
        return f"<{type(self).__name__} {plugin_label(self)}>"


class OtherDependencies(list):
    """Unstructured extra dependencies of a plugin."""

    def find(self, name, instance_name=None):
        """Look up a dependency by kind name and instance name. Returns None if not found."""
        for plugin in self:
            if plugin.name == name and (plugin.instance_name or None) == (instance_name or None):
                return plugin
        return None


@dataclass
class CloudMetadata:
    """Default cloud metadata: the exports of the deployed stack."""

    exports: StackExports


@dataclass
class _Binding:
    stage: object
    config: object
    local_exports: LocalExports
    local_metadata: object = None
    cloud_exports: StackExports | None = None
    cloud_metadata: object = None


class BasePlugin(Plugin):
    """Common machinery for component kinds.

    Subclasses set ``display_name`` and ``name`` and override the
    materialization methods they need. ``config_func(stage, dependencies)``
    must return a config object with a ``validate(target)`` method and an
    optional ``event_hook`` attribute.
    """

    def __init__(self, config_func, dependencies=None, instance_name=None):
        if not callable(config_func):
            raise ValidationError(f"{type(self).__name__}: config_func must be callable")
        self._config_func = config_func
        self._dependencies = dependencies
        self._instance_name = instance_name or None
        self._bindings: dict = {}
        self._stage = None

    @property
    def instance_name(self):
        return self._instance_name

    @property
    def dependencies(self):
        return self._dependencies

    def dependencies_set(self):
        found = set()
        if self._dependencies is None:
            return found
        for f in dataclasses.fields(self._dependencies):
            value = getattr(self._dependencies, f.name)
            if isinstance(value, Plugin):
                found.add(value)
            elif isinstance(value, (list, tuple, set, frozenset)):
                found.update(v for v in value if isinstance(v, Plugin))
        return found

    # ── Configuration ───────────────────────────────────────────────

    def configure(self, stage):
        config = self._config_func(stage, self._dependencies)
        if config is None:
            raise ValidationError(f"{plugin_label(self)}: config function returned no config")
        try:
            config.validate(stage.target)
        except ValidationError as e:
            raise ValidationError(f"{plugin_label(self)}: {e}") from e

        binding = self._bindings.get(stage)
        if binding is None:
            self._bindings[stage] = _Binding(stage=stage, config=config, local_exports=LocalExports(plugin_label(self)))
        else:
            binding.config = config
        self._stage = stage

    def _binding(self) -> _Binding:
        if self._stage is None:
            raise NotConfiguredError(self)
        return self._bindings[self._stage]

    @property
    def stage(self):
        return self._binding().stage

    @property
    def config(self):
        return self._binding().config

    @property
    def stack_name(self) -> str:
        stage = self.stage
        return make_stack_name(stage.app.config.name, stage.name, self.name, self.instance_name)

    @property
    def local_name(self) -> str:
        """Container-name prefix for this plugin: ``<app>-<kind>[-<instance>]``."""
        parts = [self.stage.app.config.name, self.name]
        if self.instance_name:
            parts.append(self.instance_name)
        return "-".join(parts)

    # ── Metadata ────────────────────────────────────────────────────

    @property
    def local_exports(self) -> LocalExports:
        return self._binding().local_exports

    def get_local_metadata(self, require=True):
        metadata = self._binding().local_metadata
        if require and metadata is None:
            raise NotDeployedError(self, "local")
        return metadata

    @property
    def local_metadata(self):
        return self.get_local_metadata(require=True)

    def _set_local_metadata(self, metadata):
        self._binding().local_metadata = metadata

    def get_cloud_metadata(self, require=True):
        metadata = self._binding().cloud_metadata
        if require and metadata is None:
            raise NotDeployedError(self, "cloud")
        return metadata

    @property
    def cloud_metadata(self):
        return self.get_cloud_metadata(require=True)

    def is_deployed(self):
        if self._stage is None:
            return False
        return self._binding().cloud_metadata is not None

    def update_cloud_metadata(self, stack):
        binding = self._binding()
        exports = StackExports(stack, owner=plugin_label(self))
        binding.cloud_exports = exports
        binding.cloud_metadata = self._build_cloud_metadata(exports)

    def _build_cloud_metadata(self, exports):
        return CloudMetadata(exports=exports)

    def exports_for(self, stage):
        """Exports this plugin currently publishes on *stage*, or None."""
        binding = self._bindings.get(stage)
        if binding is None:
            return None
        if stage.target.is_cloud:
            return binding.cloud_exports
        return binding.local_exports

    # ── Cross-plugin resolution ─────────────────────────────────────

    def resolve_ref(self, dependency, ref) -> str:
        """Value of *ref* exported by *dependency* on this plugin's stage."""
        return self._resolve(dependency, ref, None)

    def resolve_att(self, dependency, ref, att) -> str:
        return self._resolve(dependency, ref, att)

    def _resolve(self, dependency, ref, att):
        if dependency not in self.dependencies_set():
            raise DependencyError(f"{plugin_label(self)}: {plugin_label(dependency)} is not a declared dependency")

        stage = self.stage
        exports = dependency.exports_for(stage)
        if exports is None:
            raise ExportNotFoundError(
                plugin_label(dependency),
                ref,
                att,
                consumer=plugin_label(self),
                reason=f"not deployed on stage '{stage.name}'",
            )
        try:
            if att is None:
                return exports.get_ref(ref)
            return exports.get_att(ref, att)
        except ExportNotFoundError as e:
            raise ExportNotFoundError(e.owner, e.ref, e.att, consumer=plugin_label(self)) from e

    # ── Materialization defaults ────────────────────────────────────

    def update_local_template(self, spec, build_dir):
        pass

    def get_cloud_template(self, build_dir):
        return None

    # ── Event hooks ─────────────────────────────────────────────────

    def _event_handlers(self) -> dict:
        """Built-in handlers, keyed by Event. Each handler is ``async (build_dir) -> None``."""
        return {}

    async def event_hook(self, event, build_dir):
        event = Event(event)
        handler = self._event_handlers().get(event)
        if handler is not None:
            logger.debug(f"{plugin_label(self)}: {event.value}")
            await handler(build_dir)

        user_hook = getattr(self.config, "event_hook", None)
        if user_hook is not None:
            result = user_hook(self, event, build_dir)
            if inspect.isawaitable(result):
                await result
