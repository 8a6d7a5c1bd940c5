"""App: the composition root holding the plugin set and its wave ordering."""

import logging
import os
from dataclasses import dataclass, field

from stackwave.errors import DependencyError, ValidationError, plugin_label
from stackwave.leveler import level_plugins
from stackwave.provisioning.operations import Operations
from stackwave.validation import require, require_dir, require_parent_dir, require_resource_name

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"


def _plugin_dir_name(plugin) -> str:
    if plugin.instance_name:
        return f"{plugin.name}-{plugin.instance_name}"
    return plugin.name


@dataclass
class AppConfig:
    """App configuration."""

    display_name: str
    name: str
    root_dir: str
    config_dir: str
    build_dir: str
    plugins: list = field(default_factory=list)
    region: str = DEFAULT_REGION

    def validate(self):
        require(bool(self.display_name), "AppConfig.display_name: required")
        require_resource_name(self.name, "AppConfig.name")
        require_dir(self.root_dir, "AppConfig.root_dir")
        require_dir(self.config_dir, "AppConfig.config_dir")
        require_parent_dir(self.build_dir, "AppConfig.build_dir")
        require(bool(self.plugins), "AppConfig.plugins: required")
        require(bool(self.region), "AppConfig.region: required")

    # ── Paths ───────────────────────────────────────────────────────

    def root_path(self, *parts) -> str:
        return os.path.join(self.root_dir, *parts)

    def build_path(self, *parts) -> str:
        return os.path.join(self.build_dir, *parts)

    def config_path(self, *parts) -> str:
        return os.path.join(self.config_dir, *parts)

    def build_path_for_plugin(self, plugin, stage, *parts) -> str:
        """``<build_dir>/<stage>/<kind>[-<instance>]/<parts...>``."""
        return self.build_path(stage.name, _plugin_dir_name(plugin), *parts)

    def config_path_for_plugin(self, plugin, *parts) -> str:
        """``<config_dir>/<kind>[-<instance>]/<parts...>``."""
        return self.config_path(_plugin_dir_name(plugin), *parts)


class App:
    """Owns the plugin set for its lifetime and levels it once.

    Args:
        config: AppConfig; validated on construction
        operations: Operations shared with stages and hooks
            (default: AWS CLI backed, in the configured region)
    """

    def __init__(self, config: AppConfig, operations=None):
        config.validate()
        self.config = config

        seen = {}
        for plugin in config.plugins:
            identity = (plugin.name, plugin.instance_name or None)
            if identity in seen and seen[identity] is not plugin:
                raise DependencyError(
                    f"{plugin_label(plugin)}: another plugin with the same kind and instance name is already registered"
                )
            seen[identity] = plugin

        self.waves = level_plugins(config.plugins)
        logger.debug(f"App '{config.name}': {len(config.plugins)} plugins in {len(self.waves)} waves")

        if operations is None:
            operations = Operations(region=config.region)
        self.operations = operations

    @property
    def plugins(self) -> list:
        """Plugins in wave order."""
        return [plugin for wave in self.waves for plugin in wave]

    def find_plugin(self, name, instance_name=None):
        """Look up a plugin by kind and instance name."""
        for plugin in self.plugins:
            if plugin.name == name and (plugin.instance_name or None) == (instance_name or None):
                return plugin
        raise ValidationError(f"app '{self.config.name}': no plugin {name!r} (instance: {instance_name!r})")
