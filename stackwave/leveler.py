"""Dependency leveler: group plugins into waves that can be deployed in order.

Each wave only contains plugins whose dependencies all live in earlier
waves. Plugins inside a wave do not depend on each other and can be
configured and deployed in any order, or concurrently.
"""

import logging

from stackwave.errors import DependencyCycleError, DependencyError, plugin_label

logger = logging.getLogger(__name__)


def _sort_key(plugin, positions):
    return (plugin.name, plugin.instance_name or "", positions[plugin])


def level_plugins(plugins) -> list[list]:
    """Compute the wave list for *plugins*.

    Args:
        plugins: iterable of plugins; each exposes dependencies_set().

    Returns:
        List of waves. For every plugin, each of its dependencies appears in
        a wave with a strictly smaller index. Ties inside a wave are broken
        by (kind name, instance name, position in *plugins*).

    Raises:
        DependencyError: a plugin depends on itself or on a plugin outside
            the set.
        DependencyCycleError: the remaining plugins depend on each other.
    """
    plugins = list(plugins)
    positions = {}
    for index, plugin in enumerate(plugins):
        if plugin in positions:
            raise DependencyError(f"{plugin_label(plugin)}: listed more than once")
        positions[plugin] = index

    # Unresolved dependencies per plugin, keyed by object identity.
    pending = {}
    for plugin in plugins:
        dependencies = set(plugin.dependencies_set())
        if plugin in dependencies:
            raise DependencyError(f"{plugin_label(plugin)}: depends on itself")
        for dependency in dependencies:
            if dependency not in positions:
                raise DependencyError(
                    f"{plugin_label(plugin)}: depends on {plugin_label(dependency)}, which is not part of the app"
                )
        pending[plugin] = dependencies

    waves = []
    while pending:
        wave = sorted(
            (plugin for plugin, dependencies in pending.items() if not dependencies),
            key=lambda p: _sort_key(p, positions),
        )
        if not wave:
            residual = sorted(pending, key=lambda p: _sort_key(p, positions))
            raise DependencyCycleError(residual)

        for plugin in wave:
            del pending[plugin]
        for dependencies in pending.values():
            dependencies.difference_update(wave)

        logger.debug(f"Wave {len(waves)}: {', '.join(plugin_label(p) for p in wave)}")
        waves.append(wave)

    return waves
