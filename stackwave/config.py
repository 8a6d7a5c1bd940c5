"""Project file loading: ``stackwave.yaml`` with per-stage overrides.

Example::

    app:
      name: shop
      display_name: Shop
      build_dir: .build
      region: eu-west-1
    plugins: infra:plugins          # <module>:<callable> returning the plugin list
    cloud:                          # defaults for every cloud stage
      mode: staging
      max_concurrency: 4
    stages:
      staging: {}
      prod:
        mode: prod
        custom: {replicas: 3}
"""

import importlib
import importlib.util
import logging
import os
from dataclasses import dataclass, field

import yaml

from stackwave.app import DEFAULT_REGION, App, AppConfig
from stackwave.errors import ValidationError
from stackwave.stage.cloud import CloudStageConfig
from stackwave.stage.local import LocalStageConfig

logger = logging.getLogger(__name__)

PROJECT_FILE = "stackwave.yaml"


def deep_merge(base, override):
    """Recursive dict merge. Override wins for scalars."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass
class Project:
    """Parsed project file. Directories are absolute."""

    path: str
    name: str
    display_name: str
    root_dir: str
    config_dir: str
    build_dir: str
    region: str
    plugins: str
    cloud: dict = field(default_factory=dict)
    stages: dict = field(default_factory=dict)
    custom: dict = field(default_factory=dict)

    @property
    def base_dir(self) -> str:
        return os.path.dirname(self.path)

    def stage_settings(self, stage_name) -> dict:
        """Settings of *stage_name*: the stage's section deep-merged over the ``cloud`` defaults."""
        if stage_name not in self.stages:
            available = ", ".join(sorted(self.stages)) if self.stages else "none"
            raise ValidationError(f"Unknown stage '{stage_name}'. Available stages: {available}")
        return deep_merge(self.cloud, self.stages[stage_name] or {})


def _section(raw, key):
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ValidationError(f"project file: '{key}' must be a mapping")
    return value


def load_project(path) -> Project:
    """Load a project file. *path* may also be the directory holding ``stackwave.yaml``."""
    if os.path.isdir(path):
        path = os.path.join(path, PROJECT_FILE)
    path = os.path.abspath(path)
    if not os.path.isfile(path):
        raise ValidationError(f"Project file not found: {path}")

    with open(path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"project file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValidationError(f"project file {path}: expected a mapping")

    base_dir = os.path.dirname(path)
    app = _section(raw, "app")
    name = app.get("name")
    if not name:
        raise ValidationError(f"project file {path}: app.name is required")
    plugins = raw.get("plugins")
    if not isinstance(plugins, str) or ":" not in plugins:
        raise ValidationError(f"project file {path}: plugins must be '<module>:<callable>'")

    def resolve(value, default):
        return os.path.normpath(os.path.join(base_dir, value or default))

    root_dir = resolve(app.get("root_dir"), ".")
    return Project(
        path=path,
        name=name,
        display_name=app.get("display_name") or name,
        root_dir=root_dir,
        config_dir=resolve(app.get("config_dir"), "config"),
        build_dir=resolve(app.get("build_dir"), ".build"),
        region=app.get("region") or DEFAULT_REGION,
        plugins=plugins,
        cloud=_section(raw, "cloud"),
        stages=_section(raw, "stages"),
        custom=_section(raw, "custom"),
    )


def _import_module(module_name, base_dir):
    candidate = os.path.join(base_dir, *module_name.split(".")) + ".py"
    if os.path.isfile(candidate):
        spec = importlib.util.spec_from_file_location(module_name, candidate)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return importlib.import_module(module_name)


def load_plugins(project: Project) -> list:
    """Call the project's plugin factory and return the plugin list."""
    module_name, _, attr = project.plugins.partition(":")
    try:
        module = _import_module(module_name, project.base_dir)
    except ImportError as e:
        raise ValidationError(f"plugins: cannot import module '{module_name}': {e}") from e
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValidationError(f"plugins: '{project.plugins}' is not callable")
    plugins = list(factory(project))
    logger.debug(f"Loaded {len(plugins)} plugins from {project.plugins}")
    return plugins


def build_app(project: Project, operations=None) -> App:
    """Construct the App described by *project*."""
    config = AppConfig(
        display_name=project.display_name,
        name=project.name,
        root_dir=project.root_dir,
        config_dir=project.config_dir,
        build_dir=project.build_dir,
        plugins=load_plugins(project),
        region=project.region,
    )
    return App(config, operations=operations)


def cloud_stage_config(project: Project, app: App, stage_name, version=None) -> CloudStageConfig:
    """CloudStageConfig for *stage_name*. *version* overrides the version from the project file."""
    settings = project.stage_settings(stage_name)
    return CloudStageConfig(
        app=app,
        name=stage_name,
        version=version or settings.get("version") or "",
        mode=settings.get("mode", "staging"),
        max_concurrency=settings.get("max_concurrency"),
        custom_config=settings.get("custom"),
    )


def local_stage_config(project: Project, app: App, compose=None) -> LocalStageConfig:
    return LocalStageConfig(app=app, compose=compose, custom_config=project.custom.get("local"))
