"""Shared pytest fixtures for all test modules."""

import asyncio
import os
import subprocess
import sys
from dataclasses import dataclass, field

import pytest

from stackwave import redact
from stackwave.app import App, AppConfig
from stackwave.deploy.local import ComposeBackend
from stackwave.plugin import BasePlugin, Event
from stackwave.provisioning.operations import Operations
from stackwave.provisioning.stacks import InMemoryStackBackend
from stackwave.refs import CloudTemplate
from stackwave.stage.cloud import CloudStage, CloudStageConfig
from stackwave.validation import require

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the stackwave CLI as a subprocess."""

    def _run(*args, env=None):
        result = subprocess.run(
            [sys.executable, "-m", "stackwave.stackwave", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env={**os.environ, **(env or {})},
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture(autouse=True)
def _reset_redaction():
    redact.reset()
    yield
    redact.reset()


# ── Test plugin kind ────────────────────────────────────────────────


@dataclass
class GadgetConfig:
    size: int = 1
    event_hook: object = None

    def validate(self, target):
        require(isinstance(self.size, int) and self.size > 0, "GadgetConfig.size: must be a positive integer")


@dataclass
class GadgetDependencies:
    others: list = field(default_factory=list)


class Gadget(BasePlugin):
    """Minimal kind: one local service, one cloud resource ``r`` depending on every dependency's ``r``."""

    display_name = "Gadget"
    name = "gadget"

    def __init__(self, instance_name=None, dependencies=(), config_func=None, cloud=True, events=None):
        super().__init__(
            config_func or (lambda stage, deps: GadgetConfig()),
            GadgetDependencies(list(dependencies)),
            instance_name=instance_name,
        )
        self.cloud = cloud
        self.events = [] if events is None else events

    @property
    def label(self):
        return self.instance_name or self.name

    def update_local_template(self, spec, build_dir):
        spec.add_service(self.local_name, {"image": "busybox", "command": ["sleep", "infinity"]})
        self.local_exports.publish("r", self.local_name)
        self._set_local_metadata({"container": self.local_name})

    def get_cloud_template(self, build_dir):
        if not self.cloud:
            return None
        tpl = CloudTemplate(self.stack_name)
        tpl.add_resource(
            "r",
            "Test::Gadget",
            {
                "Size": self.config.size,
                "Upstream": [self.resolve_ref(dep, "r") for dep in self.dependencies.others],
            },
        )
        tpl.export_ref("r")
        tpl.export_att("r", "Arn")
        return tpl

    def _event_handlers(self):
        return {event: self._recorder(event) for event in Event}

    def _recorder(self, event):
        async def _record(build_dir):
            await asyncio.sleep(0)
            self.events.append((self.label, event))

        return _record


class RecordingComposeBackend(ComposeBackend):
    """Compose backend that records calls instead of running docker compose."""

    def __init__(self, project="shop", dry_run=False, events=None):
        super().__init__(project, dry_run=dry_run)
        self.calls = []
        self.documents = []
        self.events = [] if events is None else events

    async def apply(self, spec):
        self.calls.append("apply")
        self.documents.append(spec.to_yaml())
        self.events.append(("compose", "apply"))

    async def tear_down(self, spec):
        self.calls.append("tear_down")
        self.events.append(("compose", "tear_down"))


# ── Unit-test fixtures ──────────────────────────────────────────────


@pytest.fixture
def make_plugin():
    """Return a factory for Gadget plugins."""

    def _make(instance_name=None, dependencies=(), **kwargs):
        return Gadget(instance_name, dependencies, **kwargs)

    return _make


@pytest.fixture
def app_dirs(tmp_path):
    """Root, config and build directories of a test app."""
    root = tmp_path / "app"
    config = root / "config"
    config.mkdir(parents=True)
    return {"root_dir": str(root), "config_dir": str(config), "build_dir": str(root / ".build")}


@pytest.fixture
def stacks():
    return InMemoryStackBackend()


@pytest.fixture
def operations(stacks):
    return Operations(stacks=stacks, region="eu-west-1")


@pytest.fixture
def make_app(app_dirs, operations):
    """Return a factory building an App named 'shop' around the given plugins."""

    def _make(plugins, name="shop"):
        config = AppConfig(
            display_name="Shop",
            name=name,
            plugins=list(plugins),
            region="eu-west-1",
            **app_dirs,
        )
        return App(config, operations=operations)

    return _make


@pytest.fixture
def make_cloud_stage():
    """Return a factory for cloud stages of an App."""

    def _make(app, name="staging", version="v1", **kwargs):
        return CloudStage(CloudStageConfig(app=app, name=name, version=version, **kwargs))

    return _make


@pytest.fixture
def compose():
    return RecordingComposeBackend()
