"""Unit tests for project file loading."""

import os

import pytest
import yaml

from stackwave.config import (
    build_app,
    cloud_stage_config,
    deep_merge,
    load_plugins,
    load_project,
    local_stage_config,
)
from stackwave.errors import ValidationError
from stackwave.stage import StageMode

PLUGINS_PY = '''
from stackwave.plugins import Bucket, BucketCloudConfig, BucketConfig, BucketLocalConfig, Network, NetworkConfig


def plugins(project):
    network = Network(lambda stage, deps: NetworkConfig())
    media = Bucket(
        "media",
        lambda stage, deps: BucketConfig(
            local=BucketLocalConfig(external_port=9100, console_external_port=9101),
            cloud=BucketCloudConfig(versioning=stage.mode.is_production),
        ),
    )
    return [network, media]
'''


@pytest.fixture
def project_dir(tmp_path):
    """A project directory with stackwave.yaml, infra.py and a config/ dir."""
    (tmp_path / "config").mkdir()
    (tmp_path / "infra.py").write_text(PLUGINS_PY)
    project = {
        "app": {"name": "shop", "display_name": "Shop", "region": "eu-west-1"},
        "plugins": "infra:plugins",
        "cloud": {"mode": "staging", "max_concurrency": 2, "custom": {"replicas": 1, "tier": "small"}},
        "stages": {
            "staging": {},
            "prod": {"mode": "prod", "version": "v7", "custom": {"replicas": 3}},
        },
    }
    with open(tmp_path / "stackwave.yaml", "w") as f:
        yaml.dump(project, f)
    return tmp_path


# ── deep_merge ──────────────────────────────────────────────────────


def test_deep_merge_override_wins():
    base = {"a": 1, "nested": {"x": 1, "y": 2}, "keep": True}
    override = {"a": 2, "nested": {"y": 3, "z": 4}}

    assert deep_merge(base, override) == {"a": 2, "nested": {"x": 1, "y": 3, "z": 4}, "keep": True}
    assert base == {"a": 1, "nested": {"x": 1, "y": 2}, "keep": True}


# ── load_project ────────────────────────────────────────────────────


def test_load_project_resolves_dirs(project_dir):
    project = load_project(str(project_dir))

    assert project.path == os.path.join(str(project_dir), "stackwave.yaml")
    assert project.name == "shop"
    assert project.display_name == "Shop"
    assert project.root_dir == str(project_dir)
    assert project.config_dir == os.path.join(str(project_dir), "config")
    assert project.build_dir == os.path.join(str(project_dir), ".build")
    assert project.region == "eu-west-1"


def test_load_project_missing_file(tmp_path):
    with pytest.raises(ValidationError, match="Project file not found"):
        load_project(str(tmp_path))


def test_load_project_requires_app_name(tmp_path):
    (tmp_path / "stackwave.yaml").write_text("app: {}\nplugins: infra:plugins\n")
    with pytest.raises(ValidationError, match="app.name is required"):
        load_project(str(tmp_path))


def test_load_project_requires_plugins_entry(tmp_path):
    (tmp_path / "stackwave.yaml").write_text("app: {name: shop}\nplugins: infra\n")
    with pytest.raises(ValidationError, match="<module>:<callable>"):
        load_project(str(tmp_path))


def test_load_project_rejects_non_mapping(tmp_path):
    (tmp_path / "stackwave.yaml").write_text("- a\n- b\n")
    with pytest.raises(ValidationError, match="expected a mapping"):
        load_project(str(tmp_path))


def test_load_project_rejects_invalid_yaml(tmp_path):
    (tmp_path / "stackwave.yaml").write_text("app: [unclosed\n")
    with pytest.raises(ValidationError):
        load_project(str(tmp_path))


# ── Stages ──────────────────────────────────────────────────────────


def test_stage_settings_merge_over_cloud_defaults(project_dir):
    project = load_project(str(project_dir))

    assert project.stage_settings("staging") == {
        "mode": "staging",
        "max_concurrency": 2,
        "custom": {"replicas": 1, "tier": "small"},
    }
    assert project.stage_settings("prod") == {
        "mode": "prod",
        "max_concurrency": 2,
        "version": "v7",
        "custom": {"replicas": 3, "tier": "small"},
    }


def test_unknown_stage_lists_available(project_dir):
    project = load_project(str(project_dir))

    with pytest.raises(ValidationError, match="Unknown stage 'qa'. Available stages: prod, staging"):
        project.stage_settings("qa")


def test_cloud_stage_config(project_dir):
    project = load_project(str(project_dir))
    app = build_app(project)

    config = cloud_stage_config(project, app, "prod")
    config.validate()
    assert config.name == "prod"
    assert config.version == "v7"
    assert config.mode is StageMode.PRODUCTION
    assert config.max_concurrency == 2
    assert config.custom_config == {"replicas": 3, "tier": "small"}

    assert cloud_stage_config(project, app, "prod", version="v8").version == "v8"


def test_local_stage_config(project_dir):
    project = load_project(str(project_dir))
    app = build_app(project)

    config = local_stage_config(project, app)
    assert config.app is app
    assert config.compose is None


# ── Plugins ─────────────────────────────────────────────────────────


def test_load_plugins_from_project_module(project_dir):
    project = load_project(str(project_dir))
    plugins = load_plugins(project)

    assert [(p.name, p.instance_name) for p in plugins] == [("network", None), ("bucket", "media")]


def test_build_app(project_dir):
    app = build_app(load_project(str(project_dir)))

    assert app.config.name == "shop"
    assert app.config.region == "eu-west-1"
    assert [p.name for p in app.plugins] == ["bucket", "network"]


def test_load_plugins_missing_module(project_dir):
    project = load_project(str(project_dir))
    project.plugins = "no_such_module_xyz:plugins"

    with pytest.raises(ValidationError, match="cannot import module 'no_such_module_xyz'"):
        load_plugins(project)


def test_load_plugins_missing_callable(project_dir):
    project = load_project(str(project_dir))
    project.plugins = "infra:nothing_here"

    with pytest.raises(ValidationError, match="is not callable"):
        load_plugins(project)
