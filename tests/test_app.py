"""Unit tests for App and AppConfig."""

import os

import pytest

from stackwave.app import App, AppConfig
from stackwave.errors import DependencyCycleError, DependencyError, ValidationError
from stackwave.provisioning.operations import Operations
from stackwave.provisioning.stacks import AwsCliStackBackend


def _config(app_dirs, plugins, **overrides):
    values = {"display_name": "Shop", "name": "shop", "plugins": plugins, **app_dirs}
    values.update(overrides)
    return AppConfig(**values)


def test_app_levels_plugins(make_plugin, make_app):
    a = make_plugin("a")
    b = make_plugin("b", [a])
    app = make_app([b, a])

    assert app.waves == [[a], [b]]
    assert app.plugins == [a, b]


def test_find_plugin(make_plugin, make_app):
    single = make_plugin()
    media = make_plugin("media")
    app = make_app([single, media])

    assert app.find_plugin("gadget") is single
    assert app.find_plugin("gadget", "media") is media
    with pytest.raises(ValidationError, match="no plugin"):
        app.find_plugin("bucket")


def test_default_operations(app_dirs, make_plugin):
    app = App(_config(app_dirs, [make_plugin("a")], region="eu-central-1"))

    assert isinstance(app.operations, Operations)
    assert isinstance(app.operations.stacks, AwsCliStackBackend)
    assert app.operations.region == "eu-central-1"


def test_duplicate_identity_raises(make_plugin, make_app):
    with pytest.raises(DependencyError, match="same kind and instance name"):
        make_app([make_plugin("a"), make_plugin("a")])


def test_cycle_fails_construction(make_plugin, make_app):
    a = make_plugin("a")
    b = make_plugin("b", [a])
    a.dependencies.others.append(b)

    with pytest.raises(DependencyCycleError):
        make_app([a, b])


# ── AppConfig.validate ──────────────────────────────────────────────


@pytest.mark.parametrize("name", ["", "Shop", "1shop", "shop_app", "a" * 34])
def test_invalid_app_name(app_dirs, make_plugin, name):
    with pytest.raises(ValidationError, match="AppConfig.name"):
        _config(app_dirs, [make_plugin("a")], name=name).validate()


def test_missing_display_name(app_dirs, make_plugin):
    with pytest.raises(ValidationError, match="AppConfig.display_name"):
        _config(app_dirs, [make_plugin("a")], display_name="").validate()


def test_missing_config_dir(app_dirs, make_plugin, tmp_path):
    with pytest.raises(ValidationError, match="AppConfig.config_dir: directory not found"):
        _config(app_dirs, [make_plugin("a")], config_dir=str(tmp_path / "missing")).validate()


def test_build_dir_parent_must_exist(app_dirs, make_plugin, tmp_path):
    _config(app_dirs, [make_plugin("a")]).validate()
    with pytest.raises(ValidationError, match="AppConfig.build_dir: parent directory not found"):
        _config(app_dirs, [make_plugin("a")], build_dir=str(tmp_path / "x" / "y")).validate()


def test_empty_plugins(app_dirs):
    with pytest.raises(ValidationError, match="AppConfig.plugins"):
        App(_config(app_dirs, []))


# ── Paths ───────────────────────────────────────────────────────────


def test_paths(app_dirs, make_plugin, make_app, make_cloud_stage):
    media = make_plugin("media")
    single = make_plugin()
    app = make_app([media, single])
    stage = make_cloud_stage(app, name="prod")
    config = app.config

    assert config.root_path("src") == os.path.join(app_dirs["root_dir"], "src")
    assert config.config_path("prod.json") == os.path.join(app_dirs["config_dir"], "prod.json")
    assert config.build_path_for_plugin(media, stage, "out") == os.path.join(
        app_dirs["build_dir"], "prod", "gadget-media", "out"
    )
    assert stage.build_path_for_plugin(single) == os.path.join(app_dirs["build_dir"], "prod", "gadget")
    assert config.config_path_for_plugin(media, "x.yaml") == os.path.join(
        app_dirs["config_dir"], "gadget-media", "x.yaml"
    )
