"""CLI tests: run the stackwave entrypoint as a subprocess against a throwaway project."""

import pytest
import yaml

INFRA_PY = '''
from stackwave.plugins import Bucket, BucketCloudConfig, BucketConfig, BucketLocalConfig, Network, NetworkConfig


def plugins(project):
    network = Network(lambda stage, deps: NetworkConfig())
    media = Bucket(
        "media",
        lambda stage, deps: BucketConfig(
            local=BucketLocalConfig(external_port=9100, console_external_port=9101),
            cloud=BucketCloudConfig(),
        ),
    )
    return [network, media]
'''


@pytest.fixture
def project_dir(tmp_path):
    (tmp_path / "config").mkdir()
    (tmp_path / "infra.py").write_text(INFRA_PY)
    project = {
        "app": {"name": "shop", "display_name": "Shop", "region": "eu-west-1"},
        "plugins": "infra:plugins",
        "stages": {"staging": {}, "prod": {"mode": "prod"}},
    }
    with open(tmp_path / "stackwave.yaml", "w") as f:
        yaml.dump(project, f)
    return str(tmp_path)


def test_levels(run_cli, project_dir):
    rc, stdout, stderr = run_cli("levels", "--project", project_dir)

    assert rc == 0, stderr
    assert "Wave 1:" in stdout
    assert "Network (network)" in stdout
    assert "Bucket (bucket/media)" in stdout


def test_local_create_dry_run(run_cli, project_dir):
    rc, stdout, stderr = run_cli("local", "create", "--project", project_dir, "--dry-run")

    assert rc == 0, stderr
    assert "[dry-run] docker compose -p shop -f - down -v --rmi local --remove-orphans" in stdout
    assert "[dry-run] docker compose -p shop -f - up --build -d --remove-orphans" in stdout
    assert "GET http://localhost:9100/minio/health/live" in stdout
    assert "shop-bucket-media" in stdout


def test_local_destroy_dry_run(run_cli, project_dir):
    rc, stdout, stderr = run_cli("local", "destroy", "--project", project_dir, "--dry-run")

    assert rc == 0, stderr
    assert "Local services of 'shop' destroyed." in stdout


def test_cloud_deploy_dry_run(run_cli, project_dir):
    rc, stdout, stderr = run_cli(
        "cloud", "deploy", "--project", project_dir, "--stage", "staging", "--dry-run", "--version", "v1"
    )

    assert rc == 0, stderr
    assert "[dry-run] Deploying 'shop' to stage 'staging' (staging, version v1)" in stdout
    assert "[dry-run] create stack shop-staging-network" in stdout
    assert "[dry-run] create stack shop-staging-bucket-media" in stdout
    assert "Bucket (bucket/media): deployed" in stdout


def test_cloud_deploy_unknown_stage(run_cli, project_dir):
    rc, stdout, _ = run_cli(
        "cloud", "deploy", "--project", project_dir, "--stage", "qa", "--dry-run", "--version", "v1"
    )

    assert rc == 1
    assert "Error: Unknown stage 'qa'. Available stages: prod, staging" in stdout


def test_missing_project_file(run_cli, tmp_path):
    rc, stdout, _ = run_cli("levels", "--project", str(tmp_path))

    assert rc == 1
    assert "Error: Project file not found" in stdout
