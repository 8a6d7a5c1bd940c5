"""Unit tests for the Bucket plugin."""

import logging

import pytest

import stackwave.plugins.bucket as bucket_module
from stackwave.errors import ServiceNotReadyError, ValidationError
from stackwave.plugins.bucket import Bucket, BucketCloudConfig, BucketConfig, BucketLocalConfig
from stackwave.stage.local import LocalStage, LocalStageConfig

from conftest import RecordingComposeBackend


def _bucket(name, public=False, port=9100, cloud=None):
    return Bucket(
        name,
        lambda stage, deps: BucketConfig(
            public=public,
            local=BucketLocalConfig(external_port=port, console_external_port=port + 1),
            cloud=cloud or BucketCloudConfig(),
        ),
    )


def test_bucket_name_must_be_a_resource_name():
    with pytest.raises(ValidationError, match="Bucket.bucket_name"):
        _bucket("Media")


# ── Local ───────────────────────────────────────────────────────────


def test_local_buckets_share_one_minio_service(make_app, compose):
    media = _bucket("media")
    site = _bucket("site", public=True, port=9200)
    stage = LocalStage(LocalStageConfig(app=make_app([site, media]), compose=compose))

    assert list(stage.spec.services) == ["shop-bucket"]
    service = stage.spec.services["shop-bucket"]
    assert service["image"] == "bitnami/minio:2022.4.16"
    assert service["environment"]["MINIO_DEFAULT_BUCKETS"] == "shop-bucket-media,shop-bucket-site:download"
    assert service["ports"] == ["9100:9000", "9101:9001"]


def test_local_metadata_and_exports(make_app, compose):
    media = _bucket("media")
    LocalStage(LocalStageConfig(app=make_app([media]), compose=compose))

    metadata = media.local_metadata
    assert metadata.container_name == "shop-bucket"
    assert metadata.bucket_name == "shop-bucket-media"
    assert metadata.external_url == "http://localhost:9100/shop-bucket-media"
    assert metadata.internal_url == "http://shop-bucket:9000/shop-bucket-media"
    assert metadata.console_external_url == "http://localhost:9101"
    assert media.local_exports.get_ref("b") == "shop-bucket-media"
    assert media.local_exports.get_att("b", "Arn") == "arn:aws:s3:::shop-bucket-media"


def test_local_config_required(make_app, compose):
    media = Bucket("media", lambda stage, deps: BucketConfig(cloud=BucketCloudConfig()))

    with pytest.raises(ValidationError, match="BucketConfig.local: required on local stages"):
        LocalStage(LocalStageConfig(app=make_app([media]), compose=compose))


async def test_after_create_probes_minio_in_dry_run(make_app, caplog):
    compose = RecordingComposeBackend(dry_run=True)
    stage = LocalStage(LocalStageConfig(app=make_app([_bucket("media")]), compose=compose))

    with caplog.at_level(logging.INFO):
        await stage.create()

    assert "[dry-run] Poll every 2s (up to 120s): GET http://localhost:9100/minio/health/live" in caplog.text


async def test_after_create_raises_when_minio_not_ready(make_app, compose, monkeypatch):
    async def never_ready(url, timeout=120, interval=2, dry_run=False):
        return False

    monkeypatch.setattr(bucket_module, "wait_for_http", never_ready)
    stage = LocalStage(LocalStageConfig(app=make_app([_bucket("media")]), compose=compose))

    with pytest.raises(ServiceNotReadyError, match=r"Bucket \(bucket/media\): MinIO not ready after 120s"):
        await stage.create()


# ── Cloud ───────────────────────────────────────────────────────────


def test_private_bucket_template(make_app, make_cloud_stage):
    media = _bucket("media", cloud=BucketCloudConfig(delete_objects_after_days=30))
    make_cloud_stage(make_app([media]))

    doc = media.get_cloud_template("/tmp/build").to_dict()
    properties = doc["Resources"]["B"]["Properties"]

    assert properties["BucketName"] == "shop-staging-bucket-media-b"
    assert properties["PublicAccessBlockConfiguration"]["BlockPublicPolicy"] is True
    assert properties["LifecycleConfiguration"]["Rules"][0]["ExpirationInDays"] == 30
    assert "VersioningConfiguration" not in properties
    assert "BpPub" not in doc["Resources"]
    assert set(doc["Outputs"]) == {
        "Exp1B",
        "Exp1BAtt3Arn",
        "Exp1BAtt10DomainName",
        "Exp1BAtt18RegionalDomainName",
    }


def test_public_bucket_template(make_app, make_cloud_stage):
    site = _bucket("site", public=True, cloud=BucketCloudConfig(versioning=True))
    make_cloud_stage(make_app([site]))

    resources = site.get_cloud_template("/tmp/build").to_dict()["Resources"]

    assert resources["B"]["Properties"]["PublicAccessBlockConfiguration"]["BlockPublicPolicy"] is False
    assert resources["B"]["Properties"]["VersioningConfiguration"] == {"Status": "Enabled"}
    statement = resources["BpPub"]["Properties"]["PolicyDocument"]["Statement"][0]
    assert statement["Action"] == ["s3:GetObject"]
    assert statement["Resource"] == [{"Fn::Join": ["", ["arn:aws:s3:::", {"Ref": "B"}, "/*"]]}]


def test_invalid_expiration_days(make_app, make_cloud_stage):
    media = _bucket("media", cloud=BucketCloudConfig(delete_previous_versions_after_days=0))

    with pytest.raises(ValidationError, match="invalid days 0"):
        make_cloud_stage(make_app([media]))


async def test_cloud_metadata(make_app, make_cloud_stage, stacks):
    media = _bucket("media")
    stacks.set_outputs("shop-staging-bucket-media", {"Exp1B": "shop-staging-bucket-media-b"})

    await make_cloud_stage(make_app([media])).deploy()

    metadata = media.cloud_metadata
    assert metadata.bucket_name == "shop-staging-bucket-media-b"
    assert metadata.bucket_url == "https://s3.eu-west-1.amazonaws.com/shop-staging-bucket-media-b"
    assert metadata.exports.get_att("b", "Arn") == "shop-staging-bucket-media/Exp1BAtt3Arn"
