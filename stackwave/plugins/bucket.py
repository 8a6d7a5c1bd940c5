"""Bucket: object storage. S3 in the cloud, a shared MinIO container locally."""

from collections.abc import Callable
from dataclasses import dataclass, field

from stackwave.deploy.compose import port_mapping
from stackwave.errors import ServiceNotReadyError
from stackwave.plugin import BasePlugin, CloudMetadata, Event, OtherDependencies
from stackwave.plugins.local import (
    LOCAL_ACCESS_KEY_ID,
    LOCAL_SECRET_ACCESS_KEY,
    container_name,
    is_dry_run,
    wait_for_http,
)
from stackwave.refs import CloudRef, CloudTemplate, cf_join, cf_ref, default_tags
from stackwave.validation import require, require_port, require_resource_name

REF_BUCKET = "b"
REF_BUCKET_POLICY_PUBLIC = "bp-pub"

ATT_ARN = "Arn"
ATT_DOMAIN_NAME = "DomainName"
ATT_REGIONAL_DOMAIN_NAME = "RegionalDomainName"

MINIO_VERSION = "2022.4.16"
MINIO_PORT = 9000
MINIO_CONSOLE_PORT = 9001
READY_TIMEOUT = 120


@dataclass
class BucketLocalConfig:
    external_port: int
    console_external_port: int


@dataclass
class BucketCloudConfig:
    versioning: bool = False
    delete_objects_after_days: int | None = None
    delete_previous_versions_after_days: int | None = None


@dataclass
class BucketConfig:
    public: bool = False
    local: BucketLocalConfig | None = None
    cloud: BucketCloudConfig | None = None
    event_hook: Callable | None = None

    def validate(self, target):
        if target.is_local:
            require(self.local is not None, "BucketConfig.local: required on local stages")
            require_port(self.local.external_port, "BucketConfig.local.external_port")
            require_port(self.local.console_external_port, "BucketConfig.local.console_external_port")
        else:
            require(self.cloud is not None, "BucketConfig.cloud: required on cloud stages")
            for days in (self.cloud.delete_objects_after_days, self.cloud.delete_previous_versions_after_days):
                require(days is None or (isinstance(days, int) and days > 0), f"BucketConfig.cloud: invalid days {days!r}")


@dataclass
class BucketDependencies:
    other: OtherDependencies = field(default_factory=OtherDependencies)


@dataclass
class BucketLocalMetadata:
    container_name: str
    access_key: str
    secret_key: str
    bucket_name: str
    external_url: str
    internal_url: str
    console_external_url: str


@dataclass
class BucketCloudMetadata(CloudMetadata):
    bucket_name: str
    bucket_url: str


class Bucket(BasePlugin):
    """One named bucket. All local buckets of an app share a single MinIO container."""

    display_name = "Bucket"
    name = "bucket"

    def __init__(self, bucket_name, config_func, dependencies=None):
        require_resource_name(bucket_name, "Bucket.bucket_name")
        super().__init__(config_func, dependencies or BucketDependencies(), instance_name=bucket_name)

    # ── Local ───────────────────────────────────────────────────────

    def update_local_template(self, spec, build_dir):
        app_name = self.stage.app.config.name
        # One MinIO service per app, shared by every bucket.
        service_name = f"{app_name}-{self.name}"
        bucket_name = container_name(self)
        default_bucket = f"{bucket_name}:download" if self.config.public else bucket_name
        local = self.config.local

        metadata = BucketLocalMetadata(
            container_name=service_name,
            access_key=LOCAL_ACCESS_KEY_ID,
            secret_key=LOCAL_SECRET_ACCESS_KEY,
            bucket_name=bucket_name,
            external_url=f"http://localhost:{local.external_port}/{bucket_name}",
            internal_url=f"http://{service_name}:{MINIO_PORT}/{bucket_name}",
            console_external_url=f"http://localhost:{local.console_external_port}",
        )
        self._set_local_metadata(metadata)

        exports = self.local_exports
        exports.publish(REF_BUCKET, bucket_name)
        exports.publish(REF_BUCKET, f"arn:aws:s3:::{bucket_name}", ATT_ARN)
        exports.publish(REF_BUCKET, f"{service_name}:{MINIO_PORT}", ATT_DOMAIN_NAME)
        exports.publish(REF_BUCKET, f"{service_name}:{MINIO_PORT}", ATT_REGIONAL_DOMAIN_NAME)

        service = spec.get_service(service_name)
        if service is not None:
            environment = service["environment"]
            environment["MINIO_DEFAULT_BUCKETS"] += f",{default_bucket}"
            return

        spec.add_service(
            service_name,
            {
                "image": f"bitnami/minio:{MINIO_VERSION}",
                "environment": {
                    "MINIO_ROOT_USER": LOCAL_ACCESS_KEY_ID,
                    "MINIO_ROOT_PASSWORD": LOCAL_SECRET_ACCESS_KEY,
                    "MINIO_ACCESS_KEY": LOCAL_ACCESS_KEY_ID,
                    "MINIO_SECRET_KEY": LOCAL_SECRET_ACCESS_KEY,
                    "MINIO_DEFAULT_BUCKETS": default_bucket,
                },
                "ports": [
                    port_mapping(local.external_port, MINIO_PORT),
                    port_mapping(local.console_external_port, MINIO_CONSOLE_PORT),
                ],
                "restart": "unless-stopped",
            },
        )

    def _event_handlers(self):
        return {Event.LOCAL_AFTER_CREATE: self._local_after_create}

    async def _local_after_create(self, build_dir):
        url = f"http://localhost:{self.config.local.external_port}/minio/health/live"
        if not await wait_for_http(url, timeout=READY_TIMEOUT, dry_run=is_dry_run(self.stage)):
            raise ServiceNotReadyError(self, "MinIO", READY_TIMEOUT)

    # ── Cloud ───────────────────────────────────────────────────────

    def get_cloud_template(self, build_dir):
        cloud = self.config.cloud
        public = self.config.public
        physical_name = CloudRef(REF_BUCKET).resource_name(self)
        tpl = CloudTemplate(self.stack_name, description=f"{self.stage.app.config.display_name} bucket {self.instance_name}")

        rule = {
            "AbortIncompleteMultipartUpload": {"DaysAfterInitiation": 30},
            "Status": "Enabled",
        }
        if cloud.delete_objects_after_days is not None:
            rule["ExpirationInDays"] = cloud.delete_objects_after_days
        if cloud.delete_previous_versions_after_days is not None:
            rule["NoncurrentVersionExpirationInDays"] = cloud.delete_previous_versions_after_days

        block = not public
        tpl.add_resource(
            REF_BUCKET,
            "AWS::S3::Bucket",
            {
                "BucketName": physical_name,
                "LifecycleConfiguration": {"Rules": [rule]},
                "PublicAccessBlockConfiguration": {
                    "BlockPublicAcls": block,
                    "BlockPublicPolicy": block,
                    "IgnorePublicAcls": block,
                    "RestrictPublicBuckets": block,
                },
                "VersioningConfiguration": {"Status": "Enabled"} if cloud.versioning else None,
                "Tags": default_tags(physical_name),
            },
        )
        tpl.export_ref(REF_BUCKET)
        tpl.export_att(REF_BUCKET, ATT_ARN)
        tpl.export_att(REF_BUCKET, ATT_DOMAIN_NAME)
        tpl.export_att(REF_BUCKET, ATT_REGIONAL_DOMAIN_NAME)

        if public:
            tpl.add_resource(
                REF_BUCKET_POLICY_PUBLIC,
                "AWS::S3::BucketPolicy",
                {
                    "Bucket": cf_ref(REF_BUCKET),
                    "PolicyDocument": {
                        "Version": "2012-10-17",
                        "Statement": [
                            {
                                "Effect": "Allow",
                                "Principal": "*",
                                "Action": ["s3:GetObject"],
                                "Resource": [cf_join("", ["arn:aws:s3:::", cf_ref(REF_BUCKET), "/*"])],
                            }
                        ],
                    },
                },
            )
        return tpl

    def _build_cloud_metadata(self, exports):
        bucket_name = exports.get_ref(REF_BUCKET)
        region = self.stage.app.config.region
        return BucketCloudMetadata(
            exports=exports,
            bucket_name=bucket_name,
            bucket_url=f"https://s3.{region}.amazonaws.com/{bucket_name}",
        )
