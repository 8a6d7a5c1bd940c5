"""Function: a Lambda function in the cloud, the Lambda runtime emulator locally.

The function's code is produced by ``build_command``, run from ``source_dir``
with ``STACKWAVE_BUILD_DIR`` and ``STACKWAVE_PACKAGE`` in its environment. The
command must write a zip package to ``$STACKWAVE_PACKAGE``. On cloud stages the
package is uploaded to the artifacts bucket under the stage's versioned key
prefix before the stack is deployed.
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field

from stackwave.deploy.compose import port_mapping
from stackwave.errors import ValidationError
from stackwave.plugin import BasePlugin, CloudMetadata, Event, OtherDependencies
from stackwave.plugins.bucket import REF_BUCKET, Bucket
from stackwave.plugins.local import container_name, is_dry_run, write_build_file
from stackwave.plugins.network import REF_SECURITY_GROUP, REF_SUBNET_PRIVATE_A, REF_SUBNET_PRIVATE_B, Network
from stackwave.refs import CloudRef, CloudTemplate, cf_get_att, default_tags
from stackwave.validation import require, require_port, require_resource_name

logger = logging.getLogger(__name__)

REF_ROLE = "r"
REF_LOG_GROUP = "lg"
REF_FUNCTION = "f"

ATT_ARN = "Arn"
ATT_ROLE_ID = "RoleId"

PACKAGE_FILE_NAME = "function.zip"
PACKAGE_CONTENT_TYPE = "application/zip"
EMULATOR_PORT = 8080
INVOCATIONS_PATH = "/2015-03-31/functions/function/invocations"
LOG_RETENTION_DAYS = 90

DOCKERFILE = """FROM {base_image}
COPY {package} /tmp/{package}
RUN cd ${{LAMBDA_TASK_ROOT}} && python3 -m zipfile -e /tmp/{package} . && rm /tmp/{package}
CMD ["{handler}"]
"""


@dataclass
class FunctionLocalConfig:
    external_port: int
    base_image: str = "public.ecr.aws/lambda/python:3.12"


@dataclass
class FunctionCloudConfig:
    memory: int = 128
    role_policies: list = field(default_factory=list)


@dataclass
class FunctionConfig:
    build_command: list
    source_dir: str | None = None
    runtime: str = "python3.12"
    handler: str = "handler.handler"
    timeout_seconds: int = 30
    environment: dict = field(default_factory=dict)
    local: FunctionLocalConfig | None = None
    cloud: FunctionCloudConfig | None = None
    event_hook: Callable | None = None

    def validate(self, target):
        require(
            isinstance(self.build_command, (list, tuple)) and len(self.build_command) > 0,
            "FunctionConfig.build_command: required",
        )
        require(bool(self.runtime), "FunctionConfig.runtime: required")
        require(bool(self.handler), "FunctionConfig.handler: required")
        require(
            isinstance(self.timeout_seconds, int) and 0 < self.timeout_seconds <= 900,
            f"FunctionConfig.timeout_seconds: must be between 1 and 900, got {self.timeout_seconds!r}",
        )
        if target.is_local:
            require(self.local is not None, "FunctionConfig.local: required on local stages")
            require_port(self.local.external_port, "FunctionConfig.local.external_port")
        else:
            require(self.cloud is not None, "FunctionConfig.cloud: required on cloud stages")
            require(
                isinstance(self.cloud.memory, int) and 128 <= self.cloud.memory <= 10240,
                f"FunctionConfig.cloud.memory: must be between 128 and 10240, got {self.cloud.memory!r}",
            )


@dataclass
class FunctionDependencies:
    artifacts_bucket: Bucket
    network: Network | None = None
    other: OtherDependencies = field(default_factory=OtherDependencies)


@dataclass
class FunctionLocalMetadata:
    container_name: str
    external_url: str
    internal_url: str


@dataclass
class FunctionCloudMetadata(CloudMetadata):
    function_name: str
    function_arn: str


class Function(BasePlugin):
    """One named function. Runs inside the Network's private subnets when a Network is given."""

    display_name = "Function"
    name = "function"

    def __init__(self, function_name, config_func, dependencies: FunctionDependencies):
        require_resource_name(function_name, "Function.function_name")
        if dependencies is None or not isinstance(dependencies.artifacts_bucket, Bucket):
            raise ValidationError("Function: dependencies.artifacts_bucket is required")
        super().__init__(config_func, dependencies, instance_name=function_name)

    def _package_path(self, build_dir):
        return os.path.join(build_dir, PACKAGE_FILE_NAME)

    async def _build(self, build_dir, target):
        config = self.config
        if not is_dry_run(self.stage):
            os.makedirs(build_dir, exist_ok=True)
        await self.stage.app.operations.run_build_command(
            list(config.build_command),
            cwd=config.source_dir or self.stage.app.config.root_dir,
            env={
                "STACKWAVE_BUILD_DIR": build_dir,
                "STACKWAVE_PACKAGE": self._package_path(build_dir),
                "STACKWAVE_TARGET": target,
            },
        )

    # ── Local ───────────────────────────────────────────────────────

    def update_local_template(self, spec, build_dir):
        name = container_name(self)
        port = self.config.local.external_port
        self._set_local_metadata(
            FunctionLocalMetadata(
                container_name=name,
                external_url=f"http://localhost:{port}{INVOCATIONS_PATH}",
                internal_url=f"http://{name}:{EMULATOR_PORT}{INVOCATIONS_PATH}",
            )
        )

        exports = self.local_exports
        exports.publish(REF_FUNCTION, name)
        exports.publish(REF_FUNCTION, f"http://{name}:{EMULATOR_PORT}{INVOCATIONS_PATH}", ATT_ARN)

        spec.add_service(
            name,
            {
                "build": {"context": build_dir},
                "image": name,
                "environment": dict(self.config.environment),
                "ports": [port_mapping(port, EMULATOR_PORT)],
                "restart": "unless-stopped",
            },
        )

    def _event_handlers(self):
        return {
            Event.LOCAL_BEFORE_CREATE: self._local_before_create,
            Event.CLOUD_BEFORE_DEPLOY: self._cloud_before_deploy,
            Event.CLOUD_AFTER_DEPLOY: self._cloud_after_deploy,
        }

    async def _local_before_create(self, build_dir):
        await self._build(build_dir, "local")
        dockerfile = DOCKERFILE.format(
            base_image=self.config.local.base_image,
            package=PACKAGE_FILE_NAME,
            handler=self.config.handler,
        )
        write_build_file(build_dir, "Dockerfile", dockerfile, dry_run=is_dry_run(self.stage))

    # ── Cloud ───────────────────────────────────────────────────────

    def _artifacts_key(self):
        return self.stage.as_cloud().artifacts_key_prefix(self, PACKAGE_FILE_NAME)

    async def _cloud_before_deploy(self, build_dir):
        await self._build(build_dir, "cloud")
        package_path = self._package_path(build_dir)
        if is_dry_run(self.stage) and not os.path.exists(package_path):
            body = b""
        else:
            with open(package_path, "rb") as f:
                body = f.read()

        bucket = self.resolve_ref(self.dependencies.artifacts_bucket, REF_BUCKET)
        await self.stage.app.operations.upload_file(bucket, self._artifacts_key(), PACKAGE_CONTENT_TYPE, body)

    async def _cloud_after_deploy(self, build_dir):
        metadata = self.cloud_metadata
        logger.info(f"{metadata.function_name}: deployed {self._artifacts_key()}")

    def get_cloud_template(self, build_dir):
        config = self.config
        stage = self.stage
        dependencies = self.dependencies
        tpl = CloudTemplate(self.stack_name, description=f"{stage.app.config.display_name} function {self.instance_name}")

        role_name = CloudRef(REF_ROLE).resource_name(self)
        tpl.add_resource(
            REF_ROLE,
            "AWS::IAM::Role",
            {
                "AssumeRolePolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Principal": {"Service": ["lambda.amazonaws.com"]},
                            "Action": ["sts:AssumeRole"],
                        }
                    ],
                },
                "ManagedPolicyArns": ["arn:aws:iam::aws:policy/service-role/AWSLambdaVPCAccessExecutionRole"],
                "Policies": list(config.cloud.role_policies) or None,
                "RoleName": role_name,
                "Tags": default_tags(role_name),
            },
        )
        tpl.export_ref(REF_ROLE)
        tpl.export_att(REF_ROLE, ATT_ARN)
        tpl.export_att(REF_ROLE, ATT_ROLE_ID)

        function_name = CloudRef(REF_FUNCTION).resource_name(self)
        # Lambda writes to /aws/lambda/<function name>.
        tpl.add_resource(
            REF_LOG_GROUP,
            "AWS::Logs::LogGroup",
            {"LogGroupName": f"/aws/lambda/{function_name}", "RetentionInDays": LOG_RETENTION_DAYS},
        )
        tpl.export_ref(REF_LOG_GROUP)
        tpl.export_att(REF_LOG_GROUP, ATT_ARN)

        vpc_config = None
        if dependencies.network is not None:
            network = dependencies.network
            vpc_config = {
                "SecurityGroupIds": [self.resolve_ref(network, REF_SECURITY_GROUP)],
                "SubnetIds": [
                    self.resolve_ref(network, REF_SUBNET_PRIVATE_A),
                    self.resolve_ref(network, REF_SUBNET_PRIVATE_B),
                ],
            }

        tpl.add_resource(
            REF_FUNCTION,
            "AWS::Lambda::Function",
            {
                "Code": {
                    "S3Bucket": self.resolve_ref(dependencies.artifacts_bucket, REF_BUCKET),
                    "S3Key": self._artifacts_key(),
                },
                "Environment": {"Variables": dict(config.environment)},
                "FunctionName": function_name,
                "Handler": config.handler,
                "MemorySize": config.cloud.memory,
                "Role": cf_get_att(REF_ROLE, ATT_ARN),
                "Runtime": config.runtime,
                "Timeout": config.timeout_seconds,
                "VpcConfig": vpc_config,
                "Tags": default_tags(function_name),
            },
            depends_on=[REF_ROLE, REF_LOG_GROUP],
        )
        tpl.export_ref(REF_FUNCTION)
        tpl.export_att(REF_FUNCTION, ATT_ARN)
        return tpl

    def _build_cloud_metadata(self, exports):
        return FunctionCloudMetadata(
            exports=exports,
            function_name=exports.get_ref(REF_FUNCTION),
            function_arn=exports.get_att(REF_FUNCTION, ATT_ARN),
        )
