"""Concrete component kinds."""

from stackwave.plugins.bucket import Bucket, BucketCloudConfig, BucketConfig, BucketDependencies, BucketLocalConfig
from stackwave.plugins.function import (
    Function,
    FunctionCloudConfig,
    FunctionConfig,
    FunctionDependencies,
    FunctionLocalConfig,
)
from stackwave.plugins.network import Network, NetworkConfig, NetworkDependencies
from stackwave.plugins.postgres import (
    Postgres,
    PostgresCloudConfig,
    PostgresConfig,
    PostgresDependencies,
    PostgresLocalConfig,
)

__all__ = [
    "Bucket",
    "BucketCloudConfig",
    "BucketConfig",
    "BucketDependencies",
    "BucketLocalConfig",
    "Function",
    "FunctionCloudConfig",
    "FunctionConfig",
    "FunctionDependencies",
    "FunctionLocalConfig",
    "Network",
    "NetworkConfig",
    "NetworkDependencies",
    "Postgres",
    "PostgresCloudConfig",
    "PostgresConfig",
    "PostgresDependencies",
    "PostgresLocalConfig",
]
