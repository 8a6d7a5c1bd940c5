"""Local deployment: compose document and the docker compose backend."""

from stackwave.deploy.compose import ComposeSpec, port_mapping
from stackwave.deploy.local import ComposeBackend

__all__ = [
    "ComposeSpec",
    "port_mapping",
    "ComposeBackend",
]
