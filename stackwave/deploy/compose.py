"""Docker Compose document built up by plugins during the local build pass."""

import yaml

from stackwave.errors import ValidationError

COMPOSE_FILE_VERSION = "3.8"


class ComposeSpec:
    """In-memory compose document: services, networks and volumes.

    Plugins mutate one shared instance in wave order, so writes are
    strictly sequential. Services keep insertion order in the rendered YAML.
    """

    def __init__(self, network_name):
        self.network_name = network_name
        self.services: dict[str, dict] = {}
        self.networks: dict[str, dict] = {network_name: {"name": network_name}}
        self.volumes: dict[str, dict] = {}

    def service_networks(self) -> dict:
        """Network attachment every service should use."""
        return {self.network_name: {}}

    def add_service(self, name, service: dict) -> dict:
        if name in self.services:
            raise ValidationError(f"compose: duplicate service '{name}'")
        service = dict(service)
        service.setdefault("container_name", name)
        service.setdefault("networks", self.service_networks())
        self.services[name] = service
        return service

    def get_service(self, name) -> dict | None:
        return self.services.get(name)

    def add_volume(self, name, volume: dict | None = None):
        self.volumes.setdefault(name, dict(volume or {}))

    def build_contexts(self) -> list[str]:
        """Build context directories referenced by services."""
        contexts = []
        for service in self.services.values():
            build = service.get("build")
            if isinstance(build, dict) and build.get("context"):
                contexts.append(build["context"])
            elif isinstance(build, str) and build:
                contexts.append(build)
        return contexts

    def to_dict(self) -> dict:
        return {
            "version": COMPOSE_FILE_VERSION,
            "services": self.services,
            "networks": self.networks,
            "volumes": self.volumes,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


def port_mapping(published, target) -> str:
    return f"{published}:{target}"
