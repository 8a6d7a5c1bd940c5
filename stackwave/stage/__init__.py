"""Stages: concrete execution targets that drive plugins through their lifecycle."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from stackwave.errors import NotConfiguredError, StageTargetError, ValidationError


class StageTarget(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"

    @property
    def is_local(self) -> bool:
        return self is StageTarget.LOCAL

    @property
    def is_cloud(self) -> bool:
        return self is StageTarget.CLOUD

    def __str__(self):
        return self.value


class StageMode(str, Enum):
    PRODUCTION = "prod"
    STAGING = "staging"

    @property
    def is_production(self) -> bool:
        return self is StageMode.PRODUCTION

    @property
    def is_staging(self) -> bool:
        return self is StageMode.STAGING

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value) -> "StageMode":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(f"invalid stage mode {value!r} (allowed: {allowed})") from None


@dataclass
class StageConfig:
    """Config common to every stage."""

    app: object
    custom_config: object = None

    def validate(self):
        if self.app is None:
            raise ValidationError("StageConfig.app: required")


class Stage(ABC):
    """One execution target. Stages hash by identity."""

    def __init__(self, config: StageConfig):
        self._config = config

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def target(self) -> StageTarget:
        ...

    @property
    @abstractmethod
    def mode(self) -> StageMode:
        ...

    @property
    def config(self) -> StageConfig:
        return self._config

    @property
    def app(self):
        return self._config.app

    def build_path_for_plugin(self, plugin, *parts) -> str:
        return self.app.config.build_path_for_plugin(plugin, self, *parts)

    def _bind(self, plugin):
        """Make this stage the plugin's current stage, configuring it on first use."""
        try:
            if plugin.stage is self:
                return
        except NotConfiguredError:
            pass
        plugin.configure(self)

    def as_local(self):
        raise StageTargetError(f"{self.target.value} stage '{self.name}': does not implement local stage")

    def as_cloud(self):
        raise StageTargetError(f"{self.target.value} stage '{self.name}': does not implement cloud stage")

    @abstractmethod
    async def deploy(self) -> None:
        ...

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"
