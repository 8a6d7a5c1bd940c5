"""Shared data types for deployment backends."""

from dataclasses import dataclass, field


@dataclass
class DeployedStack:
    """Structured return from stack backends: one deployed unit and its outputs."""

    name: str
    status: str
    outputs: dict[str, str] = field(default_factory=dict)
    template_body: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    stack_id: str | None = None

    @property
    def is_complete(self) -> bool:
        """True once the last operation on the stack finished successfully."""
        return self.status in ("CREATE_COMPLETE", "UPDATE_COMPLETE")

    @property
    def has_outputs(self) -> bool:
        """True when the stack is stable and its outputs can be read."""
        return self.is_complete or self.status == "UPDATE_ROLLBACK_COMPLETE"
