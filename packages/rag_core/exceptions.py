from __future__ import annotations

from typing import Any


class RagError(Exception):
    """Base exception for all docqa errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(RagError):
    """Raised for invalid parameters detected before any work is done."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class TemplateError(ConfigurationError):
    """Raised when a prompt template and its variables do not line up."""


class InvalidArgumentError(RagError):
    """Raised when a call argument is out of range for the current state."""


class NotInitializedError(RagError):
    """Raised when a vector store is used before it was built or loaded."""


class StoreCorruptError(RagError):
    """Raised when a persisted vector store cannot be loaded."""

    def __init__(self, message: str, path: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        if path:
            details["path"] = path
        super().__init__(message, details)


class UpstreamServiceError(RagError):
    """Raised when the embedding or language-model service fails."""

    def __init__(self, message: str, service: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        if service:
            details["service"] = service
        super().__init__(message, details)


class ToolInvocationError(RagError):
    """
    Raised by a tool that cannot complete its call.

    The agent executor never lets this escape: it is turned into the
    observation text for the step.
    """

    def __init__(self, message: str, tool: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        if tool:
            details["tool"] = tool
        super().__init__(message, details)


class StepBudgetExceededError(RagError):
    """Raised when the agent loop does not finish within its step budget."""

    def __init__(self, max_steps: int, trajectory: list[Any], transitions: list[Any] | None = None) -> None:
        self.max_steps = max_steps
        self.trajectory = trajectory
        self.transitions = transitions or []
        super().__init__(
            f"Agent did not reach a final answer within {max_steps} steps",
            {"max_steps": max_steps, "steps_taken": len(trajectory)},
        )


__all__ = [
    "RagError",
    "ConfigurationError",
    "TemplateError",
    "InvalidArgumentError",
    "NotInitializedError",
    "StoreCorruptError",
    "UpstreamServiceError",
    "ToolInvocationError",
    "StepBudgetExceededError",
]
