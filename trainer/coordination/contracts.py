"""Contracts for collaborators the coordinator depends on.

Experts, context enrichment, data validation, exercise substitution and
advisory delivery are provided by the caller. Optional collaborators are
resolved once, at construction, into Available or Unavailable.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Literal, Protocol, TypeVar

from loguru import logger
from pydantic import Field

from trainer.coordination.errors import DependencyMissingError
from trainer.coordination.types import Context, FrozenModel, Proposal

T = TypeVar("T")


class Alternate(FrozenModel):
    """A substitute exercise offered by the exercise-substitution capability."""

    name: str
    rationale: str | None = None
    rest_adjustment: int = 0
    volume_adjustment: float = 1.0


class ConservativeRecommendations(FrozenModel):
    intensity: Literal["light", "moderate", "moderate-high"] = "moderate"
    volume: Literal["low", "moderate", "moderate-high"] = "moderate"
    duration: int = 45
    focus: str = "general"
    notes: list[str] = Field(default_factory=list)


class Advisory(FrozenModel):
    """Short, non-blocking user notification.

    Message text is user-friendly and never carries raw exception text.
    """

    subsystem: str
    message: str
    fallback_message: str | None = None
    severity: Literal["low", "medium", "high"] = "medium"
    duration_ms: int = 15000
    choices: list[str] = Field(default_factory=list)


class ExpertCapability(Protocol):
    """A domain expert. propose may be sync or async."""

    def propose(self, context: Context) -> Proposal | Mapping[str, Any] | Awaitable[Proposal | Mapping[str, Any]]:
        ...


class ContextEnricher(Protocol):
    def build_context(self, context: Context) -> Context | Mapping[str, Any] | Awaitable[Context | Mapping[str, Any]]:
        ...


class ContextValidator(Protocol):
    def validate_context(self, raw: Mapping[str, Any]) -> Mapping[str, Any]:
        ...

    def generate_conservative_recommendations(self, context: Context) -> ConservativeRecommendations:
        ...

    def generate_safety_flags(self, context: Context) -> list[str]:
        ...


class ExerciseAlternates(Protocol):
    def get_alternates(self, exercise: str) -> list[Alternate]:
        ...


class AdvisoryNotifier(Protocol):
    def notify(self, advisory: Advisory) -> None:
        ...


@dataclass(frozen=True)
class Available(Generic[T]):
    instance: T

    def require(self) -> T:
        return self.instance


@dataclass(frozen=True)
class Unavailable:
    reason: str
    dependency: str = "capability"

    def require(self) -> Any:
        """Raise DependencyMissingError; callers catch it and skip the feature."""
        raise DependencyMissingError(self.dependency, self.reason)


def resolve_capability(factory: Callable[[], T] | None, name: str) -> Available[T] | Unavailable:
    """Resolve an optional collaborator once.

    Args:
        factory: Zero-argument callable building the collaborator, or None
        name: Capability name used in logs and in the Unavailable reason

    Returns:
        Available wrapping the instance, or Unavailable with a reason
    """
    if factory is None:
        logger.info(f"Capability not configured: {name}", capability=name)
        return Unavailable(reason=f"{name} not configured", dependency=name)
    try:
        instance = factory()
    except Exception as e:
        logger.warning(
            f"Capability failed to initialize: {name}",
            capability=name,
            error_type=type(e).__name__,
            error=str(e),
        )
        return Unavailable(reason=f"{name} failed to initialize: {type(e).__name__}", dependency=name)
    return Available(instance=instance)
