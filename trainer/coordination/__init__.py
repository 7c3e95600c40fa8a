"""Expert coordination - one safe session plan from many domain experts.

This module provides:
- ExpertCoordinator with plan_today (memoized) and get_session_plan
- Collaborator contracts (experts, enrichment, validation, substitution, advisories)
- Context, Proposal, Block and Plan value types
"""

from trainer.coordination.alternates import StaticExerciseAlternates
from trainer.coordination.contracts import (
    Advisory,
    AdvisoryNotifier,
    Alternate,
    Available,
    ContextEnricher,
    ContextValidator,
    ExerciseAlternates,
    ExpertCapability,
    Unavailable,
    resolve_capability,
)
from trainer.coordination.coordinator import ExpertCoordinator
from trainer.coordination.errors import (
    CoordinationError,
    DependencyMissingError,
    ExpertFailureError,
    TotalReconciliationError,
    ValidationFailureError,
)
from trainer.coordination.types import Block, Constraint, Context, Plan, Priority, Proposal
from trainer.coordination.validation import DataValidator

__all__ = [
    "Advisory",
    "AdvisoryNotifier",
    "Alternate",
    "Available",
    "Block",
    "Constraint",
    "Context",
    "ContextEnricher",
    "ContextValidator",
    "CoordinationError",
    "DataValidator",
    "DependencyMissingError",
    "ExerciseAlternates",
    "ExpertCapability",
    "ExpertCoordinator",
    "ExpertFailureError",
    "Plan",
    "Priority",
    "Proposal",
    "StaticExerciseAlternates",
    "TotalReconciliationError",
    "Unavailable",
    "ValidationFailureError",
    "resolve_capability",
]
