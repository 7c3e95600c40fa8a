"""Error types for expert coordination.

These errors are raised and handled inside the coordinator. None of them
escapes plan_today or get_session_plan; each is mapped onto a fallback tier:
- ExpertFailureError: one expert threw, timed out or returned garbage (empty proposal)
- ValidationFailureError: context could not be validated (conservative defaults)
- DependencyMissingError: an optional capability is not available (skip feature)
- TotalReconciliationError: the pipeline itself failed (static fallback plan)
"""


class CoordinationError(Exception):
    """Base exception for coordination errors."""

    pass


class ExpertFailureError(CoordinationError):
    """Raised when an expert fails to produce a proposal.

    Attributes:
        expert: Expert name
        original_error: Original exception that caused the failure
    """

    def __init__(self, expert: str, original_error: BaseException) -> None:
        self.expert = expert
        self.original_error = original_error
        super().__init__(f"Expert '{expert}' failed: {type(original_error).__name__}: {original_error}")


class ValidationFailureError(CoordinationError):
    """Raised when a context cannot be validated.

    Attributes:
        errors: List of validation error strings
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Context validation failed: {errors}")


class DependencyMissingError(CoordinationError):
    """Raised when an optional capability is used but unavailable."""

    def __init__(self, dependency: str, reason: str | None = None) -> None:
        self.dependency = dependency
        self.reason = reason
        message = f"Dependency '{dependency}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TotalReconciliationError(CoordinationError):
    """Raised when a pipeline stage fails outright.

    Attributes:
        stage: Stage name that failed
        original_error: Original exception that caused the failure
    """

    def __init__(self, stage: str, original_error: BaseException) -> None:
        self.stage = stage
        self.original_error = original_error
        super().__init__(f"Stage '{stage}' failed: {original_error}")
