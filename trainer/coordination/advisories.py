"""User-facing advisories for degraded coordination.

Advisories are short, non-blocking notifications. They are built from an
error without exposing its text, and a notifier failure never affects the plan.
"""

import asyncio

from loguru import logger

from trainer.coordination.contracts import Advisory, AdvisoryNotifier

EXPERT_DISPLAY_NAMES: dict[str, str] = {
    "strength": "Strength Training",
    "sports": "Sports Conditioning",
    "physio": "Injury Prevention",
    "nutrition": "Nutrition Guidance",
    "aesthetics": "Body Composition",
    "climbing": "Climbing Training",
}

EXPERT_SEVERITY: dict[str, str] = {
    "physio": "high",
    "sports": "medium",
    "strength": "medium",
    "climbing": "medium",
    "aesthetics": "low",
    "nutrition": "low",
}

_ERROR_MESSAGES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("network", "fetch", "connection"), "connection issue"),
    (("timeout", "timed out"), "taking longer than expected"),
    (("validation", "invalid"), "data validation issue"),
    (("memory", "allocation"), "resource constraint"),
    (("permission", "unauthorized", "forbidden"), "access limitation"),
)


def expert_display_name(expert: str) -> str:
    return EXPERT_DISPLAY_NAMES.get(expert, expert)


def user_friendly_error_message(error: BaseException) -> str:
    """Map an exception to a short phrase safe to show to a user."""
    if isinstance(error, TimeoutError | asyncio.TimeoutError):
        return "taking longer than expected"
    if isinstance(error, ConnectionError):
        return "connection issue"
    if isinstance(error, MemoryError):
        return "resource constraint"
    if isinstance(error, PermissionError):
        return "access limitation"

    text = f"{type(error).__name__} {error}".lower()
    for needles, message in _ERROR_MESSAGES:
        if any(needle in text for needle in needles):
            return message
    return "temporary unavailability"


def expert_failure_advisory(expert: str, error: BaseException, duration_ms: int = 15000) -> Advisory:
    display_name = expert_display_name(expert)
    reason = user_friendly_error_message(error)
    return Advisory(
        subsystem=expert,
        message=f"{display_name} recommendations are temporarily unavailable ({reason})",
        fallback_message="Your workout plan has been adjusted to work without this component",
        severity=EXPERT_SEVERITY.get(expert, "medium"),
        duration_ms=duration_ms,
    )


def planning_unavailable_advisory(duration_ms: int = 15000) -> Advisory:
    return Advisory(
        subsystem="coordinator",
        message="AI planning system is temporarily unavailable",
        fallback_message="Using a safe, simplified workout plan",
        severity="medium",
        duration_ms=duration_ms,
    )


def dispatch_advisory(notifier: AdvisoryNotifier | None, advisory: Advisory) -> None:
    """Deliver an advisory; notifier errors are logged and dropped."""
    if notifier is None:
        logger.debug(
            "Advisory not delivered: no notifier configured",
            subsystem=advisory.subsystem,
            advisory_message=advisory.message,
        )
        return
    try:
        notifier.notify(advisory)
    except Exception as e:
        logger.warning(
            "Advisory notifier failed",
            subsystem=advisory.subsystem,
            error_type=type(e).__name__,
            error=str(e),
        )


class LoggingAdvisoryNotifier:
    """Notifier that writes advisories to the log. Used when no UI is attached."""

    def notify(self, advisory: Advisory) -> None:
        logger.warning(
            f"User advisory: {advisory.message}",
            subsystem=advisory.subsystem,
            severity=advisory.severity,
            fallback_message=advisory.fallback_message,
        )
