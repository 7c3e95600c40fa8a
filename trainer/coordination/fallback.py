"""Fallback plans.

Tier 2 builds a conservative, data-driven session when no expert produced
anything. Tier 3 is a static session used when the pipeline itself failed.
Both always contain exercises and are marked as fallbacks.
"""

from datetime import UTC, datetime

from loguru import logger

from trainer.coordination.contracts import Available, ConservativeRecommendations, ContextValidator, Unavailable
from trainer.coordination.types import Block, Context, Plan, PlanMetadata
from trainer.core.observability import CoordinatorStage, log_event, log_stage_event

SIMPLIFIED_PLAN_WARNING = "Using a safe, simplified workout plan"
STATIC_PLAN_WARNING = "Using fallback plan"


def iso_timestamp(now: float) -> str:
    return datetime.fromtimestamp(now, tz=UTC).isoformat()


def infer_training_level(context: Context) -> str:
    experience = (context.user.experience or "").lower()
    if experience in {"beginner", "intermediate", "advanced"}:
        return experience
    if context.load.ctl28 > 80:
        return "advanced"
    if context.load.ctl28 > 40:
        return "intermediate"
    return "beginner"


def default_recommendations(context: Context) -> ConservativeRecommendations:
    intensity = "light" if context.readiness <= 4 else "moderate"
    volume = "low" if context.load.atl7 > 150 else "moderate"
    return ConservativeRecommendations(intensity=intensity, volume=volume, duration=30)


def default_safety_flags(context: Context) -> list[str]:
    flags: list[str] = []
    if context.readiness <= 3:
        flags.append("Low readiness - consider light workout or rest")
    if context.load.atl7 > 150:
        flags.append("High training load - reduce volume")
    return flags


def _recommendations_and_flags(
    context: Context,
    validator: Available[ContextValidator] | Unavailable,
) -> tuple[ConservativeRecommendations, list[str]]:
    if isinstance(validator, Available):
        try:
            return (
                validator.instance.generate_conservative_recommendations(context),
                list(validator.instance.generate_safety_flags(context)),
            )
        except Exception as e:
            logger.warning(
                "Validator recommendations failed, using built-in defaults",
                error_type=type(e).__name__,
                error=str(e),
            )
    return default_recommendations(context), default_safety_flags(context)


def conservative_fallback_plan(
    context: Context,
    validator: Available[ContextValidator] | Unavailable,
    *,
    now: float,
    reason: str = "no expert proposals",
) -> Plan:
    """Tier 2: conservative plan from validator recommendations and safety flags."""
    log_stage_event(CoordinatorStage.FALLBACK, "start", {"tier": 2})
    recommendations, flags = _recommendations_and_flags(context, validator)
    level = infer_training_level(context)

    sets = 2 if recommendations.volume == "low" else 3
    if level == "beginner":
        sets = min(sets, 2)
    light = recommendations.intensity == "light"
    target_rpe = 6.0 if light else 7.0
    intensity_scale = 0.7 if light else 0.8
    duration = float(recommendations.duration or 30)

    plan = Plan(
        warmup=[
            Block(
                type="warmup",
                exercise="General Mobility",
                duration=10.0,
                intensity="Z1",
                rationale="Prepare joints and muscles for movement",
                source="fallback",
            )
        ],
        main_sets=[
            Block(
                type="main_sets",
                exercise="Bodyweight Circuit",
                sets=sets,
                reps="10-15",
                duration=max(duration - 15.0, 10.0),
                target_rpe=target_rpe,
                rationale=f"Conservative {recommendations.intensity} session ({level} level)",
                source="fallback",
            )
        ],
        finishers=[
            Block(
                type="cooldown",
                exercise="Stretching",
                duration=5.0,
                intensity="Z1",
                rationale="Cool down and recover",
                source="fallback",
            )
        ],
        session_notes=f"Today's readiness: {context.readiness:g}/10. Simplified session.",
        metadata=PlanMetadata(source="conservative_fallback", fallback_tier=2, generated_at=iso_timestamp(now)),
        intensity_scale=intensity_scale,
        why=[
            f"Conservative plan generated because of {reason}",
            f"Intensity {recommendations.intensity}, volume {recommendations.volume}",
            *recommendations.notes,
        ],
        warnings=flags or [SIMPLIFIED_PLAN_WARNING],
        is_fallback=True,
    )
    log_event("fallback_tier_used", tier=2, reason=reason, user_id=context.user_id)
    log_stage_event(CoordinatorStage.FALLBACK, "success", {"tier": 2})
    return plan


def static_fallback_plan(*, now: float, reason: str | None = None) -> Plan:
    """Tier 3: fixed, safe session."""
    logger.error(f"Using static fallback plan: {reason or 'unknown failure'}")
    log_event("fallback_tier_used", tier=3, reason=reason)
    return Plan(
        warmup=[
            Block(
                type="warmup",
                exercise="General Mobility",
                duration=10.0,
                intensity="Z1",
                rationale="Prepare body for exercise",
                source="fallback",
            )
        ],
        main_sets=[
            Block(
                type="main_sets",
                exercise="Bodyweight Circuit",
                sets=3,
                reps="10-15",
                target_rpe=6.0,
                rationale="Safe, effective full-body workout",
                source="fallback",
            )
        ],
        session_notes="Fallback session: light full-body work.",
        metadata=PlanMetadata(source="static_fallback", fallback_tier=3, generated_at=iso_timestamp(now)),
        intensity_scale=0.7,
        why=["Using a safe fallback workout"],
        warnings=[STATIC_PLAN_WARNING],
        is_fallback=True,
    )
