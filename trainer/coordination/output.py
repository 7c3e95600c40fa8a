"""Final shaping of a resolved plan: intensity scale, explanations, warnings."""

from trainer.coordination.fallback import iso_timestamp
from trainer.coordination.load import conservative_rpe
from trainer.coordination.resolver import DEFAULT_TIME_CRUNCH_MINUTES
from trainer.coordination.types import PLAN_BUCKETS, Context, Plan

INFERRED_READINESS_FACTOR = 0.85
REFERENCE_RPE = 7.0
MINUTES_PER_MAIN_EXERCISE = 8
DEFAULT_SESSION_MINUTES = 45
MAX_MAIN_MINUTES = 40
CRUNCHED_MAIN_MINUTES = 20


def calculate_intensity_scale(readiness: float) -> float:
    if readiness >= 8:
        return 1.0
    if readiness >= 6:
        return 0.9
    if readiness >= 4:
        return 0.8
    return 0.6


def calculate_main_duration(exercise_count: int, context: Context) -> float:
    """Minutes of main work, from the time limit or else the preferred session length."""
    base = exercise_count * MINUTES_PER_MAIN_EXERCISE
    available = context.constraints.time_limit or context.preferences.session_length or DEFAULT_SESSION_MINUTES
    if available <= DEFAULT_TIME_CRUNCH_MINUTES:
        return min(round(base * 0.6, 1), CRUNCHED_MAIN_MINUTES)
    return float(min(base, MAX_MAIN_MINUTES))


def structure_plan(
    plan: Plan,
    context: Context,
    *,
    now: float,
    experts: list[str],
    failed_experts: list[str],
) -> Plan:
    """Attach intensity scale, why/warnings lines and metadata."""
    why = list(context.load_adjustments)
    warnings: list[str] = list(plan.warnings or [])

    intensity_scale = calculate_intensity_scale(context.readiness) * context.intensity_scale * plan.intensity_scale

    if context.data_confidence is not None and context.data_confidence.recent7days < 1.0:
        scaled_rpe = conservative_rpe(REFERENCE_RPE, context.data_confidence)
        if scaled_rpe < REFERENCE_RPE:
            intensity_scale *= scaled_rpe / REFERENCE_RPE
            why.append(f"Intensity adjusted for data confidence ({context.data_confidence.recent7days:.0%} of recent days)")

    if context.readiness_inferred and context.readiness < 7:
        intensity_scale *= INFERRED_READINESS_FACTOR
        why.append("Readiness estimated from training data: intensity reduced")

    for bucket in PLAN_BUCKETS:
        for block in getattr(plan, bucket):
            if block.rationale and block.rationale not in why:
                why.append(block.rationale)
    why.extend(note.text for note in plan.notes)
    why.extend(line for line in plan.why if line not in why)

    if context.readiness <= 4:
        warnings.append("Low readiness today - listen to your body")
    if any(s.original == "lower_body_work" for s in plan.substitutions):
        warnings.append("Game tomorrow - keep the session light")
    if context.conservative_defaults:
        warnings.append("Some of your data could not be validated - using conservative settings")
    if failed_experts:
        warnings.append("Some recommendations were unavailable today")

    return plan.model_copy(
        update={
            "intensity_scale": round(intensity_scale, 3),
            "why": why,
            "warnings": warnings or None,
            "metadata": plan.metadata.model_copy(
                update={
                    "generated_at": iso_timestamp(now),
                    "experts": experts,
                    "failed_experts": failed_experts,
                    "main_duration_minutes": calculate_main_duration(len(plan.main_sets), context),
                }
            ),
        }
    )
