"""Training-load adjustments applied to the context before experts run.

Rolling load metrics (ATL/CTL, monotony, strain), yesterday's high-intensity
minutes and heart-rate data confidence adjust the context flags and the
intensity scale. Every adjustment records a human-readable reason.
"""

from loguru import logger

from trainer.coordination.types import Context, DataConfidence

HIGH_Z4_MINUTES = 20
HIGH_Z5_MINUTES = 10
HIGH_STRAIN = 150
HIGH_MONOTONY = 2
ACUTE_CHRONIC_SPIKE = 1.2
ACUTE_CHRONIC_LOW = 0.8
LOW_READINESS_PROXY = 0.8
LOW_DATA_CONFIDENCE = 0.5

READINESS_PROXY_MIN = 0.5
READINESS_PROXY_MAX = 1.2
MAX_CONSERVATIVE_RPE = 8.0


def calculate_readiness_proxy(context: Context) -> float:
    """Estimate readiness from load data alone, in [0.5, 1.2].

    1.0 is neutral. A spike in acute load, hard work yesterday, monotonous
    training and low data confidence pull it down.
    """
    proxy = 1.0
    load = context.load

    if load.ctl28 > 0:
        ratio = load.atl7 / load.ctl28
        if ratio > ACUTE_CHRONIC_SPIKE:
            proxy *= 0.8
        elif ratio < ACUTE_CHRONIC_LOW:
            proxy *= 1.1

    if context.yesterday.z4_min >= HIGH_Z4_MINUTES:
        proxy *= 0.85
    elif context.yesterday.z5_min >= HIGH_Z5_MINUTES:
        proxy *= 0.9

    if load.monotony > HIGH_MONOTONY:
        proxy *= 0.85

    if context.data_confidence is not None:
        proxy *= 0.5 + 0.5 * context.data_confidence.recent7days

    return min(max(proxy, READINESS_PROXY_MIN), READINESS_PROXY_MAX)


def conservative_rpe(base_rpe: float, confidence: DataConfidence | None) -> float:
    """Scale a target RPE by data confidence, capped at RPE 8."""
    if confidence is None:
        return min(base_rpe, MAX_CONSERVATIVE_RPE)
    scaled = base_rpe * (0.5 + 0.5 * confidence.recent7days)
    return round(min(scaled, MAX_CONSERVATIVE_RPE), 1)


def apply_load_adjustments(context: Context) -> Context:
    """Return a copy of the context with load-based flags and scales applied."""
    adjustments: list[str] = list(context.load_adjustments)
    update: dict[str, object] = {}
    load = context.load

    if context.yesterday.z4_min >= HIGH_Z4_MINUTES or context.yesterday.z5_min >= HIGH_Z5_MINUTES:
        update["suppress_heavy_lower"] = True
        adjustments.append(
            f"High intensity yesterday ({context.yesterday.z4_min:g} min Z4, "
            f"{context.yesterday.z5_min:g} min Z5): heavy lower-body work suppressed"
        )

    if load.strain > HIGH_STRAIN or (load.monotony > HIGH_MONOTONY and load.atl7 > load.ctl28 * ACUTE_CHRONIC_SPIKE):
        update["recommend_deload"] = True
        adjustments.append("High training strain: deload recommended")

    proxy = calculate_readiness_proxy(context)
    if proxy < LOW_READINESS_PROXY:
        update["intensity_scale"] = round(context.intensity_scale * proxy, 3)
        adjustments.append(f"Load-based readiness is low ({proxy:.2f}): intensity reduced")

    if context.data_confidence is not None and context.data_confidence.recent7days < LOW_DATA_CONFIDENCE:
        update["conservative_mode"] = True
        adjustments.append("Limited recent heart-rate data: conservative prescription")

    if not update:
        return context

    update["load_adjustments"] = adjustments
    logger.debug(
        "Load adjustments applied",
        user_id=context.user_id,
        adjustment_count=len(adjustments),
    )
    return context.model_copy(update=update)
