"""Readiness and physiological scaling.

Template blocks are scaled by the readiness multiplier; expert blocks already
received their readiness reduction from the conflict resolver and are only
zone-shifted here. Heart-rate data and learned exercise weights then adjust
intensity, add recovery work and order accessories.
"""

import math
import re
from collections.abc import Callable

from loguru import logger

from trainer.coordination.types import (
    MIN_ACCESSORY_SETS,
    MIN_MAIN_SETS,
    PLAN_BUCKETS,
    TEMPLATE_SOURCE,
    Block,
    Context,
    HeartRateData,
    Plan,
)

ZONES: tuple[str, ...] = ("Z1", "Z2", "Z3", "Z4", "Z5")

LOW_READINESS_THRESHOLD = 6
HIGH_READINESS_THRESHOLD = 8
LOW_READINESS_MULTIPLIER = 0.8
HIGH_READINESS_MULTIPLIER = 1.1

HRV_HIGH_RATIO = 1.1
HRV_LOW_RATIO = 0.9
HRV_HIGH_FACTOR = 1.05
HRV_LOW_FACTOR = 0.85

RESTING_HR_ELEVATION = 1.05
ACTIVE_RECOVERY_MINUTES = 15.0
ACTIVE_RECOVERY_SOURCE = "heart_rate"

PERSONAL_WEIGHT_MIN = 0.8
PERSONAL_WEIGHT_MAX = 1.2

_RANGE_PATTERN = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
_NUMBER_PATTERN = re.compile(r"\d+")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def floor_stable(value: float) -> int:
    """Floor that ignores binary noise (3 * 0.7 floors to 2, 10 * 0.7 to 7)."""
    return math.floor(round(value, 9))


def ceil_stable(value: float) -> int:
    return math.ceil(round(value, 9))


def scale_reps(
    reps: int | str | None,
    multiplier: float,
    rounding: Callable[[float], int] = round_half_up,
) -> int | str | None:
    """Scale a rep prescription.

    Integers and numeric strings scale directly, "8-12" style ranges scale
    both ends. Strings without a number ("AMRAP") are returned unchanged.
    Scaled values never drop below 1.
    """
    if reps is None or isinstance(reps, bool):
        return reps
    if isinstance(reps, int):
        return max(1, rounding(reps * multiplier))

    match = _RANGE_PATTERN.match(reps)
    if match:
        low = max(1, rounding(int(match.group(1)) * multiplier))
        high = max(1, rounding(int(match.group(2)) * multiplier))
        return f"{low}-{high}"

    number = _NUMBER_PATTERN.search(reps)
    if number:
        return str(max(1, rounding(int(number.group(0)) * multiplier)))
    return reps


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------


def intensity_multiplier(readiness: float) -> float:
    if readiness < LOW_READINESS_THRESHOLD:
        return LOW_READINESS_MULTIPLIER
    if readiness > HIGH_READINESS_THRESHOLD:
        return HIGH_READINESS_MULTIPLIER
    return 1.0


def shift_zone(zone: str | None, multiplier: float) -> str | None:
    """Move a Z1-Z5 label one level in the multiplier's direction, clamped."""
    if zone not in ZONES or multiplier == 1.0:
        return zone
    index = ZONES.index(zone)
    step = -1 if multiplier < 1.0 else 1
    return ZONES[min(max(index + step, 0), len(ZONES) - 1)]


def _scale_block(block: Block, multiplier: float, min_sets: int) -> Block:
    update: dict[str, object] = {}
    if block.sets is not None:
        update["sets"] = max(min_sets, round_half_up(block.sets * multiplier))
    if block.duration is not None:
        update["duration"] = round(block.duration * multiplier, 1)
    if block.reps is not None:
        update["reps"] = scale_reps(block.reps, multiplier)
    return block.model_copy(update=update)


def scale_template_blocks(plan: Plan, readiness: float) -> Plan:
    """Scale duration, sets and reps of template-sourced blocks."""
    multiplier = intensity_multiplier(readiness)
    if multiplier == 1.0:
        return plan

    update: dict[str, list[Block]] = {}
    for bucket in PLAN_BUCKETS:
        min_sets = MIN_MAIN_SETS if bucket == "main_sets" else MIN_ACCESSORY_SETS
        update[bucket] = [
            _scale_block(block, multiplier, min_sets) if block.source == TEMPLATE_SOURCE else block
            for block in getattr(plan, bucket)
        ]
    logger.debug(f"Template scaled by readiness multiplier {multiplier}", readiness=readiness)
    return plan.model_copy(update=update)


def shift_plan_zones(plan: Plan, readiness: float) -> Plan:
    """Shift zone labels and record the readiness multiplier.

    The resting-HR active-recovery block stays in its zone.
    """
    multiplier = intensity_multiplier(readiness)
    update: dict[str, object] = {
        "metadata": plan.metadata.model_copy(update={"readiness_multiplier": multiplier}),
    }
    if multiplier != 1.0:
        for bucket in PLAN_BUCKETS:
            update[bucket] = [
                block
                if block.source == ACTIVE_RECOVERY_SOURCE
                else block.model_copy(update={"intensity": shift_zone(block.intensity, multiplier)})
                for block in getattr(plan, bucket)
            ]
    return plan.model_copy(update=update)


# ---------------------------------------------------------------------------
# Heart rate
# ---------------------------------------------------------------------------


def heart_rate_intensity_factor(heart_rate: HeartRateData | None) -> float:
    if heart_rate is None or not heart_rate.hrv or not heart_rate.hrv_baseline:
        return 1.0
    if heart_rate.hrv > heart_rate.hrv_baseline * HRV_HIGH_RATIO:
        return HRV_HIGH_FACTOR
    if heart_rate.hrv < heart_rate.hrv_baseline * HRV_LOW_RATIO:
        return HRV_LOW_FACTOR
    return 1.0


def resting_hr_elevated(heart_rate: HeartRateData | None) -> bool:
    if heart_rate is None or not heart_rate.resting_hr or not heart_rate.resting_hr_baseline:
        return False
    return heart_rate.resting_hr > heart_rate.resting_hr_baseline * RESTING_HR_ELEVATION


def apply_heart_rate_scaling(plan: Plan, context: Context) -> Plan:
    """Adjust intensity from HRV and add active recovery for elevated resting HR.

    Runs before conflict resolution. The recovery block leads the finishers so
    simple-mode and time-crunch trims keep it.
    """
    heart_rate = context.heart_rate
    factor = heart_rate_intensity_factor(heart_rate)
    why = list(plan.why)
    update: dict[str, object] = {}

    if factor != 1.0:
        update["intensity_scale"] = plan.intensity_scale * factor
        if factor > 1.0:
            why.append("HRV above baseline: intensity nudged up")
        else:
            why.append("HRV below baseline: intensity reduced")

    if resting_hr_elevated(heart_rate):
        recovery = Block(
            type="active_recovery",
            exercise="Active Recovery",
            sets=1,
            duration=ACTIVE_RECOVERY_MINUTES,
            intensity="Z1",
            rationale="Resting heart rate is elevated above baseline",
            source=ACTIVE_RECOVERY_SOURCE,
        )
        update["finishers"] = [recovery, *plan.finishers]
        why.append("Resting heart rate elevated: added 15 minutes of active recovery")

    if not update:
        return plan
    update["why"] = why
    return plan.model_copy(update=update)


# ---------------------------------------------------------------------------
# Personal weighting
# ---------------------------------------------------------------------------


def apply_personal_weighting(plan: Plan, context: Context) -> Plan:
    """Order accessories by learned preference and scale their sets."""
    weights = {name.lower(): weight for name, weight in context.personal_weights.items()}
    if not weights or not plan.accessories:
        return plan

    def weight_of(block: Block) -> float | None:
        return weights.get(block.display_name.lower())

    weighted: list[Block] = []
    applied = False
    for block in plan.accessories:
        weight = weight_of(block)
        if weight is None or block.sets is None:
            weighted.append(block)
            continue
        clamped = min(max(weight, PERSONAL_WEIGHT_MIN), PERSONAL_WEIGHT_MAX)
        weighted.append(block.model_copy(update={"sets": max(MIN_ACCESSORY_SETS, round_half_up(block.sets * clamped))}))
        applied = True

    # Stable sort keeps the merged order among equally weighted accessories.
    ordered = sorted(weighted, key=lambda block: -(weight_of(block) or 1.0))
    if ordered != list(plan.accessories):
        applied = True
    if not applied:
        return plan
    return plan.model_copy(
        update={
            "accessories": ordered,
            "why": [*plan.why, "Accessories ordered by your exercise preferences"],
        }
    )
