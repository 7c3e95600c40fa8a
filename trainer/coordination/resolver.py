"""Conflict resolution over a merged plan.

Passes run in a fixed order and each returns a new plan:
1. safety substitution (knee concern swaps squat-family main work)
2. game-day rule (no heavy lower-body work the day before a game)
3. low-readiness reduction
4. load-based volume scaling
5. recovery-day override
6. simple-mode trim
7. time-crunch trim

Main work never drops below 2 sets and accessories below 1. Combined
readiness and volume reductions are floored at 40% of the original sets.
"""

from collections.abc import Mapping

from loguru import logger

from trainer.coordination.advisories import dispatch_advisory
from trainer.coordination.contracts import (
    Advisory,
    AdvisoryNotifier,
    Available,
    ExerciseAlternates,
    Unavailable,
)
from trainer.coordination.errors import DependencyMissingError
from trainer.coordination.merge import GAME_DAY_SAFETY
from trainer.coordination.scaling import ceil_stable, floor_stable, scale_reps
from trainer.coordination.types import (
    DEFAULT_SETS,
    MIN_ACCESSORY_SETS,
    MIN_MAIN_SETS,
    TEMPLATE_SOURCE,
    Block,
    Context,
    PendingChoice,
    Plan,
    Proposal,
)
from trainer.core.observability import CoordinatorStage, log_stage_event

LOW_READINESS_THRESHOLD = 4
READINESS_REDUCTION = 0.7
MAX_STACKED_REDUCTION_FLOOR = 0.4
GAME_DAY_BLOCK_DAYS = 1
DEFAULT_TIME_CRUNCH_MINUTES = 25

KNEE_PAIN_FLAG = "knee_pain"
HEAVY_LOWER_PATTERNS: tuple[str, ...] = ("squat", "deadlift")

KNEE_SUBSTITUTION_UNAVAILABLE_NOTE = (
    "Knee pain detected, but exercise substitution is unavailable. "
    "Consider avoiding deep squats and use pain-free range of motion."
)


def _physio(proposals: Mapping[str, Proposal]) -> Proposal:
    return proposals.get("physio") or Proposal.empty()


def has_knee_concern(context: Context, proposals: Mapping[str, Proposal]) -> bool:
    if KNEE_PAIN_FLAG in context.constraints.flags:
        return True
    physio = _physio(proposals)
    texts = [block.rationale for block in physio.blocks] + [block.notes for block in physio.blocks]
    texts += [constraint.rule for constraint in physio.constraints]
    return any("knee" in text.lower() for text in texts if text)


def is_squat_family(block: Block) -> bool:
    name = block.display_name.lower()
    return "squat" in name and "goblet" not in name


def is_heavy_lower(block: Block) -> bool:
    name = block.display_name.lower()
    return any(pattern in name for pattern in HEAVY_LOWER_PATTERNS)


def days_until_game(context: Context, proposals: Mapping[str, Proposal]) -> int | None:
    sports = proposals.get("sports") or Proposal.empty()
    constraint = sports.find_constraint(GAME_DAY_SAFETY)
    if constraint is not None and constraint.days_until_game is not None:
        return constraint.days_until_game
    if context.schedule.is_game_day:
        return 0
    return context.schedule.days_until_game


def adjust_reps_for_volume(reps: int | str | None, volume_scale: float) -> int | str | None:
    return scale_reps(reps, volume_scale, rounding=floor_stable)


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------


def track_original_sets(plan: Plan) -> Plan:
    def track(block: Block) -> Block:
        if block.original_sets is not None or block.sets is None:
            return block
        return block.model_copy(update={"original_sets": block.sets})

    return plan.model_copy(
        update={
            "main_sets": [track(block) for block in plan.main_sets],
            "accessories": [track(block) for block in plan.accessories],
        }
    )


def apply_safety_substitution(
    plan: Plan,
    context: Context,
    proposals: Mapping[str, Proposal],
    alternates: Available[ExerciseAlternates] | Unavailable,
) -> Plan:
    """Swap squat-family main work for a knee-friendly alternate."""
    if not has_knee_concern(context, proposals):
        return plan

    try:
        substitutes = alternates.require()
    except DependencyMissingError as e:
        logger.warning(
            "Knee concern detected but exercise substitution unavailable",
            dependency=e.dependency,
            reason=e.reason,
        )
        return plan.with_note("physio", KNEE_SUBSTITUTION_UNAVAILABLE_NOTE)

    main_sets: list[Block] = []
    substituted = plan
    for block in plan.main_sets:
        if not is_squat_family(block):
            main_sets.append(block)
            continue
        try:
            options = substitutes.get_alternates(block.display_name)
        except Exception as e:
            logger.warning(
                f"Exercise substitution failed for {block.display_name}",
                error_type=type(e).__name__,
                error=str(e),
            )
            options = []
        if not options:
            main_sets.append(block)
            continue

        alternate = options[0]
        main_sets.append(
            block.model_copy(
                update={
                    "exercise": alternate.name,
                    "name": alternate.name if block.name else None,
                    "rationale": alternate.rationale or "Knee-friendly alternative",
                    "constraint_source": "physio",
                }
            )
        )
        substituted = substituted.with_substitution(
            block.display_name, alternate.name, "Knee pain - safer alternative"
        )

    return substituted.model_copy(update={"main_sets": main_sets})


def apply_game_day_rule(plan: Plan, context: Context, proposals: Mapping[str, Proposal]) -> Plan:
    """Drop heavy lower-body main work when a game is at most a day away."""
    days = days_until_game(context, proposals)
    if days is None or days > GAME_DAY_BLOCK_DAYS:
        return plan

    kept = [block for block in plan.main_sets if not is_heavy_lower(block)]
    removed = len(plan.main_sets) - len(kept)
    logger.info(f"Game-day rule applied, removed {removed} heavy lower-body blocks", days_until_game=days)
    updated = plan.model_copy(update={"main_sets": kept})
    return updated.with_substitution(
        "lower_body_work",
        "upper_body_light + power_maintenance",
        "Game tomorrow - upper body maintenance only",
    ).with_note("sports", "Game tomorrow: heavy lower-body work removed")


def apply_low_readiness_reduction(plan: Plan, context: Context) -> Plan:
    """Cut main-work sets and load by 30% when readiness is 4 or below.

    Template blocks are skipped; the readiness multiplier already reduced them.
    """
    if context.readiness > LOW_READINESS_THRESHOLD:
        return plan

    def reduce(block: Block) -> Block:
        if block.source == TEMPLATE_SOURCE:
            return block
        base = block.original_sets or block.sets or DEFAULT_SETS
        update: dict[str, object] = {
            "sets": max(MIN_MAIN_SETS, floor_stable(base * READINESS_REDUCTION)),
            "readiness_reduced": True,
            "original_sets": base,
        }
        if block.load is not None:
            update["load"] = round(block.load * READINESS_REDUCTION, 2)
        return block.model_copy(update=update)

    updated = plan.model_copy(update={"main_sets": [reduce(block) for block in plan.main_sets]})
    return updated.with_note(
        "readiness",
        f"Low readiness ({context.readiness:g}/10): volume and load reduced by 30%",
    )


def apply_volume_scaling(plan: Plan, context: Context) -> Plan:
    """Scale sets and reps by the load-derived volume scale."""
    volume_scale = context.volume_scale
    if volume_scale >= 1.0:
        return plan

    def scale_main(block: Block) -> Block:
        original = block.original_sets or block.sets or DEFAULT_SETS
        base = floor_stable(original * READINESS_REDUCTION) if block.readiness_reduced else original
        floor_sets = max(MIN_MAIN_SETS, ceil_stable(original * MAX_STACKED_REDUCTION_FLOOR))
        return block.model_copy(
            update={
                "sets": max(floor_sets, floor_stable(base * volume_scale)),
                "reps": adjust_reps_for_volume(block.reps, volume_scale),
            }
        )

    def scale_accessory(block: Block) -> Block:
        original = block.original_sets or block.sets or DEFAULT_SETS
        floor_sets = max(MIN_ACCESSORY_SETS, ceil_stable(original * MAX_STACKED_REDUCTION_FLOOR))
        return block.model_copy(
            update={
                "sets": max(floor_sets, floor_stable(original * volume_scale)),
                "reps": adjust_reps_for_volume(block.reps, volume_scale),
            }
        )

    reduction = round((1 - volume_scale) * 100)
    updated = plan.model_copy(
        update={
            "main_sets": [scale_main(block) for block in plan.main_sets],
            "accessories": [scale_accessory(block) for block in plan.accessories],
        }
    )
    return updated.with_note("load", f"Reduced volume due to high training load ({reduction}% reduction)")


def apply_recovery_day_override(plan: Plan, context: Context, notifier: AdvisoryNotifier | None = None) -> Plan:
    """Replace the session with light mobility when a recovery day is recommended."""
    if not context.recommend_recovery_day:
        return plan

    updated = plan.model_copy(
        update={
            "main_sets": [
                Block(
                    type="recovery",
                    exercise="Light Mobility Work",
                    sets=MIN_MAIN_SETS,
                    reps="10-15",
                    intensity="Z1",
                    rationale="Recovery day due to high training load",
                    source="load",
                )
            ],
            "accessories": [],
            "finishers": [
                Block(
                    type="recovery",
                    exercise="Gentle Stretching",
                    sets=1,
                    reps="5-10",
                    rationale="Promote recovery and mobility",
                    source="load",
                )
            ],
        }
    ).with_note("load", "Recovery day recommended based on training load")

    collapsed = len(updated.main_sets) + len(updated.accessories) <= 1
    if context.is_simple_mode and collapsed:
        choice = PendingChoice(reason="Recovery day recommended: today's session is reduced to light mobility")
        updated = updated.model_copy(update={"pending_choice": choice})
        dispatch_advisory(
            notifier,
            Advisory(
                subsystem="load",
                message="Your training load is high, so today is a recovery day",
                fallback_message="Accept the recovery session or keep your planned workout",
                severity="medium",
                choices=choice.options,
            ),
        )
    return updated


def apply_simple_mode_trim(plan: Plan, context: Context) -> Plan:
    if not context.is_simple_mode or context.recommend_recovery_day:
        return plan
    updated = plan.model_copy(update={"accessories": [], "finishers": plan.finishers[:1]})
    return updated.with_note("preferences", "Simple mode: focused on the essentials")


def apply_time_crunch_trim(plan: Plan, context: Context, threshold_minutes: int = DEFAULT_TIME_CRUNCH_MINUTES) -> Plan:
    time_limit = context.constraints.time_limit
    if time_limit is None or time_limit <= 0 or time_limit > threshold_minutes:
        return plan

    def superset(block: Block) -> Block:
        notes = f"{block.notes} (superset to save time)" if block.notes else "Superset to save time"
        return block.model_copy(update={"superset": True, "notes": notes})

    updated = plan.model_copy(
        update={
            "main_sets": [superset(block) for block in plan.main_sets],
            "accessories": plan.accessories[:1],
            "finishers": plan.finishers[:1],
        }
    )
    return updated.with_note("schedule", f"Time-crunched session ({time_limit:g} min): main work superset")


def strip_bookkeeping(plan: Plan) -> Plan:
    def strip(block: Block) -> Block:
        return block.model_copy(update={"original_sets": None, "readiness_reduced": False})

    return plan.model_copy(
        update={
            "main_sets": [strip(block) for block in plan.main_sets],
            "accessories": [strip(block) for block in plan.accessories],
        }
    )


class ConflictResolver:
    """Runs the resolution passes in order."""

    def __init__(
        self,
        alternates: Available[ExerciseAlternates] | Unavailable,
        *,
        notifier: AdvisoryNotifier | None = None,
        time_crunch_minutes: int = DEFAULT_TIME_CRUNCH_MINUTES,
    ) -> None:
        self._alternates = alternates
        self._notifier = notifier
        self._time_crunch_minutes = time_crunch_minutes

    def resolve(self, plan: Plan, proposals: Mapping[str, Proposal], context: Context) -> Plan:
        log_stage_event(CoordinatorStage.RESOLVE, "start")
        resolved = track_original_sets(plan)
        resolved = apply_safety_substitution(resolved, context, proposals, self._alternates)
        resolved = apply_game_day_rule(resolved, context, proposals)
        resolved = apply_low_readiness_reduction(resolved, context)
        resolved = apply_volume_scaling(resolved, context)
        resolved = apply_recovery_day_override(resolved, context, self._notifier)
        resolved = apply_simple_mode_trim(resolved, context)
        resolved = apply_time_crunch_trim(resolved, context, self._time_crunch_minutes)
        resolved = strip_bookkeeping(resolved)
        log_stage_event(
            CoordinatorStage.RESOLVE,
            "success",
            {"exercise_count": resolved.exercise_count, "substitutions": len(resolved.substitutions)},
        )
        return resolved
