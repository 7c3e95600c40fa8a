"""Base session templates keyed by primary goal.

A template is the skeleton of the day's plan. Any bucket the experts fill
replaces the template's bucket; the rest of the template stays.
"""

from loguru import logger

from trainer.coordination.types import PLAN_BUCKETS, TEMPLATE_SOURCE, Block, Context, Plan, PlanMetadata

DEFAULT_GOAL = "general_fitness"


def _block(block_type: str, exercise: str, **fields: object) -> Block:
    return Block(type=block_type, exercise=exercise, source=TEMPLATE_SOURCE, **fields)


BASE_TEMPLATES: dict[str, dict[str, list[Block]]] = {
    "strength": {
        "warmup": [_block("warmup", "Dynamic Warm-up", duration=10.0, intensity="Z1")],
        "main_sets": [
            _block("main_sets", "Back Squat", sets=4, reps=5, target_rpe=8.0),
            _block("main_sets", "Bench Press", sets=4, reps=5, target_rpe=8.0),
        ],
        "accessories": [
            _block("accessory", "Dumbbell Row", sets=3, reps="8-12"),
            _block("accessory", "Plank", sets=3, reps=30),
        ],
        "finishers": [_block("cooldown", "Cool-down Walk", duration=5.0, intensity="Z1")],
    },
    "endurance": {
        "warmup": [_block("warmup", "Easy Jog", duration=10.0, intensity="Z1")],
        "main_sets": [
            _block("main_sets", "Tempo Intervals", sets=3, reps=5, duration=25.0, intensity="Z3"),
        ],
        "accessories": [_block("accessory", "Walking Lunges", sets=2, reps=12)],
        "finishers": [_block("cooldown", "Aerobic Cool-down", duration=10.0, intensity="Z2")],
    },
    "muscle_gain": {
        "warmup": [_block("warmup", "Dynamic Warm-up", duration=8.0, intensity="Z1")],
        "main_sets": [
            _block("main_sets", "Incline Dumbbell Press", sets=4, reps="8-12", target_rpe=8.0),
            _block("main_sets", "Romanian Deadlift", sets=3, reps="8-10", target_rpe=7.0),
        ],
        "accessories": [
            _block("accessory", "Lateral Raise", sets=3, reps="12-15"),
            _block("accessory", "Cable Curl", sets=3, reps="10-12"),
        ],
        "finishers": [_block("cooldown", "Stretching", duration=5.0, intensity="Z1")],
    },
    DEFAULT_GOAL: {
        "warmup": [_block("warmup", "General Mobility", duration=8.0, intensity="Z1")],
        "main_sets": [
            _block("main_sets", "Goblet Squat", sets=3, reps="10-12", target_rpe=7.0),
            _block("main_sets", "Push-up", sets=3, reps="8-12", target_rpe=7.0),
        ],
        "accessories": [_block("accessory", "Band Pull-apart", sets=2, reps=15)],
        "finishers": [_block("conditioning", "Easy Bike", duration=10.0, intensity="Z2")],
    },
}


def base_plan_for(context: Context) -> Plan:
    """Build the template skeleton for the context's primary goal."""
    goal = (context.goals.primary or DEFAULT_GOAL).lower()
    template = BASE_TEMPLATES.get(goal)
    if template is None:
        logger.debug(f"No template for goal '{goal}', using {DEFAULT_GOAL}")
        template = BASE_TEMPLATES[DEFAULT_GOAL]
    return Plan(
        **{bucket: list(template.get(bucket, [])) for bucket in PLAN_BUCKETS},
        metadata=PlanMetadata(source=TEMPLATE_SOURCE),
    )


def apply_expert_override(skeleton: Plan, merged: Plan) -> Plan:
    """Overlay the merged expert plan on the template skeleton.

    Non-empty expert buckets replace template buckets. Notes, substitutions
    and nutrition always come from the merged plan.
    """
    update: dict[str, object] = {
        bucket: getattr(merged, bucket) or getattr(skeleton, bucket) for bucket in PLAN_BUCKETS
    }
    expert_covered = any(getattr(merged, bucket) for bucket in PLAN_BUCKETS)
    update["metadata"] = skeleton.metadata.model_copy(
        update={"source": "experts" if expert_covered else TEMPLATE_SOURCE}
    )
    return merged.model_copy(update=update)
