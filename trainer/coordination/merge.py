"""Priority merge of expert proposals into a single plan.

Precedence is fixed: physio > sports/climbing > strength > aesthetics > nutrition.
Higher-priority experts place their blocks first; lower-priority experts fill
what remains. The merge never drops a block; conflict rules run afterwards.
"""

from collections.abc import Mapping

from trainer.coordination.types import Block, Context, Plan, PlanNote, Proposal, Substitution
from trainer.core.observability import CoordinatorStage, log_stage_event

EXPERT_PRIORITY: tuple[str, ...] = ("physio", "sports", "climbing", "strength", "aesthetics", "nutrition")

GAME_DAY_SAFETY = "game_day_safety"
GAME_DAY_NOTE_DAYS = 2


def _tagged(blocks: list[Block], source: str) -> list[Block]:
    return [block if block.source else block.model_copy(update={"source": source}) for block in blocks]


def _proposal(proposals: Mapping[str, Proposal], expert: str) -> Proposal:
    return proposals.get(expert) or Proposal.empty()


def merge_proposals(proposals: Mapping[str, Proposal], context: Context) -> Plan:
    """Merge proposals by expert priority.

    Args:
        proposals: Proposal per expert name (missing experts count as empty)
        context: Request context, used for the session summary

    Returns:
        Merged plan with session notes
    """
    log_stage_event(CoordinatorStage.MERGE, "start")
    warmup: list[Block] = []
    main_sets: list[Block] = []
    accessories: list[Block] = []
    finishers: list[Block] = []
    substitutions: list[Substitution] = []
    notes: list[PlanNote] = []
    nutrition: Block | None = None

    physio = _proposal(proposals, "physio")
    if physio.blocks:
        warmup.extend(_tagged(physio.blocks_of_type("corrective"), "physio"))
        finishers.extend(_tagged(physio.blocks_of_type("prehab"), "physio"))
        notes.append(PlanNote(source="physio", text="Movement quality and injury prevention prioritized"))

    sports = _proposal(proposals, "sports")
    if sports.blocks:
        main_sets.extend(_tagged(sports.blocks_of_type("power"), "sports"))
        finishers.extend(_tagged(sports.blocks_of_type("conditioning"), "sports"))
    game_day = sports.find_constraint(GAME_DAY_SAFETY)
    if game_day is not None and game_day.days_until_game is not None and game_day.days_until_game <= GAME_DAY_NOTE_DAYS:
        substitutions.append(
            Substitution(
                original="heavy_lower_body",
                alternative="power_maintenance",
                reason=game_day.rule or f"Game in {game_day.days_until_game} day(s)",
            )
        )

    climbing = _proposal(proposals, "climbing")
    if climbing.blocks:
        main_sets.extend(_tagged(climbing.blocks_of_type("power"), "climbing"))
        main_sets.extend(_tagged(climbing.blocks_of_type("strength"), "climbing"))
        finishers.extend(_tagged(climbing.blocks_of_type("endurance"), "climbing"))

    strength = _proposal(proposals, "strength")
    if strength.blocks:
        main_sets.extend(_tagged(strength.blocks_of_type("main_sets"), "strength"))
        warmup[:0] = _tagged(strength.blocks_of_type("warmup"), "strength")

    aesthetics = _proposal(proposals, "aesthetics")
    if aesthetics.blocks:
        accessories.extend(_tagged(aesthetics.blocks_of_type("accessory"), "aesthetics"))
        focus = context.preferences.aesthetic_focus or "balanced"
        notes.append(PlanNote(source="aesthetics", text=f"Accessory work targets {focus} development"))

    nutrition_proposal = _proposal(proposals, "nutrition")
    if nutrition_proposal.blocks:
        nutrition = _tagged(nutrition_proposal.blocks[:1], "nutrition")[0]

    plan = Plan(
        warmup=warmup,
        main_sets=main_sets,
        accessories=accessories,
        finishers=finishers,
        substitutions=substitutions,
        notes=notes,
        nutrition=nutrition,
    )
    plan = plan.model_copy(update={"session_notes": generate_session_notes(plan, context)})
    log_stage_event(CoordinatorStage.MERGE, "success", {"exercise_count": plan.exercise_count})
    return plan


def generate_session_notes(plan: Plan, context: Context) -> str:
    """One-paragraph summary: readiness, modifications, accessory focus."""
    parts = [f"Today's readiness: {context.readiness:g}/10"]
    if plan.substitutions:
        reasons = [s.reason or s.alternative for s in plan.substitutions]
        parts.append(f"Modifications: {', '.join(reasons)}")
    if plan.accessories:
        focus = context.preferences.aesthetic_focus or "balanced"
        parts.append(f"Accessories: {focus} focus ({len(plan.accessories)} exercises)")
    return ". ".join(parts) + "."
