"""End-to-end tests for the expert coordinator.

Tests that:
- plan_today always returns a non-empty plan
- identical requests within a time bucket are computed once
- each fallback tier is reachable and produces a usable plan
- the worked examples (low readiness, knee pain, time crunch) hold end to end
"""

import pytest

from tests.conftest import (
    FailingExpert,
    SlowExpert,
    StaticExpert,
    sports_proposal,
    strength_proposal,
)
from trainer.config.settings import Settings
from trainer.coordination.types import Block, Context, Proposal
from trainer.coordination.validation import DataValidator


class RaisingValidator(DataValidator):
    def validate_context(self, raw):
        raise RuntimeError("validator crashed")


class LoadEnricher:
    async def build_context(self, context: Context) -> Context:
        return context.model_copy(
            update={"load": context.load.model_copy(update={"atl7": 160.0, "ctl28": 100.0, "strain": 180.0})}
        )


class BrokenEnricher:
    def build_context(self, context):
        raise ConnectionError("profile service unreachable")


@pytest.mark.asyncio
async def test_plan_today_merges_experts(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts)

    plan = await coordinator.plan_today(base_context)

    assert plan.has_exercises
    assert not plan.is_fallback
    assert [b.exercise for b in plan.main_sets] == ["Box Jump", "Back Squat", "Bench Press"]
    assert plan.nutrition is not None
    assert plan.metadata.source == "experts"
    assert plan.metadata.generated_at is not None
    assert plan.intensity_scale == pytest.approx(0.9)
    assert plan.session_notes.startswith("Today's readiness: 7/10")


@pytest.mark.asyncio
async def test_template_fills_buckets_experts_left_empty(make_coordinator, base_context):
    coordinator = make_coordinator({"strength": StaticExpert(Proposal(blocks=[Block(type="main_sets", exercise="Deadlift", sets=3, reps=5)]))})

    plan = await coordinator.plan_today(base_context)

    assert [b.exercise for b in plan.main_sets] == ["Deadlift"]
    assert [b.exercise for b in plan.warmup] == ["Dynamic Warm-up"]
    assert [b.exercise for b in plan.accessories] == ["Dumbbell Row", "Plank"]


@pytest.mark.asyncio
async def test_identical_requests_are_computed_once(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts)

    first = await coordinator.plan_today(base_context)
    second = await coordinator.plan_today(dict(reversed(list(base_context.items()))))

    assert default_experts["strength"].calls == 1
    assert second.to_public_dict() == first.to_public_dict()
    stats = coordinator.get_performance_stats()
    assert stats["cacheHits"] == 1
    assert stats["cacheMisses"] == 1
    assert stats["totalRequests"] == 2
    assert stats["hitRate"] == 0.5
    assert stats["expertCount"] == 5


@pytest.mark.asyncio
async def test_cached_plan_is_not_shared(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts)

    first = await coordinator.plan_today(base_context)
    first.why.append("tampered")
    second = await coordinator.plan_today(base_context)

    assert "tampered" not in second.why


@pytest.mark.asyncio
async def test_next_time_bucket_recomputes(make_coordinator, default_experts, base_context, clock):
    coordinator = make_coordinator(default_experts)

    await coordinator.plan_today(base_context)
    clock.advance(300)
    await coordinator.plan_today(base_context)

    assert default_experts["strength"].calls == 2


@pytest.mark.asyncio
async def test_clear_cache_forces_recompute(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts)

    await coordinator.plan_today(base_context)
    coordinator.clear_cache()
    await coordinator.plan_today(base_context)

    assert default_experts["strength"].calls == 2
    assert coordinator.get_performance_stats()["planCacheSize"] == 1


@pytest.mark.asyncio
async def test_knee_flag_after_clean_request_in_same_bucket(make_coordinator, base_context):
    strength = StaticExpert(strength_proposal())
    coordinator = make_coordinator({"strength": strength})

    clean = await coordinator.plan_today(base_context)
    knee = await coordinator.plan_today({**base_context, "constraints": {"flags": ["knee_pain"]}})

    assert clean.main_sets[0].exercise == "Back Squat"
    assert knee.main_sets[0].exercise == "Goblet Squat"
    assert knee.substitutions
    assert strength.calls == 2


@pytest.mark.asyncio
async def test_knee_flag_after_clean_session_plan(make_coordinator, base_context):
    coordinator = make_coordinator({"strength": StaticExpert(strength_proposal())})

    await coordinator.get_session_plan(base_context)
    plan = await coordinator.get_session_plan({**base_context, "constraints": {"flags": ["knee_pain"]}})

    assert [b.exercise for b in plan.main_sets] == ["Goblet Squat", "Bench Press"]
    assert plan.substitutions[0].original == "Back Squat"


@pytest.mark.asyncio
async def test_recovery_day_and_time_limit_after_clean_request(make_coordinator, default_experts, base_context, clock):
    coordinator = make_coordinator(default_experts)

    await coordinator.plan_today(base_context)
    clock.advance(300)
    plan = await coordinator.plan_today({**base_context, "recommendRecoveryDay": True, "constraints": {"timeLimit": 20}})

    assert [b.exercise for b in plan.main_sets] == ["Light Mobility Work"]
    assert len(plan.finishers) <= 1


@pytest.mark.asyncio
async def test_recovery_day_flag_is_not_served_a_cached_plan(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts)

    await coordinator.plan_today(base_context)
    plan = await coordinator.plan_today({**base_context, "recommendRecoveryDay": True})

    assert [b.exercise for b in plan.main_sets] == ["Light Mobility Work"]
    assert coordinator.get_performance_stats()["cacheHits"] == 0


@pytest.mark.asyncio
async def test_low_readiness_example(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts)

    plan = await coordinator.plan_today({**base_context, "readiness": 3})

    assert [b.sets for b in plan.main_sets] == [2, 2, 2]
    assert any("Low readiness" in note.text for note in plan.notes)
    assert "Low readiness today - listen to your body" in plan.warnings
    assert plan.metadata.readiness_multiplier == 0.8


@pytest.mark.asyncio
async def test_knee_pain_example(make_coordinator, base_context):
    strength = StaticExpert(
        Proposal(blocks=[Block(type="main_sets", exercise="Bulgarian Split Squat", sets=3, reps="8-10")])
    )
    coordinator = make_coordinator({"strength": strength})

    plan = await coordinator.plan_today({**base_context, "constraints": {"flags": ["knee_pain"]}})

    public = plan.to_public_dict()
    main = public["mainSets"][0]
    assert main["exercise"] == "Walking Lunges"
    assert main["constraintSource"] == "physio"
    assert public["substitutions"][0]["original"] == "Bulgarian Split Squat"


@pytest.mark.asyncio
async def test_knee_pain_without_substitution_capability(make_coordinator, base_context):
    strength = StaticExpert(Proposal(blocks=[Block(type="main_sets", exercise="Back Squat", sets=3, reps=5)]))
    coordinator = make_coordinator({"strength": strength}, alternates_factory=None)

    plan = await coordinator.plan_today({**base_context, "constraints": {"flags": ["knee_pain"]}})

    assert plan.main_sets[0].exercise == "Back Squat"
    assert any("substitution is unavailable" in note.text for note in plan.notes)


@pytest.mark.asyncio
async def test_time_limit_example(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts)

    plan = await coordinator.plan_today({**base_context, "constraints": {"timeLimit": 20}})

    assert len(plan.accessories) <= 1
    assert len(plan.finishers) <= 1
    assert plan.main_sets
    assert all(block.superset for block in plan.main_sets)
    assert plan.metadata.main_duration_minutes <= 20


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"constraints": {"timeLimit": 20}},
        {"preferences": {"trainingMode": "simple"}},
    ],
)
async def test_trims_keep_resting_hr_recovery_as_only_finisher(make_coordinator, default_experts, base_context, overrides):
    coordinator = make_coordinator(default_experts)

    plan = await coordinator.plan_today(
        {**base_context, **overrides, "heartRate": {"restingHr": 70, "restingHrBaseline": 55}}
    )

    assert [b.exercise for b in plan.finishers] == ["Active Recovery"]
    assert plan.finishers[0].intensity == "Z1"


@pytest.mark.asyncio
async def test_recovery_day_in_simple_mode_asks_for_choice(make_coordinator, default_experts, base_context, notifier):
    coordinator = make_coordinator(default_experts)

    plan = await coordinator.plan_today(
        {**base_context, "recommendRecoveryDay": True, "preferences": {"trainingMode": "simple"}}
    )

    public = plan.to_public_dict()
    assert public["pendingChoice"]["options"] == ["accept", "override", "ask_each_time"]
    assert [b["exercise"] for b in public["mainSets"]] == ["Light Mobility Work"]
    assert any(advisory.choices for advisory in notifier.advisories)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"readiness": 1, "volumeScale": 0.1},
        {"schedule": {"daysUntilGame": 1}, "preferences": {"trainingMode": "simple"}},
        {"constraints": {"flags": ["knee_pain"], "timeLimit": 10}},
        {"recommendRecoveryDay": True, "readiness": None},
        {"readiness": "garbage", "load": {"atl7": -1}},
    ],
)
async def test_plan_is_never_empty(make_coordinator, base_context, overrides):
    experts = {
        "strength": StaticExpert(
            Proposal(
                blocks=[
                    Block(type="main_sets", exercise="Back Squat", sets=5, reps=5),
                    Block(type="main_sets", exercise="Deadlift", sets=3, reps=3),
                ]
            )
        ),
        "sports": StaticExpert(sports_proposal(days_until_game=1)),
    }
    coordinator = make_coordinator(experts)

    plan = await coordinator.plan_today({**base_context, **overrides})

    assert plan.has_exercises or plan.is_fallback
    assert all(block.sets >= 2 for block in plan.main_sets if block.sets is not None)


@pytest.mark.asyncio
async def test_tier_one_memoized_failure_recovers(make_coordinator, default_experts, base_context, monkeypatch):
    coordinator = make_coordinator(default_experts)

    async def broken_plan(*args, **kwargs):
        raise RuntimeError("plan cache corrupted")

    monkeypatch.setattr(coordinator._memo, "plan", broken_plan)

    plan = await coordinator.plan_today(base_context)

    assert plan.has_exercises
    assert not plan.is_fallback
    assert plan.metadata.source == "experts"


@pytest.mark.asyncio
async def test_tier_two_all_experts_empty(make_coordinator, base_context, notifier):
    experts = {
        "strength": StaticExpert(Proposal.empty()),
        "physio": FailingExpert(TimeoutError()),
    }
    coordinator = make_coordinator(experts)

    plan = await coordinator.plan_today(base_context)

    assert plan.is_fallback
    assert plan.metadata.source == "conservative_fallback"
    assert plan.main_sets[0].exercise == "Bodyweight Circuit"
    assert plan.warnings
    messages = [advisory.message for advisory in notifier.advisories]
    assert "AI planning system is temporarily unavailable" in messages


@pytest.mark.asyncio
async def test_fallback_plans_are_not_cached(make_coordinator, base_context):
    strength = StaticExpert(Proposal.empty())
    coordinator = make_coordinator({"strength": strength})

    await coordinator.plan_today(base_context)
    await coordinator.plan_today(base_context)

    assert strength.calls == 2


@pytest.mark.asyncio
async def test_tier_three_total_failure(make_coordinator, default_experts, base_context, monkeypatch):
    coordinator = make_coordinator(default_experts)

    def broken_merge(*args, **kwargs):
        raise ValueError("merge exploded")

    monkeypatch.setattr("trainer.coordination.coordinator.merge_proposals", broken_merge)

    plan = await coordinator.plan_today(base_context)

    assert plan.is_fallback
    assert plan.metadata.source == "static_fallback"
    assert plan.warnings == ["Using fallback plan"]
    assert plan.has_exercises


@pytest.mark.asyncio
async def test_validator_failure_uses_conservative_defaults(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts, validator_factory=RaisingValidator)

    plan = await coordinator.plan_today(base_context)

    assert plan.has_exercises
    assert not plan.is_fallback
    assert "Some of your data could not be validated - using conservative settings" in plan.warnings
    strength_context = default_experts["strength"].seen[0]
    assert strength_context.conservative_defaults
    assert strength_context.intensity_scale == 0.8


@pytest.mark.asyncio
async def test_validator_factory_failure_is_tolerated(make_coordinator, default_experts, base_context):
    def broken_factory():
        raise ImportError("validator package missing")

    coordinator = make_coordinator(default_experts, validator_factory=broken_factory)

    plan = await coordinator.plan_today(base_context)

    assert plan.has_exercises


@pytest.mark.asyncio
async def test_expert_timeout_does_not_block_plan(make_coordinator, base_context):
    settings = Settings(expert_timeout_seconds=0.05)
    coordinator = make_coordinator(
        {"strength": StaticExpert(strength_proposal()), "sports": SlowExpert(delay=1.0)},
        settings=settings,
    )

    plan = await coordinator.plan_today(base_context)

    assert "Too Late Press" not in [b.exercise for b in plan.main_sets]
    assert "Back Squat" in [b.exercise for b in plan.main_sets]
    assert plan.metadata.failed_experts == ["sports"]
    assert "Some recommendations were unavailable today" in plan.warnings


@pytest.mark.asyncio
async def test_enricher_feeds_load_adjustments(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts, enricher=LoadEnricher())

    plan = await coordinator.plan_today(base_context)

    assert "High training strain: deload recommended" in plan.why
    assert default_experts["strength"].seen[0].recommend_deload


@pytest.mark.asyncio
async def test_enricher_failure_is_tolerated(make_coordinator, default_experts, base_context):
    coordinator = make_coordinator(default_experts, enricher=BrokenEnricher())

    plan = await coordinator.plan_today(base_context)

    assert plan.has_exercises
    assert not plan.is_fallback


class TestSessionPlan:
    @pytest.mark.asyncio
    async def test_session_plan_has_no_template_blocks(self, make_coordinator, base_context):
        coordinator = make_coordinator({"strength": StaticExpert(strength_proposal())})

        plan = await coordinator.get_session_plan(base_context)

        assert [b.exercise for b in plan.main_sets] == ["Back Squat", "Bench Press"]
        assert plan.accessories == []
        assert all(block.source == "strength" for block in plan.main_sets)

    @pytest.mark.asyncio
    async def test_session_plan_is_not_memoized(self, make_coordinator, base_context):
        strength = StaticExpert(strength_proposal())
        coordinator = make_coordinator({"strength": strength})

        await coordinator.get_session_plan(base_context)
        await coordinator.get_session_plan(base_context)

        assert strength.calls == 2

    @pytest.mark.asyncio
    async def test_session_plan_game_day(self, make_coordinator, base_context):
        coordinator = make_coordinator(
            {"strength": StaticExpert(strength_proposal()), "sports": StaticExpert(sports_proposal(days_until_game=1))}
        )

        plan = await coordinator.get_session_plan(base_context)

        assert [b.exercise for b in plan.main_sets] == ["Box Jump", "Bench Press"]
        assert "Game tomorrow - keep the session light" in plan.warnings

    @pytest.mark.asyncio
    async def test_session_plan_total_failure(self, make_coordinator, base_context, monkeypatch):
        coordinator = make_coordinator({"strength": StaticExpert(strength_proposal())})

        def broken_resolve(*args, **kwargs):
            raise KeyError("resolver")

        monkeypatch.setattr(coordinator._resolver, "resolve", broken_resolve)

        plan = await coordinator.get_session_plan(base_context)

        assert plan.is_fallback
        assert plan.metadata.source == "static_fallback"

    @pytest.mark.asyncio
    async def test_session_plan_all_empty(self, make_coordinator, base_context):
        coordinator = make_coordinator({"strength": StaticExpert(Proposal.empty())})

        plan = await coordinator.get_session_plan(base_context)

        assert plan.is_fallback
        assert plan.metadata.source == "conservative_fallback"
