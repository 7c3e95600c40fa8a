"""Tests for readiness, heart-rate and personal-weight scaling and templates."""

import pytest

from trainer.coordination.scaling import (
    apply_heart_rate_scaling,
    apply_personal_weighting,
    heart_rate_intensity_factor,
    intensity_multiplier,
    resting_hr_elevated,
    scale_reps,
    scale_template_blocks,
    shift_plan_zones,
    shift_zone,
)
from trainer.coordination.templates import BASE_TEMPLATES, apply_expert_override, base_plan_for
from trainer.coordination.types import TEMPLATE_SOURCE, Block, Context, HeartRateData, Plan


class TestReadinessMultiplier:
    @pytest.mark.parametrize(
        ("readiness", "expected"),
        [(1, 0.8), (5.9, 0.8), (6, 1.0), (8, 1.0), (8.5, 1.1), (10, 1.1)],
    )
    def test_intensity_multiplier(self, readiness, expected):
        assert intensity_multiplier(readiness) == expected

    @pytest.mark.parametrize(
        ("zone", "multiplier", "expected"),
        [
            ("Z3", 0.8, "Z2"),
            ("Z1", 0.8, "Z1"),
            ("Z4", 1.1, "Z5"),
            ("Z5", 1.1, "Z5"),
            ("Z2", 1.0, "Z2"),
            (None, 0.8, None),
            ("tempo", 1.1, "tempo"),
        ],
    )
    def test_shift_zone_is_clamped(self, zone, multiplier, expected):
        assert shift_zone(zone, multiplier) == expected

    def test_only_template_blocks_are_scaled(self):
        plan = Plan(
            main_sets=[
                Block(exercise="Goblet Squat", sets=4, reps="10-12", source=TEMPLATE_SOURCE),
                Block(exercise="Back Squat", sets=4, reps=5, source="strength"),
            ],
            finishers=[Block(exercise="Easy Bike", duration=10.0, source=TEMPLATE_SOURCE)],
        )

        scaled = scale_template_blocks(plan, readiness=5)

        template, expert = scaled.main_sets
        assert template.sets == 3
        assert template.reps == "8-10"
        assert expert.sets == 4
        assert expert.reps == 5
        assert scaled.finishers[0].duration == 8.0

    def test_template_main_sets_keep_floor(self):
        plan = Plan(main_sets=[Block(exercise="Push-up", sets=2, source=TEMPLATE_SOURCE)])
        assert scale_template_blocks(plan, readiness=2).main_sets[0].sets == 2

    def test_high_readiness_scales_up(self):
        plan = Plan(main_sets=[Block(exercise="Push-up", sets=5, reps=10, source=TEMPLATE_SOURCE)])

        scaled = scale_template_blocks(plan, readiness=9)

        assert scaled.main_sets[0].sets == 6
        assert scaled.main_sets[0].reps == 11

    def test_zone_shift_applies_to_every_block(self):
        plan = Plan(
            main_sets=[Block(exercise="Tempo", intensity="Z3", source="sports")],
            finishers=[Block(exercise="Bike", intensity="Z2", source=TEMPLATE_SOURCE)],
        )

        shifted = shift_plan_zones(plan, readiness=4)

        assert shifted.main_sets[0].intensity == "Z2"
        assert shifted.finishers[0].intensity == "Z1"
        assert shifted.metadata.readiness_multiplier == 0.8

    def test_scale_reps_rounds_half_up(self):
        assert scale_reps(5, 1.1) == 6
        assert scale_reps("8-12", 0.8) == "6-10"


class TestHeartRate:
    def test_hrv_factor(self):
        assert heart_rate_intensity_factor(HeartRateData(hrv=70, hrv_baseline=60)) == 1.05
        assert heart_rate_intensity_factor(HeartRateData(hrv=50, hrv_baseline=60)) == 0.85
        assert heart_rate_intensity_factor(HeartRateData(hrv=60, hrv_baseline=60)) == 1.0
        assert heart_rate_intensity_factor(HeartRateData(hrv=60)) == 1.0
        assert heart_rate_intensity_factor(None) == 1.0

    def test_resting_hr_elevation(self):
        assert resting_hr_elevated(HeartRateData(resting_hr=63, resting_hr_baseline=58))
        assert not resting_hr_elevated(HeartRateData(resting_hr=60, resting_hr_baseline=58))
        assert not resting_hr_elevated(None)

    def test_low_hrv_and_elevated_resting_hr(self):
        context = Context.model_validate(
            {"heartRate": {"hrv": 45, "hrvBaseline": 60, "restingHr": 66, "restingHrBaseline": 60}}
        )

        scaled = apply_heart_rate_scaling(Plan(main_sets=[Block(exercise="Row", sets=3)]), context)

        assert scaled.intensity_scale == pytest.approx(0.85)
        recovery = scaled.finishers[-1]
        assert recovery.type == "active_recovery"
        assert recovery.duration == 15.0
        assert len(scaled.why) == 2

    def test_recovery_block_leads_existing_finishers(self):
        context = Context.model_validate({"heartRate": {"restingHr": 70, "restingHrBaseline": 55}})
        plan = Plan(main_sets=[Block(exercise="Row", sets=3)], finishers=[Block(type="finisher", exercise="Cool-down Walk")])

        scaled = apply_heart_rate_scaling(plan, context)

        assert [b.exercise for b in scaled.finishers] == ["Active Recovery", "Cool-down Walk"]

    def test_recovery_block_keeps_its_zone_at_high_readiness(self):
        context = Context.model_validate({"heartRate": {"restingHr": 70, "restingHrBaseline": 55}})
        plan = Plan(main_sets=[Block(exercise="Row", sets=3, intensity="Z3")])

        shifted = shift_plan_zones(apply_heart_rate_scaling(plan, context), readiness=9)

        assert shifted.main_sets[0].intensity == "Z4"
        assert shifted.finishers[0].intensity == "Z1"

    def test_no_heart_rate_data_is_a_no_op(self):
        plan = Plan(main_sets=[Block(exercise="Row", sets=3)])
        assert apply_heart_rate_scaling(plan, Context()) is plan


class TestPersonalWeighting:
    def test_preferred_accessories_first_with_more_sets(self):
        plan = Plan(
            accessories=[
                Block(exercise="Cable Curl", sets=3),
                Block(exercise="Face Pull", sets=3),
                Block(exercise="Lateral Raise", sets=3),
            ]
        )
        context = Context(personal_weights={"face pull": 1.5, "Cable Curl": 0.5})

        weighted = apply_personal_weighting(plan, context)

        assert [b.exercise for b in weighted.accessories] == ["Face Pull", "Lateral Raise", "Cable Curl"]
        assert weighted.accessories[0].sets == 4
        assert weighted.accessories[2].sets == 2
        assert weighted.accessories[1].sets == 3

    def test_weights_never_drop_below_one_set(self):
        plan = Plan(accessories=[Block(exercise="Curl", sets=1)])
        weighted = apply_personal_weighting(plan, Context(personal_weights={"curl": 0.1}))
        assert weighted.accessories[0].sets == 1

    def test_no_weights_is_a_no_op(self):
        plan = Plan(accessories=[Block(exercise="Curl", sets=3)])
        assert apply_personal_weighting(plan, Context()) is plan


class TestTemplates:
    def test_template_by_goal(self):
        plan = base_plan_for(Context.model_validate({"goals": {"primary": "endurance"}}))
        assert plan.main_sets[0].exercise == "Tempo Intervals"
        assert all(block.source == TEMPLATE_SOURCE for block in plan.main_sets)

    def test_unknown_goal_uses_general_fitness(self):
        plan = base_plan_for(Context.model_validate({"goals": {"primary": "underwater basket weaving"}}))
        assert plan.main_sets == BASE_TEMPLATES["general_fitness"]["main_sets"]

    def test_every_template_has_main_work_with_set_floor(self):
        for template in BASE_TEMPLATES.values():
            assert template["main_sets"]
            assert all(block.sets >= 2 for block in template["main_sets"])

    def test_expert_buckets_override_template(self):
        skeleton = base_plan_for(Context())
        merged = Plan(main_sets=[Block(exercise="Back Squat", sets=4, source="strength")])

        combined = apply_expert_override(skeleton, merged)

        assert [b.exercise for b in combined.main_sets] == ["Back Squat"]
        assert combined.warmup == skeleton.warmup
        assert combined.accessories == skeleton.accessories
        assert combined.metadata.source == "experts"
