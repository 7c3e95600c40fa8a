"""Expert coordinator.

Public entry points:
- plan_today: memoized template pipeline with the full fallback ladder
- get_session_plan: merge and resolve expert proposals without caching

Neither entry point raises; the worst outcome is the static fallback plan.
"""

import inspect
import time
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from trainer.config.settings import Settings, get_settings
from trainer.coordination.advisories import dispatch_advisory, planning_unavailable_advisory
from trainer.coordination.alternates import StaticExerciseAlternates
from trainer.coordination.cache import BoundedCache
from trainer.coordination.contracts import (
    AdvisoryNotifier,
    Available,
    ContextEnricher,
    ContextValidator,
    ExerciseAlternates,
    ExpertCapability,
    resolve_capability,
)
from trainer.coordination.errors import TotalReconciliationError
from trainer.coordination.fallback import conservative_fallback_plan, static_fallback_plan
from trainer.coordination.gate import ProposalGate
from trainer.coordination.load import apply_load_adjustments
from trainer.coordination.memo import MemoizedCoordinator
from trainer.coordination.merge import merge_proposals
from trainer.coordination.output import structure_plan
from trainer.coordination.resolver import ConflictResolver
from trainer.coordination.scaling import (
    apply_heart_rate_scaling,
    apply_personal_weighting,
    scale_template_blocks,
    shift_plan_zones,
)
from trainer.coordination.templates import apply_expert_override, base_plan_for
from trainer.coordination.types import Context, Plan
from trainer.coordination.validation import ContextValidation, DataValidator, ValidatedContext, to_raw_mapping
from trainer.core.observability import CoordinatorStage, log_event, log_stage_event, timing

RawContext = Mapping[str, Any] | Context | None


class ExpertCoordinator:
    """Coordinates expert proposals into one safe session plan.

    Args:
        experts: Experts keyed by name ("physio", "sports", "climbing",
            "strength", "aesthetics", "nutrition"); unknown names are invoked
            but their blocks are not merged
        enricher: Optional context enrichment service
        validator_factory: Builds the data validator; None disables it
        alternates_factory: Builds the exercise-substitution capability; None disables it
        notifier: Receives user-facing advisories
        settings: Coordinator settings (defaults to environment settings)
        clock: Wall-clock source in seconds, used for cache buckets and timestamps
    """

    def __init__(
        self,
        experts: Mapping[str, ExpertCapability],
        *,
        enricher: ContextEnricher | None = None,
        validator_factory: Callable[[], ContextValidator] | None = DataValidator,
        alternates_factory: Callable[[], ExerciseAlternates] | None = StaticExerciseAlternates,
        notifier: AdvisoryNotifier | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._enricher = enricher
        self._notifier = notifier

        self._validator = resolve_capability(validator_factory, "data validator")
        self._alternates = resolve_capability(alternates_factory, "exercise substitution")

        self._gate = ProposalGate(
            experts,
            notifier=notifier,
            timeout_seconds=self._settings.expert_timeout_seconds,
            concurrent=self._settings.concurrent_experts,
            advisory_duration_ms=self._settings.advisory_duration_ms,
        )
        self._resolver = ConflictResolver(
            self._alternates,
            notifier=notifier,
            time_crunch_minutes=self._settings.time_crunch_minutes,
        )
        self._validation = ContextValidation(
            self._validator,
            BoundedCache("validation_cache", self._settings.validation_cache_size, clock=clock),
        )
        self._memo = MemoizedCoordinator(
            BoundedCache(
                "plan_cache",
                self._settings.plan_cache_max_size,
                ttl_seconds=self._settings.plan_cache_ttl_seconds,
                clock=clock,
            ),
            bucket_minutes=self._settings.plan_cache_bucket_minutes,
            clock=clock,
        )
        logger.info(
            "Expert coordinator initialized",
            experts=",".join(self._gate.expert_names),
            validator_available=isinstance(self._validator, Available),
            alternates_available=isinstance(self._alternates, Available),
        )

    @property
    def expert_names(self) -> list[str]:
        return self._gate.expert_names

    async def plan_today(self, raw: RawContext) -> Plan:
        """Today's plan, served from the plan cache when possible."""
        with timing("coordinator.plan_today"):
            data = to_raw_mapping(raw)
            try:
                return await self._memo.plan(data, lambda: self._plan_pipeline(raw))
            except Exception as e:
                # Tier 1: memoized path failed, retry without the caches.
                logger.error(
                    "Memoized planning failed, retrying without cache",
                    error_type=type(e).__name__,
                    error=str(e),
                )
                log_event("fallback_tier_used", tier=1, error_type=type(e).__name__)

            try:
                return await self._plan_pipeline(raw, use_cache=False)
            except Exception as e:
                logger.exception(f"Planning failed: {e}")
                dispatch_advisory(self._notifier, planning_unavailable_advisory(self._settings.advisory_duration_ms))
                return static_fallback_plan(now=self._clock(), reason=type(e).__name__)

    async def get_session_plan(self, raw: RawContext) -> Plan:
        """Merged and resolved expert plan, without templates or caching."""
        with timing("coordinator.get_session_plan"):
            try:
                validated = self._validation.validate(raw)
                context = validated.context
                gathered = await self._gate.gather(context)
                if gathered.empty:
                    return self._conservative_fallback(context)

                plan = merge_proposals(gathered.proposals, context)
                plan = self._resolver.resolve(plan, gathered.proposals, context)
                plan = structure_plan(
                    plan,
                    context,
                    now=self._clock(),
                    experts=self._gate.expert_names,
                    failed_experts=gathered.failed,
                )
                if not plan.has_exercises:
                    return self._conservative_fallback(context, reason="every exercise was removed by safety rules")
                return plan
            except Exception as e:
                logger.exception(f"Session planning failed: {e}")
                dispatch_advisory(self._notifier, planning_unavailable_advisory(self._settings.advisory_duration_ms))
                return static_fallback_plan(now=self._clock(), reason=type(e).__name__)

    def clear_cache(self) -> None:
        self._memo.clear()
        self._validation.cache.clear()

    def get_performance_stats(self) -> dict[str, Any]:
        return {
            **self._memo.get_stats(),
            "validationCacheSize": len(self._validation.cache),
            "expertCount": len(self._gate.expert_names),
        }

    async def _plan_pipeline(self, raw: RawContext, *, use_cache: bool = True) -> Plan:
        stage = CoordinatorStage.VALIDATE
        try:
            validated: ValidatedContext = self._validation.validate(raw, use_cache=use_cache)
            stage = CoordinatorStage.ENRICH
            context = await self._enrich(validated.context)
            context = apply_load_adjustments(context)

            stage = CoordinatorStage.GATHER
            gathered = await self._gate.gather(context)
            if gathered.empty:
                return self._conservative_fallback(context)

            stage = CoordinatorStage.MERGE
            merged = merge_proposals(gathered.proposals, context)
            skeleton = scale_template_blocks(base_plan_for(context), context.readiness)
            combined = apply_expert_override(skeleton, merged)
            combined = apply_heart_rate_scaling(combined, context)

            stage = CoordinatorStage.RESOLVE
            resolved = self._resolver.resolve(combined, gathered.proposals, context)

            stage = CoordinatorStage.SCALE
            log_stage_event(stage, "start")
            scaled = shift_plan_zones(resolved, context.readiness)
            scaled = apply_personal_weighting(scaled, context)
            plan = structure_plan(
                scaled,
                context,
                now=self._clock(),
                experts=self._gate.expert_names,
                failed_experts=gathered.failed,
            )
            log_stage_event(stage, "success", {"exercise_count": plan.exercise_count})
        except Exception as e:
            log_stage_event(stage, "fail", {"error_type": type(e).__name__})
            raise TotalReconciliationError(stage.value, e) from e

        if not plan.has_exercises:
            return self._conservative_fallback(context, reason="every exercise was removed by safety rules")
        return plan

    async def _enrich(self, context: Context) -> Context:
        if self._enricher is None:
            return context
        log_stage_event(CoordinatorStage.ENRICH, "start")
        try:
            result = self._enricher.build_context(context.model_copy(deep=True))
            if inspect.isawaitable(result):
                result = await result
            enriched = result if isinstance(result, Context) else Context.model_validate(result)
        except Exception as e:
            logger.warning(
                "Context enrichment failed, continuing with the validated context",
                error_type=type(e).__name__,
                error=str(e),
            )
            log_stage_event(CoordinatorStage.ENRICH, "fail", {"error_type": type(e).__name__})
            return context
        log_stage_event(CoordinatorStage.ENRICH, "success")
        return enriched

    def _conservative_fallback(self, context: Context, reason: str = "no expert proposals") -> Plan:
        dispatch_advisory(self._notifier, planning_unavailable_advisory(self._settings.advisory_duration_ms))
        return conservative_fallback_plan(context, self._validator, now=self._clock(), reason=reason)
