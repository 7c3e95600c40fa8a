"""Expert proposal gate.

Invokes every registered expert with its own copy of the context. An expert
that raises, exceeds its time budget or returns something that is not a
proposal contributes the empty proposal; the rest of the plan is unaffected.
"""

import asyncio
import inspect
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import ValidationError

from trainer.coordination.advisories import dispatch_advisory, expert_failure_advisory
from trainer.coordination.contracts import AdvisoryNotifier, ExpertCapability
from trainer.coordination.errors import ExpertFailureError
from trainer.coordination.types import Context, Proposal
from trainer.core.observability import CoordinatorStage, log_event, log_stage_event, timing


@dataclass
class GatheredProposals:
    """Proposals keyed by expert name.

    Attributes:
        proposals: One proposal per registered expert (empty on failure)
        failures: Failures keyed by expert name
        empty: True when no expert produced a single block
    """

    proposals: dict[str, Proposal]
    failures: dict[str, ExpertFailureError] = field(default_factory=dict)
    empty: bool = False

    @property
    def failed(self) -> list[str]:
        return list(self.failures)

    def get(self, expert: str) -> Proposal:
        return self.proposals.get(expert) or Proposal.empty()


def coerce_proposal(result: Any) -> Proposal:
    """Turn an expert's return value into a Proposal.

    Raises:
        TypeError: If the value is neither a Proposal nor a mapping
        ValidationError: If a mapping does not describe a proposal
    """
    if isinstance(result, Proposal):
        return result
    if isinstance(result, Mapping):
        return Proposal.model_validate(result)
    raise TypeError(f"Invalid proposal type: {type(result).__name__}")


class ProposalGate:
    def __init__(
        self,
        experts: Mapping[str, ExpertCapability],
        *,
        notifier: AdvisoryNotifier | None = None,
        timeout_seconds: float = 2.0,
        concurrent: bool = True,
        advisory_duration_ms: int = 15000,
    ) -> None:
        self._experts = dict(experts)
        self._notifier = notifier
        self._timeout_seconds = timeout_seconds
        self._concurrent = concurrent
        self._advisory_duration_ms = advisory_duration_ms

    @property
    def expert_names(self) -> list[str]:
        return list(self._experts)

    async def gather(self, context: Context) -> GatheredProposals:
        log_stage_event(CoordinatorStage.GATHER, "start", {"expert_count": len(self._experts)})
        with timing("coordinator.gather"):
            if self._concurrent:
                results = await asyncio.gather(
                    *(self._invoke(name, expert, context) for name, expert in self._experts.items())
                )
            else:
                results = [await self._invoke(name, expert, context) for name, expert in self._experts.items()]

        proposals: dict[str, Proposal] = {}
        failures: dict[str, ExpertFailureError] = {}
        for name, proposal, failure in results:
            proposals[name] = proposal
            if failure is not None:
                failures[name] = failure

        empty = all(proposal.is_empty for proposal in proposals.values())
        if failures:
            logger.error(
                f"Expert failures: {', '.join(failures)}",
                failed_experts=",".join(failures),
                failed_count=len(failures),
            )
        log_event(
            "expert_gather_completed",
            expert_count=len(proposals),
            failed_count=len(failures),
            empty=empty,
        )
        log_stage_event(CoordinatorStage.GATHER, "success", {"empty": empty})
        return GatheredProposals(proposals=proposals, failures=failures, empty=empty)

    async def _invoke(
        self,
        name: str,
        expert: ExpertCapability,
        context: Context,
    ) -> tuple[str, Proposal, ExpertFailureError | None]:
        # Each expert gets its own copy; none can observe another's mutations.
        expert_context = context.model_copy(deep=True)
        try:
            result = await asyncio.wait_for(self._call(expert, expert_context), timeout=self._timeout_seconds)
            return name, coerce_proposal(result), None
        except (Exception, asyncio.TimeoutError) as e:
            failure = ExpertFailureError(name, e)
            logger.warning(
                f"Expert {name} failed, using empty proposal",
                expert=name,
                error_type=type(e).__name__,
                malformed=isinstance(e, TypeError | ValidationError),
            )
            dispatch_advisory(self._notifier, expert_failure_advisory(name, e, self._advisory_duration_ms))
            return name, Proposal.empty(), failure

    @staticmethod
    async def _call(expert: ExpertCapability, context: Context) -> Any:
        propose = expert.propose
        if inspect.iscoroutinefunction(propose):
            return await propose(context)
        result = await asyncio.to_thread(propose, context)
        if inspect.isawaitable(result):
            result = await result
        return result
