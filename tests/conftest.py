"""Shared fixtures for coordination tests.

Experts here are plain objects implementing propose(); the clock is a
controllable callable so cache buckets and TTLs are deterministic.
"""

import asyncio

import pytest

from trainer.config.settings import Settings
from trainer.coordination.contracts import Advisory
from trainer.coordination.coordinator import ExpertCoordinator
from trainer.coordination.types import Block, Constraint, Context, Proposal


class StaticExpert:
    """Synchronous expert returning a fixed proposal."""

    def __init__(self, proposal: Proposal | dict) -> None:
        self.proposal = proposal
        self.calls = 0
        self.seen: list[Context] = []

    def propose(self, context: Context) -> Proposal | dict:
        self.calls += 1
        self.seen.append(context)
        return self.proposal


class AsyncExpert(StaticExpert):
    async def propose(self, context: Context) -> Proposal | dict:
        self.calls += 1
        self.seen.append(context)
        await asyncio.sleep(0)
        return self.proposal


class FailingExpert:
    def __init__(self, error: Exception) -> None:
        self.error = error

    def propose(self, context: Context) -> Proposal:
        raise self.error


class SlowExpert:
    def __init__(self, delay: float) -> None:
        self.delay = delay

    async def propose(self, context: Context) -> Proposal:
        await asyncio.sleep(self.delay)
        return Proposal(blocks=[Block(type="main_sets", exercise="Too Late Press", sets=3, reps=8)])


class MutatingExpert:
    """Mutates the context it receives; other experts must not see the change."""

    def propose(self, context: Context) -> Proposal:
        context.readiness = 1
        context.constraints.flags.append("mutated")
        return Proposal.empty()


class RecordingNotifier:
    def __init__(self) -> None:
        self.advisories: list[Advisory] = []

    def notify(self, advisory: Advisory) -> None:
        self.advisories.append(advisory)


class FakeClock:
    def __init__(self, now: float = 1_700_000_100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def strength_proposal() -> Proposal:
    return Proposal(
        blocks=[
            Block(type="warmup", exercise="Barbell Warm-up Sets", sets=2, reps=5),
            Block(type="main_sets", exercise="Back Squat", sets=4, reps=5, load=100.0, rationale="Build lower-body strength"),
            Block(type="main_sets", exercise="Bench Press", sets=3, reps="8-12", load=60.0),
        ]
    )


def physio_proposal(rationale: str = "Hip mobility for squat depth") -> Proposal:
    return Proposal(
        blocks=[
            Block(type="corrective", exercise="Hip Airplanes", sets=2, reps=6, rationale=rationale),
            Block(type="prehab", exercise="Copenhagen Plank", sets=2, reps=20),
        ]
    )


def aesthetics_proposal() -> Proposal:
    return Proposal(
        blocks=[
            Block(type="accessory", exercise="Lateral Raise", sets=3, reps="12-15"),
            Block(type="accessory", exercise="Cable Curl", sets=3, reps="10-12"),
            Block(type="accessory", exercise="Face Pull", sets=3, reps=15),
        ]
    )


def sports_proposal(days_until_game: int | None = None) -> Proposal:
    constraints = []
    if days_until_game is not None:
        constraints.append(
            Constraint(type="game_day_safety", rule="No heavy lower body before games", days_until_game=days_until_game)
        )
    return Proposal(
        blocks=[
            Block(type="power", exercise="Box Jump", sets=3, reps=5),
            Block(type="conditioning", exercise="Shuttle Runs", sets=4, reps=1, intensity="Z4"),
        ],
        constraints=constraints,
    )


def nutrition_proposal() -> Proposal:
    return Proposal(
        blocks=[
            Block(type="nutrition", name="Post-workout protein", notes="30 g protein within an hour"),
            Block(type="nutrition", name="Hydration", notes="500 ml water"),
        ]
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        expert_timeout_seconds=0.5,
        validation_cache_size=100,
        plan_cache_max_size=1000,
        plan_cache_ttl_seconds=300,
        plan_cache_bucket_minutes=5,
    )


@pytest.fixture
def default_experts() -> dict[str, StaticExpert]:
    return {
        "physio": StaticExpert(physio_proposal()),
        "sports": StaticExpert(sports_proposal()),
        "strength": StaticExpert(strength_proposal()),
        "aesthetics": StaticExpert(aesthetics_proposal()),
        "nutrition": StaticExpert(nutrition_proposal()),
    }


@pytest.fixture
def make_coordinator(clock, notifier, test_settings):
    """Factory building a coordinator with the shared clock, notifier and settings."""

    def _make(experts, **kwargs) -> ExpertCoordinator:
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("settings", test_settings)
        kwargs.setdefault("clock", clock)
        return ExpertCoordinator(experts, **kwargs)

    return _make


@pytest.fixture
def base_context() -> dict:
    return {
        "user": {"id": "user-1", "experience": "intermediate"},
        "readiness": 7,
        "goals": {"primary": "strength"},
        "preferences": {"trainingMode": "standard"},
    }
