"""Value types for expert coordination.

This module defines the request context, the per-expert proposal and the
session plan produced by the coordinator:
- Context is request-scoped and always carries a normalised readiness
- Block, Proposal and Plan are frozen; pipeline stages return new values
- JSON field names are camelCase (mainSets, isFallback), attributes are snake_case
"""

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_READINESS = 7.0
MIN_READINESS = 1.0
MAX_READINESS = 10.0

MIN_MAIN_SETS = 2
MIN_ACCESSORY_SETS = 1
DEFAULT_SETS = 3

TEMPLATE_SOURCE = "template"

PlanBucket = Literal["warmup", "main_sets", "accessories", "finishers"]
PLAN_BUCKETS: tuple[PlanBucket, ...] = ("warmup", "main_sets", "accessories", "finishers")


def normalize_readiness(value: Any) -> float:
    """Normalise a readiness score into [1, 10].

    Missing, non-numeric, NaN and non-positive values fall back to the
    moderate default (7). Out-of-range positive values are clamped.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_READINESS
    try:
        score = float(value)
    except (TypeError, ValueError):
        return DEFAULT_READINESS
    if math.isnan(score) or score <= 0:
        return DEFAULT_READINESS
    return min(max(score, MIN_READINESS), MAX_READINESS)


def _scale_or_default(value: Any, default: float = 1.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        scale = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(scale) or math.isinf(scale) or scale < 0:
        return default
    return scale


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting both spellings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenModel(CamelModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class UserProfile(CamelModel):
    id: str | None = None
    experience: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value


class Goals(CamelModel):
    primary: str | None = None


class Preferences(CamelModel):
    training_mode: str = "standard"
    aesthetic_focus: str | None = None
    session_length: float | None = None


class Constraints(CamelModel):
    flags: list[str] = Field(default_factory=list)
    time_limit: float | None = None


class Schedule(CamelModel):
    days_until_game: int | None = None
    is_game_day: bool = False


class LoadMetrics(CamelModel):
    atl7: float = Field(default=0.0, ge=0, description="7-day acute training load")
    ctl28: float = Field(default=0.0, ge=0, description="28-day chronic training load")
    monotony: float = Field(default=1.0, ge=0)
    strain: float = Field(default=0.0, ge=0)


class YesterdayActivity(CamelModel):
    z4_min: float = Field(default=0.0, ge=0, alias="z4_min")
    z5_min: float = Field(default=0.0, ge=0, alias="z5_min")


class DataConfidence(CamelModel):
    recent7days: float = Field(default=0.5, ge=0, le=1)
    recent30days: float = Field(default=0.6, ge=0, le=1)


class HeartRateData(CamelModel):
    hrv: float | None = None
    hrv_baseline: float | None = None
    resting_hr: float | None = None
    resting_hr_baseline: float | None = None


class Context(CamelModel):
    """Request-scoped planning context.

    Attributes:
        user: User identity and experience level
        readiness: Readiness score, always within [1, 10]
        goals: Training goals
        preferences: Interaction mode, aesthetic focus and preferred session minutes
        constraints: Safety flags (e.g. "knee_pain") and time limit in minutes
        schedule: Days until the next game, or a game-day flag
        load: Rolling training-load metrics supplied by context enrichment
        yesterday: Yesterday's high-intensity minutes
        data_confidence: Share of recent days with usable heart-rate data
        heart_rate: HRV and resting heart rate with their baselines
        personal_weights: Learned per-exercise preference weights
        volume_scale: Load-derived volume multiplier (below 1.0 reduces sets)
        intensity_scale: Load-derived intensity multiplier
        recommend_recovery_day: Replace the session with a recovery session
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    user: UserProfile = Field(default_factory=UserProfile)
    readiness: float = DEFAULT_READINESS
    readiness_inferred: bool = False
    goals: Goals = Field(default_factory=Goals)
    preferences: Preferences = Field(default_factory=Preferences)
    constraints: Constraints = Field(default_factory=Constraints)
    schedule: Schedule = Field(default_factory=Schedule)
    load: LoadMetrics = Field(default_factory=LoadMetrics)
    yesterday: YesterdayActivity = Field(default_factory=YesterdayActivity)
    data_confidence: DataConfidence | None = None
    heart_rate: HeartRateData | None = None
    personal_weights: dict[str, float] = Field(default_factory=dict)
    volume_scale: float = 1.0
    intensity_scale: float = 1.0
    recommend_recovery_day: bool = False

    suppress_heavy_lower: bool = False
    recommend_deload: bool = False
    conservative_mode: bool = False
    conservative_defaults: bool = False
    load_adjustments: list[str] = Field(default_factory=list)

    @field_validator("readiness", mode="before")
    @classmethod
    def validate_readiness(cls, value: Any) -> float:
        return normalize_readiness(value)

    @field_validator("volume_scale", "intensity_scale", mode="before")
    @classmethod
    def validate_scale(cls, value: Any) -> float:
        return _scale_or_default(value)

    @property
    def user_id(self) -> str | None:
        return self.user.id

    @property
    def is_simple_mode(self) -> bool:
        return self.preferences.training_mode == "simple"


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


class Block(FrozenModel):
    """A single training unit.

    original_sets and readiness_reduced are resolver bookkeeping; they are
    never serialised and are cleared before a plan leaves the resolver.
    """

    type: str = "main_sets"
    exercise: str | None = None
    name: str | None = None
    sets: int | None = None
    reps: int | str | None = None
    load: float | None = None
    duration: float | None = Field(default=None, description="Duration in minutes")
    intensity: str | None = Field(default=None, description="Training zone Z1-Z5")
    rationale: str | None = None
    notes: str | None = None
    category: str | None = None
    target_rpe: float | None = None
    constraint_source: str | None = None
    superset: bool = False
    source: str | None = None

    original_sets: int | None = Field(default=None, exclude=True)
    readiness_reduced: bool = Field(default=False, exclude=True)

    @field_validator("intensity", mode="before")
    @classmethod
    def normalize_zone(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() in {"Z1", "Z2", "Z3", "Z4", "Z5"}:
            return value.upper()
        return value

    @property
    def display_name(self) -> str:
        return self.exercise or self.name or ""


class Constraint(FrozenModel):
    model_config = ConfigDict(extra="allow")

    type: str
    rule: str | None = None
    days_until_game: int | None = None


class Priority(FrozenModel):
    model_config = ConfigDict(extra="allow")

    area: str
    weight: float = 1.0


class Proposal(FrozenModel):
    blocks: list[Block] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)
    priorities: list[Priority] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "Proposal":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.blocks

    def blocks_of_type(self, block_type: str) -> list[Block]:
        return [block for block in self.blocks if block.type == block_type]

    def find_constraint(self, constraint_type: str) -> Constraint | None:
        return next((c for c in self.constraints if c.type == constraint_type), None)


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class PlanNote(FrozenModel):
    source: str
    text: str


class Substitution(FrozenModel):
    original: str
    alternative: str
    reason: str | None = None


class PendingChoice(FrozenModel):
    """User decision requested before a collapsed session is delivered."""

    reason: str
    options: list[str] = Field(default_factory=lambda: ["accept", "override", "ask_each_time"])
    default: str = "accept"


class PlanMetadata(FrozenModel):
    source: str = "experts"
    readiness_multiplier: float = 1.0
    generated_at: str | None = None
    experts: list[str] = Field(default_factory=list)
    failed_experts: list[str] = Field(default_factory=list)
    fallback_tier: int | None = None
    main_duration_minutes: float | None = None


class Plan(FrozenModel):
    """Session plan returned to plan consumers."""

    warmup: list[Block] = Field(default_factory=list)
    main_sets: list[Block] = Field(default_factory=list)
    accessories: list[Block] = Field(default_factory=list)
    finishers: list[Block] = Field(default_factory=list)
    substitutions: list[Substitution] = Field(default_factory=list)
    notes: list[PlanNote] = Field(default_factory=list)
    session_notes: str = ""
    nutrition: Block | None = None
    metadata: PlanMetadata = Field(default_factory=PlanMetadata)
    intensity_scale: float = 1.0
    why: list[str] = Field(default_factory=list)
    warnings: list[str] | None = None
    is_fallback: bool = False
    pending_choice: PendingChoice | None = None

    @property
    def exercise_count(self) -> int:
        return sum(len(getattr(self, bucket)) for bucket in PLAN_BUCKETS)

    @property
    def has_exercises(self) -> bool:
        return self.exercise_count > 0

    def with_note(self, source: str, text: str) -> "Plan":
        return self.model_copy(update={"notes": [*self.notes, PlanNote(source=source, text=text)]})

    def with_substitution(self, original: str, alternative: str, reason: str | None) -> "Plan":
        substitution = Substitution(original=original, alternative=alternative, reason=reason)
        return self.model_copy(update={"substitutions": [*self.substitutions, substitution]})

    def to_public_dict(self) -> dict[str, Any]:
        """Serialise to the JSON shape handed to plan consumers."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
