"""Context validation with conservative defaults.

Raw request contexts go through the configured data validator and are then
parsed into a Context. When the validator is missing, raises, or rejects the
context, a conservative context is built from whatever fields are usable.
Validator verdicts are cached by a key over the fields the validator reads.
"""

import copy
import math
from collections.abc import Mapping
from typing import Any

from loguru import logger
from pydantic import Field, ValidationError

from trainer.coordination.cache import BoundedCache, ValidationCacheKey
from trainer.coordination.contracts import Available, ConservativeRecommendations, ContextValidator, Unavailable
from trainer.coordination.errors import ValidationFailureError
from trainer.coordination.types import Context, DataConfidence, FrozenModel, LoadMetrics, normalize_readiness
from trainer.core.observability import CoordinatorStage, log_stage_event

MAX_ATL7 = 200.0
MAX_CTL28 = 400.0
MIN_MONOTONY = 1.0
MAX_MONOTONY = 5.0
DEFAULT_MONOTONY = 1.2
MAX_STRAIN = 1000.0

CONSERVATIVE_INTENSITY_SCALE = 0.8
CONSERVATIVE_VOLUME_SCALE = 1.0
CONSERVATIVE_LOAD_DEFAULTS: dict[str, float] = {"atl7": 50.0, "ctl28": 100.0, "monotony": DEFAULT_MONOTONY, "strain": 0.0}

# Sections whose validated form comes from the validator verdict.
_VALIDATOR_OWNED = frozenset(
    {"readiness", "readinessScore", "load", "atl7", "ctl28", "monotony", "strain", "dataConfidence", "data_confidence"}
)

_SKIPPED_ON_DEFAULTS = frozenset(
    {
        "load",
        "atl7",
        "ctl28",
        "dataConfidence",
        "data_confidence",
        "intensityScale",
        "intensity_scale",
        "volumeScale",
        "volume_scale",
    }
)


class ValidationMetadata(FrozenModel):
    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    cached: bool = False


class ValidatedContext(FrozenModel):
    context: Context
    metadata: ValidationMetadata = Field(default_factory=ValidationMetadata)


def _finite_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _raw_load(raw: Mapping[str, Any]) -> dict[str, Any]:
    load = raw.get("load")
    merged = dict(load) if isinstance(load, Mapping) else {}
    for metric in CONSERVATIVE_LOAD_DEFAULTS:
        if metric not in merged and metric in raw:
            merged[metric] = raw[metric]
    return merged


def apply_conservative_defaults(raw: Mapping[str, Any] | None) -> Context:
    """Build a safe Context from a raw context that failed validation.

    Usable fields are kept; load metrics fall back to moderate values,
    data confidence to 0.5/0.6 and intensity scale to 0.8.
    """
    data = raw if isinstance(raw, Mapping) else {}
    salvaged: dict[str, Any] = {}
    for key, value in data.items():
        if key in _SKIPPED_ON_DEFAULTS:
            continue
        try:
            Context.model_validate({key: value})
        except ValidationError:
            logger.debug(f"Dropping invalid context field: {key}")
            continue
        salvaged[key] = value

    load: dict[str, float] = {}
    raw_load = _raw_load(data)
    for metric, default in CONSERVATIVE_LOAD_DEFAULTS.items():
        number = _finite_number(raw_load.get(metric))
        load[metric] = number if number is not None and number >= 0 else default

    context = Context.model_validate(salvaged)
    return context.model_copy(
        update={
            "load": LoadMetrics(**load),
            "data_confidence": DataConfidence(recent7days=0.5, recent30days=0.6),
            "intensity_scale": CONSERVATIVE_INTENSITY_SCALE,
            "volume_scale": CONSERVATIVE_VOLUME_SCALE,
            "conservative_defaults": True,
        }
    )


class DataValidator:
    """Reference data validator.

    Normalises readiness, clamps load metrics into plausible ranges and
    derives conservative recommendations and safety flags from a context.
    """

    def validate_context(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(raw, Mapping):
            raise TypeError(f"Context must be a mapping, got {type(raw).__name__}")

        data = dict(raw)
        warnings: list[str] = []

        raw_readiness = data.get("readiness", data.get("readinessScore"))
        readiness = normalize_readiness(raw_readiness)
        if raw_readiness is not None and _finite_number(raw_readiness) != readiness:
            warnings.append(f"Readiness {raw_readiness!r} normalized to {readiness:g}")
        data["readiness"] = readiness

        load = _raw_load(data)
        for metric in CONSERVATIVE_LOAD_DEFAULTS:
            data.pop(metric, None)
        load["atl7"] = self._clamp(load.get("atl7"), "atl7", 0.0, MAX_ATL7, 0.0, warnings)
        load["ctl28"] = self._clamp(load.get("ctl28"), "ctl28", 0.0, MAX_CTL28, 0.0, warnings)
        load["strain"] = self._clamp(load.get("strain"), "strain", 0.0, MAX_STRAIN, 0.0, warnings)
        if "monotony" in load:
            monotony = _finite_number(load["monotony"])
            if monotony is None or monotony < MIN_MONOTONY:
                warnings.append(f"Monotony {load['monotony']!r} replaced with {DEFAULT_MONOTONY}")
                load["monotony"] = DEFAULT_MONOTONY
            else:
                load["monotony"] = min(monotony, MAX_MONOTONY)
        data["load"] = load

        confidence_key = "dataConfidence" if "dataConfidence" in data else "data_confidence"
        confidence = data.get(confidence_key)
        if isinstance(confidence, Mapping):
            data[confidence_key] = {
                key: self._clamp(confidence.get(key), key, 0.0, 1.0, default, warnings)
                for key, default in (("recent7days", 0.5), ("recent30days", 0.6))
            }

        data["isValid"] = True
        data["warnings"] = warnings
        return data

    @staticmethod
    def _clamp(value: Any, name: str, low: float, high: float, default: float, warnings: list[str]) -> float:
        if value is None:
            return default
        number = _finite_number(value)
        if number is None:
            warnings.append(f"{name} {value!r} is not a number; using {default:g}")
            return default
        clamped = min(max(number, low), high)
        if clamped != number:
            warnings.append(f"{name} {number:g} clamped to {clamped:g}")
        return clamped

    def generate_conservative_recommendations(self, context: Context) -> ConservativeRecommendations:
        notes: list[str] = []
        if context.readiness <= 4:
            intensity = "light"
            notes.append("Low readiness: keep effort light")
        elif context.readiness >= 8:
            intensity = "moderate-high"
        else:
            intensity = "moderate"

        if context.load.atl7 > 150:
            volume = "low"
            notes.append("High recent load: reduce volume")
        elif context.load.atl7 < 30:
            volume = "moderate-high"
        else:
            volume = "moderate"

        return ConservativeRecommendations(intensity=intensity, volume=volume, duration=45, notes=notes)

    def generate_safety_flags(self, context: Context) -> list[str]:
        flags: list[str] = []
        if context.readiness <= 3:
            flags.append("Low readiness - consider light workout or rest")
        if context.load.atl7 > 150:
            flags.append("High training load - reduce volume")
        if context.load.monotony > 2.5:
            flags.append("Repetitive training pattern - vary today's session")
        if context.data_confidence is not None and context.data_confidence.recent7days < 0.3:
            flags.append("Limited recent data - recommendations are conservative")
        return flags


def _error_strings(error: Exception) -> list[str]:
    if isinstance(error, ValidationError):
        return [f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in error.errors()]
    return [f"{type(error).__name__}: {error}"]


class ValidatorVerdict(FrozenModel):
    """What the validator decided about the keyed sections of a context.

    Only readiness, load and data confidence are taken from the validator;
    every other field is read from the request being validated.
    """

    sections: dict[str, Any] = Field(default_factory=dict)
    metadata: ValidationMetadata = Field(default_factory=ValidationMetadata)

    @property
    def accepted(self) -> bool:
        return self.metadata.is_valid


class ContextValidation:
    """Validates raw contexts through the optional validator, with caching.

    The cache holds validator verdicts, never whole contexts: a hit skips the
    validator but the Context is still built from the current request.
    """

    def __init__(
        self,
        validator: Available[ContextValidator] | Unavailable,
        cache: BoundedCache[ValidatorVerdict],
    ) -> None:
        self._validator = validator
        self._cache = cache

    @property
    def cache(self) -> BoundedCache[ValidatorVerdict]:
        return self._cache

    def validate(self, raw: Mapping[str, Any] | Context | None, *, use_cache: bool = True) -> ValidatedContext:
        log_stage_event(CoordinatorStage.VALIDATE, "start")
        data = to_raw_mapping(raw)

        if raw is not None and not isinstance(raw, Mapping | Context):
            failure = ValidationFailureError([f"Context must be a mapping, got {type(raw).__name__}"])
            result = self._conservative(data, failure.errors, "Invalid context; using conservative defaults")
            log_stage_event(CoordinatorStage.VALIDATE, "success", {"cached": False, "is_valid": False})
            return result

        key = ValidationCacheKey.from_raw(data).digest()
        verdict = self._cache.get(key) if use_cache else None
        cached = verdict is not None
        if verdict is None:
            verdict = self._run_validator(data)
            if use_cache:
                self._cache.set(key, verdict)

        result = self._build(data, verdict)
        if cached:
            result = result.model_copy(update={"metadata": result.metadata.model_copy(update={"cached": True})})
        log_stage_event(
            CoordinatorStage.VALIDATE,
            "success",
            {"cached": cached, "is_valid": result.metadata.is_valid},
        )
        return result

    def _run_validator(self, data: Mapping[str, Any]) -> ValidatorVerdict:
        if isinstance(self._validator, Unavailable):
            logger.warning("Data validator unavailable, using conservative defaults", reason=self._validator.reason)
            return ValidatorVerdict(
                metadata=ValidationMetadata(
                    is_valid=False,
                    warnings=["Data validator unavailable; using conservative defaults"],
                )
            )

        try:
            validated = dict(self._validator.instance.validate_context(data))
            is_valid = bool(validated.pop("isValid", True))
            warnings = [str(warning) for warning in validated.pop("warnings", None) or []]
            if not is_valid:
                raise ValidationFailureError(warnings or ["Validator rejected context"])
        except Exception as e:
            failure = e if isinstance(e, ValidationFailureError) else ValidationFailureError(_error_strings(e))
            logger.warning(
                "Context validation failed, using conservative defaults",
                error_type=type(e).__name__,
                error_count=len(failure.errors),
            )
            return ValidatorVerdict(
                metadata=ValidationMetadata(
                    is_valid=False,
                    errors=failure.errors,
                    warnings=["Context validation failed; using conservative defaults"],
                )
            )

        sections = {
            "readiness": validated.get("readiness"),
            "load": validated.get("load"),
            "dataConfidence": validated.get("dataConfidence", validated.get("data_confidence")),
        }
        return ValidatorVerdict(
            sections={name: value for name, value in sections.items() if value is not None},
            metadata=ValidationMetadata(is_valid=True, warnings=warnings),
        )

    def _build(self, data: Mapping[str, Any], verdict: ValidatorVerdict) -> ValidatedContext:
        if not verdict.accepted:
            return ValidatedContext(context=apply_conservative_defaults(data), metadata=verdict.metadata)

        merged = {key: value for key, value in data.items() if key not in _VALIDATOR_OWNED}
        merged.update(copy.deepcopy(verdict.sections))
        try:
            context = Context.model_validate(merged)
        except ValidationError as e:
            logger.warning("Context could not be parsed, using conservative defaults", error_count=e.error_count())
            return self._conservative(data, _error_strings(e), "Context validation failed; using conservative defaults")
        return ValidatedContext(context=context, metadata=verdict.metadata)

    @staticmethod
    def _conservative(data: Mapping[str, Any], errors: list[str], warning: str) -> ValidatedContext:
        return ValidatedContext(
            context=apply_conservative_defaults(data),
            metadata=ValidationMetadata(is_valid=False, errors=errors, warnings=[warning]),
        )


def to_raw_mapping(raw: Mapping[str, Any] | Context | None) -> dict[str, Any]:
    """Return a plain camelCase mapping for any accepted context input."""
    if isinstance(raw, Context):
        return raw.model_dump(by_alias=True)
    if isinstance(raw, Mapping):
        return dict(raw)
    return {}
