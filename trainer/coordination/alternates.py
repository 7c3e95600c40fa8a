"""Table-driven exercise substitution.

Maps an exercise to knee-friendly or lower-stress alternates, best first.
"""

from trainer.coordination.contracts import Alternate

SUBSTITUTION_RULES: dict[str, list[Alternate]] = {
    "bulgarian split squat": [
        Alternate(name="Walking Lunges", rationale="Less knee stress, similar unilateral work"),
        Alternate(name="Reverse Lunges", rationale="Reduced knee shear forces"),
        Alternate(name="Step-ups", rationale="Controlled knee flexion"),
    ],
    "back squat": [
        Alternate(name="Goblet Squat", rationale="Upright torso, lighter load on the knees"),
        Alternate(name="Front Squat", rationale="Less spinal loading"),
        Alternate(name="Landmine Squat", rationale="Guided path with adjustable depth"),
    ],
    "front squat": [
        Alternate(name="Goblet Squat", rationale="Lighter load, same movement pattern"),
        Alternate(name="Box Squat", rationale="Controlled depth"),
    ],
    "squat": [
        Alternate(name="Goblet Squat", rationale="Lighter load, knee-friendly depth"),
        Alternate(name="Box Squat", rationale="Controlled depth"),
    ],
    "deadlift": [
        Alternate(name="Romanian Deadlift", rationale="Hip hinge with less knee involvement"),
        Alternate(name="Trap Bar Deadlift", rationale="More neutral spine position"),
        Alternate(name="Single Leg RDL", rationale="Lower absolute load", volume_adjustment=0.8),
    ],
}


class StaticExerciseAlternates:
    def __init__(self, rules: dict[str, list[Alternate]] | None = None) -> None:
        self._rules = {name.lower(): alternates for name, alternates in (rules or SUBSTITUTION_RULES).items()}

    def get_alternates(self, exercise: str) -> list[Alternate]:
        """Alternates for an exact (case-insensitive) name, else the longest matching pattern."""
        name = exercise.strip().lower()
        if name in self._rules:
            return list(self._rules[name])
        matches = [pattern for pattern in self._rules if pattern in name]
        if not matches:
            return []
        return list(self._rules[max(matches, key=len)])
