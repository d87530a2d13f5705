"""Needs model: per-agent drive state, urgency weighting and satisfaction.

Each need (energy, hunger, social, stress, comfort) lives on a 0-10 scale.
Lower values are more urgent except stress, which is urgent when high. The
model buckets needs by fixed thresholds, weights them by how much they
should drive behaviour right now, and predicts how an action would change
them.

Weight of a need::

    base(value) x personality x interaction x time_of_day   in [0.1, 5.0]

* ``base`` grows as the need gets more urgent.
* ``personality`` comes from the trait weight table (rest / social).
* ``interaction`` encodes fixed pairwise heuristics: a low need amplifies
  the needs it affects, high stress amplifies energy and dampens social.
* ``time_of_day`` reflects daily rhythm (hungry at lunch, tired at night).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional

from npcmind.config import DEFAULT_CONFIG, EngineConfig
from npcmind.schemas import ActionType, AvailableAction, Need, NeedLevel, NeedsVector

if TYPE_CHECKING:
    from npcmind.agent import Agent


WEIGHT_FLOOR = 0.1
WEIGHT_CEILING = 5.0

# Which other needs a need drags down when it is low.
NEED_INTERACTIONS: Dict[Need, tuple[Need, ...]] = {
    Need.ENERGY: (Need.STRESS, Need.SOCIAL),
    Need.HUNGER: (Need.ENERGY, Need.STRESS, Need.COMFORT),
    Need.STRESS: (Need.ENERGY, Need.SOCIAL, Need.COMFORT),
    Need.SOCIAL: (Need.STRESS, Need.COMFORT),
    Need.COMFORT: (Need.STRESS,),
}

TIME_MULTIPLIERS: Dict[Need, Dict[str, float]] = {
    Need.ENERGY: {"morning": 0.8, "lunch": 1.0, "afternoon": 1.2, "evening": 1.4},
    Need.HUNGER: {"morning": 0.9, "lunch": 1.3, "afternoon": 1.1, "evening": 0.8},
    Need.SOCIAL: {"morning": 0.8, "lunch": 1.3, "afternoon": 1.1, "evening": 0.9},
    Need.STRESS: {"morning": 0.9, "lunch": 1.0, "afternoon": 1.2, "evening": 1.3},
    Need.COMFORT: {"morning": 1.0, "lunch": 1.0, "afternoon": 1.0, "evening": 1.0},
}

# Personality weight key that scales each need, if any.
PERSONALITY_KEYS: Dict[Need, Optional[str]] = {
    Need.ENERGY: "rest",
    Need.HUNGER: None,
    Need.SOCIAL: "social",
    Need.STRESS: None,
    Need.COMFORT: "rest",
}


def effective_value(need: Need, value: float) -> float:
    """Map a raw value onto the "lower is worse" scale used for bucketing."""

    return 10.0 - value if need is Need.STRESS else value


def deficit(need: Need, value: float) -> float:
    """How far a need is from fully satisfied (stress deficit is stress itself)."""

    return value if need is Need.STRESS else 10.0 - value


def day_period(hour: int) -> str:
    if 12 <= hour <= 13:
        return "lunch"
    if 14 <= hour <= 17:
        return "afternoon"
    if hour >= 18:
        return "evening"
    return "morning"


@dataclass
class NeedsPriority:
    """Bucketed needs plus the aggregate urgency for one evaluation."""

    critical: List[Need] = field(default_factory=list)
    low: List[Need] = field(default_factory=list)
    moderate: List[Need] = field(default_factory=list)
    satisfied: List[Need] = field(default_factory=list)
    high: List[Need] = field(default_factory=list)
    urgency_score: float = 0.0
    weightings: Dict[Need, float] = field(default_factory=dict)

    def bucket(self, level: NeedLevel) -> List[Need]:
        return getattr(self, level.value)

    def level_of(self, need: Need) -> NeedLevel:
        for level in NeedLevel:
            if need in self.bucket(level):
                return level
        raise KeyError(need)


@dataclass
class OutcomePrediction:
    predicted_needs: NeedsVector
    urgency_change: float
    benefit_score: float


class NeedsModel:
    """Threshold bucketing, urgency weighting and outcome prediction."""

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    # ------------------------------------------------------------------
    # Bucketing
    # ------------------------------------------------------------------

    def level(self, need: Need, value: float) -> NeedLevel:
        thresholds = self.config.needs
        effective = effective_value(need, value)
        if effective <= thresholds.critical:
            return NeedLevel.CRITICAL
        if effective <= thresholds.low:
            return NeedLevel.LOW
        if effective <= thresholds.moderate:
            return NeedLevel.MODERATE
        if effective <= thresholds.satisfied:
            return NeedLevel.SATISFIED
        return NeedLevel.HIGH

    def is_low_or_worse(self, need: Need, value: float) -> bool:
        return self.level(need, value) in (NeedLevel.CRITICAL, NeedLevel.LOW)

    # ------------------------------------------------------------------
    # Weighting
    # ------------------------------------------------------------------

    @staticmethod
    def base_weight(need: Need, value: float) -> float:
        effective = effective_value(need, value)
        if effective <= 2:
            return 4.0
        if effective <= 4:
            return 3.0
        if effective <= 6:
            return 2.0
        if effective <= 8:
            return 1.0
        return 0.5

    def interaction_multiplier(self, need: Need, needs: NeedsVector) -> float:
        multiplier = 1.0
        for affected in NEED_INTERACTIONS[need]:
            if self.is_low_or_worse(affected, needs.value(affected)):
                multiplier *= 1.2

        high_stress = needs.stress >= self.config.needs.satisfied
        if need is Need.ENERGY and high_stress:
            multiplier *= 1.3
        if need is Need.SOCIAL and high_stress:
            multiplier *= 0.7
        if need is Need.STRESS:
            struggling = [
                other
                for other in Need
                if other is not Need.STRESS and self.is_low_or_worse(other, needs.value(other))
            ]
            if len(struggling) >= 2:
                multiplier *= 1.4
        return multiplier

    @staticmethod
    def time_multiplier(need: Need, hour: int) -> float:
        return TIME_MULTIPLIERS[need][day_period(hour)]

    @staticmethod
    def personality_multiplier(need: Need, personality_weights: Optional[Mapping[str, float]]) -> float:
        key = PERSONALITY_KEYS[need]
        if key is None or not personality_weights:
            return 1.0
        return float(personality_weights.get(key, 1.0))

    def weight(
        self,
        need: Need,
        needs: NeedsVector,
        *,
        hour: int,
        personality_weights: Optional[Mapping[str, float]] = None,
    ) -> float:
        value = needs.value(need)
        weight = (
            self.base_weight(need, value)
            * self.personality_multiplier(need, personality_weights)
            * self.interaction_multiplier(need, needs)
            * self.time_multiplier(need, hour)
        )
        return max(WEIGHT_FLOOR, min(WEIGHT_CEILING, weight))

    # ------------------------------------------------------------------
    # Priority
    # ------------------------------------------------------------------

    def evaluate(
        self,
        needs: NeedsVector,
        *,
        now: datetime,
        personality_weights: Optional[Mapping[str, float]] = None,
    ) -> NeedsPriority:
        result = NeedsPriority()
        for need in Need:
            value = needs.value(need)
            result.bucket(self.level(need, value)).append(need)
            result.weightings[need] = self.weight(
                need, needs, hour=now.hour, personality_weights=personality_weights
            )
        result.urgency_score = self.urgency(needs, result.weightings)
        return result

    def priority(
        self,
        agent: "Agent",
        *,
        now: datetime,
        personality_weights: Optional[Mapping[str, float]] = None,
    ) -> NeedsPriority:
        """Bucket and weight the agent's needs at ``now``."""

        return self.evaluate(agent.needs, now=now, personality_weights=personality_weights)

    @staticmethod
    def urgency(needs: NeedsVector, weightings: Mapping[Need, float]) -> float:
        total_weight = sum(weightings.values())
        if total_weight <= 0:
            return 0.0
        weighted = sum(deficit(need, needs.value(need)) * weightings[need] for need in Need)
        score = (weighted / total_weight) * 10
        return max(0.0, min(100.0, score))

    @staticmethod
    def most_urgent(priority: NeedsPriority) -> Optional[Need]:
        for level in (NeedLevel.CRITICAL, NeedLevel.LOW, NeedLevel.MODERATE):
            bucket = priority.bucket(level)
            if bucket:
                return max(bucket, key=lambda need: priority.weightings.get(need, 0.0))
        return None

    @staticmethod
    def is_in_crisis(priority: NeedsPriority) -> bool:
        return len(priority.critical) >= 2

    @staticmethod
    def explain(priority: NeedsPriority) -> str:
        if priority.critical:
            names = ", ".join(need.value for need in priority.critical)
            return f"Urgent: {names} critical (urgency {priority.urgency_score:.0f})"
        if priority.low:
            names = ", ".join(need.value for need in priority.low)
            return f"Running low on {names} (urgency {priority.urgency_score:.0f})"
        return f"Needs are under control (urgency {priority.urgency_score:.0f})"

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def predict_outcome(self, action_type: ActionType, needs: NeedsVector, *, hour: int = 10) -> OutcomePrediction:
        """Predict the needs after ``action_type`` and score how much it helps."""

        deltas = self.config.satisfaction_for(action_type)
        predicted = needs.with_deltas(deltas)

        benefit = 0.0
        for need, delta in deltas.items():
            improvement = -delta if need is Need.STRESS else delta
            benefit += improvement * self.base_weight(need, needs.value(need))

        before = self.urgency(needs, {n: self.weight(n, needs, hour=hour) for n in Need})
        after = self.urgency(predicted, {n: self.weight(n, predicted, hour=hour) for n in Need})
        return OutcomePrediction(
            predicted_needs=predicted,
            urgency_change=after - before,
            benefit_score=benefit,
        )

    def suggest_optimal_action(
        self,
        needs: NeedsVector,
        candidates: Iterable[AvailableAction],
    ) -> Optional[AvailableAction]:
        best: Optional[AvailableAction] = None
        best_score = 0.0
        for candidate in candidates:
            score = self.predict_outcome(candidate.type, needs).benefit_score
            if score > best_score:
                best, best_score = candidate, score
        return best

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply_action(self, needs: NeedsVector, action_type: ActionType) -> None:
        needs.adjust(self.config.satisfaction_for(action_type))

    def decay(self, needs: NeedsVector, hours: float) -> None:
        """Let needs drift for ``hours`` of simulated time."""

        if hours <= 0:
            return
        needs.adjust({need: -rate * hours for need, rate in self.config.decay_per_hour.items()})
