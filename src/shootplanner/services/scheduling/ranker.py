"""Turn feasible candidate schedules into a short, labelled suggestion list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ...config import settings
from ...models.domain import ScheduleSuggestion, StrategyType
from .models import CandidateSchedule

STRATEGY_TEXT: dict[StrategyType, tuple[str, str]] = {
    StrategyType.RECOMMENDED: ("Recommended", "Best route with the least driving and waiting time"),
    StrategyType.CHEAPEST: ("Shortest distance", "Fewest kilometres driven, lowest travel cost"),
    StrategyType.FLEXIBLE: ("Flexible date", "Alternative date with more room in the calendar"),
    StrategyType.WEEKEND: ("Weekend", "Saturday/Sunday on request only (+25-50% surcharge)"),
}


@dataclass(slots=True)
class RankingWeights:
    drive_weight: float = settings.efficiency_drive_weight
    idle_weight: float = settings.efficiency_idle_weight


def efficiency_score(candidate: CandidateSchedule, weights: RankingWeights | None = None) -> float:
    """Drive minutes plus idle minutes between jobs (weighted); lower is better."""
    weights = weights or RankingWeights()
    return round(
        weights.drive_weight * candidate.total_drive_minutes + weights.idle_weight * candidate.idle_minutes,
        2,
    )


def score_key(candidate: CandidateSchedule, weights: RankingWeights | None = None) -> tuple:
    """Order for the recommended pick: efficiency score, then earliest start."""
    return (efficiency_score(candidate, weights), candidate.first_start, candidate.ordering)


def distance_key(candidate: CandidateSchedule) -> tuple:
    return (candidate.total_drive_km, candidate.total_drive_minutes, candidate.first_start, candidate.ordering)


def _to_suggestion(
    strategy: StrategyType,
    candidate: CandidateSchedule,
    weights: RankingWeights,
) -> ScheduleSuggestion:
    label, description = STRATEGY_TEXT[strategy]
    if len(candidate.dates) > 1:
        description = f"{description}; spread over {len(candidate.dates)} days"
    return ScheduleSuggestion(
        strategy_type=strategy,
        label=label,
        description=description,
        assignments=tuple(sorted(candidate.assignments, key=lambda assignment: assignment.start)),
        total_drive_minutes=candidate.total_drive_minutes,
        total_drive_km=candidate.total_drive_km,
        idle_minutes=candidate.idle_minutes,
        efficiency_score=efficiency_score(candidate, weights),
        is_weekend_request=strategy is StrategyType.WEEKEND or candidate.is_weekend,
    )


def rank(
    primary: Sequence[CandidateSchedule],
    alternative: Sequence[CandidateSchedule] = (),
    weekend: Sequence[CandidateSchedule] = (),
    *,
    include_weekend: bool = False,
    weekend_allowed: bool = True,
    weights: RankingWeights | None = None,
) -> list[ScheduleSuggestion]:
    """At most one suggestion per strategy, in the order recommended, cheapest, flexible, weekend.

    ``primary`` holds candidates for the earliest feasible date, ``alternative``
    those for the next feasible date. The weekend option appears only when no
    weekday candidate exists or the customer asked for it.
    """
    weights = weights or RankingWeights()

    def by_score(candidate: CandidateSchedule) -> tuple:
        return score_key(candidate, weights)

    suggestions: list[ScheduleSuggestion] = []
    if primary:
        recommended = min(primary, key=by_score)
        suggestions.append(_to_suggestion(StrategyType.RECOMMENDED, recommended, weights))
        cheapest = min(primary, key=distance_key)
        if cheapest.signature != recommended.signature:
            suggestions.append(_to_suggestion(StrategyType.CHEAPEST, cheapest, weights))

    if alternative:
        suggestions.append(_to_suggestion(StrategyType.FLEXIBLE, min(alternative, key=by_score), weights))

    weekday_found = bool(primary or alternative)
    if weekend and weekend_allowed and (include_weekend or not weekday_found):
        suggestions.append(_to_suggestion(StrategyType.WEEKEND, min(weekend, key=by_score), weights))

    return suggestions
