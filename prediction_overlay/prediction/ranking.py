"""
Outcome ordering and winner lookups for the overlay.

Pure functions only; inputs are never mutated.
"""

from enum import Enum
from typing import List, Optional, Sequence

from prediction_overlay.schemas.eventsub import Outcome, TopPredictor


class Layout(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


def _weight(outcome: Outcome) -> float:
    return outcome.channel_points or 0


def order_outcomes(outcomes: Sequence[Outcome], layout: Layout) -> List[Outcome]:
    """
    Order outcomes for display.

    Vertical layouts stack outcomes by ascending channel points (missing
    counts as 0, ties keep upstream order). Horizontal layouts keep the
    upstream order. A new list is returned either way.
    """
    if layout is Layout.VERTICAL:
        return sorted(outcomes, key=_weight)
    return list(outcomes)


def top_predictors(
    winning_outcome_id: Optional[str], outcomes: Sequence[Outcome]
) -> List[TopPredictor]:
    """Top predictors of the winning outcome, in upstream order; empty when unknown."""
    if not winning_outcome_id:
        return []
    for outcome in outcomes:
        if outcome.id == winning_outcome_id:
            return list(outcome.top_predictors or [])
    return []
