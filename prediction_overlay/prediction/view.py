"""Builds the overlay response from a prediction snapshot."""

from prediction_overlay.prediction.ranking import Layout, order_outcomes, top_predictors
from prediction_overlay.prediction.state_machine import PredictionSnapshot
from prediction_overlay.schemas.overlay import PredictionOverlayResponse


def build_overlay(snapshot: PredictionSnapshot, layout: Layout) -> PredictionOverlayResponse:
    event = snapshot.event
    outcomes = snapshot.outcomes
    return PredictionOverlayResponse(
        state=snapshot.state.value,
        visible=snapshot.visible,
        layout=layout.value,
        title=snapshot.title,
        status=event.status if event else None,
        winning_outcome_id=snapshot.winning_outcome_id,
        outcomes=order_outcomes(outcomes, layout),
        top_predictors=top_predictors(snapshot.winning_outcome_id, outcomes),
    )
