from .ranking import Layout, order_outcomes, top_predictors
from .state_machine import PredictionSnapshot, PredictionState, PredictionStateMachine

__all__ = [
    "Layout",
    "order_outcomes",
    "top_predictors",
    "PredictionSnapshot",
    "PredictionState",
    "PredictionStateMachine",
]
