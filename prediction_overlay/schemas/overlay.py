"""
Overlay API Schemas

Response models served to the overlay page.
"""

from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field

from prediction_overlay.schemas.eventsub import Outcome, TopPredictor


class PredictionOverlayResponse(BaseModel):
    """Everything the overlay needs to draw the current prediction."""

    state: str = Field(..., description="not_started, started, locked or ended")
    visible: bool = Field(..., description="Whether the overlay should be shown")
    layout: str = Field(..., description="vertical or horizontal")
    title: str = ""
    status: Optional[str] = Field(None, description="'resolved' or 'canceled' once ended")
    winning_outcome_id: Optional[str] = None
    outcomes: List[Outcome] = Field(default_factory=list, description="Outcomes in display order")
    top_predictors: List[TopPredictor] = Field(
        default_factory=list, description="Top predictors of the winning outcome"
    )


class EventSubStatus(BaseModel):
    enabled: bool
    connected: bool = False
    session_state: str = "disconnected"
    session_id: Optional[str] = None
    frames_received: int = 0
    frames_rejected: int = 0
    last_error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str
    prediction_state: str
    eventsub: EventSubStatus
