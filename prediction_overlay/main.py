"""
Prediction Overlay Service - FastAPI Application

This service:
- Keeps an EventSub WebSocket session open for the target broadcaster
- Tracks the broadcaster's current channel prediction
- Serves the prediction state to the overlay page loaded in OBS
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from prediction_overlay.config import settings
from prediction_overlay.ingest.dispatcher import FrameDispatcher
from prediction_overlay.ingest.registrar import HelixSubscriptionRegistrar
from prediction_overlay.ingest.session import SessionManager
from prediction_overlay.ingest.twitch import EventSubWebSocketClient
from prediction_overlay.prediction.ranking import Layout
from prediction_overlay.prediction.state_machine import PredictionStateMachine
from prediction_overlay.prediction.view import build_overlay
from prediction_overlay.schemas.overlay import (
    EventSubStatus,
    HealthResponse,
    PredictionOverlayResponse,
)
from prediction_overlay.utils.logging import configure_logging, get_logger
from prediction_overlay.utils.scheduling import Scheduler

configure_logging()

logger = get_logger(__name__, category="system")
eventsub_logger = get_logger(f"{__name__}.eventsub", category="eventsub")

app = FastAPI(
    title="Prediction Overlay Service",
    description="Twitch prediction overlay backend supporting more than two outcomes",
    version="0.1.0",
)

# The overlay page runs inside a browser source on another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

scheduler = Scheduler()
state_machine = PredictionStateMachine(scheduler=scheduler)

registrar: Optional[HelixSubscriptionRegistrar] = None
session_manager: Optional[SessionManager] = None
dispatcher: Optional[FrameDispatcher] = None
eventsub_client: Optional[EventSubWebSocketClient] = None

if settings.eventsub_enabled and settings.target_user_id:
    try:
        registrar = HelixSubscriptionRegistrar()
        session_manager = SessionManager(
            user_id=settings.target_user_id,
            registrar=registrar,
            scheduler=scheduler,
        )
        dispatcher = FrameDispatcher(session_manager, state_machine)
        eventsub_client = EventSubWebSocketClient(session_manager, dispatcher)
        logger.info("EventSub client initialized")
    except ValueError as exc:
        logger.warning("EventSub client unavailable: %s", exc)
        eventsub_client = None
elif settings.eventsub_enabled:
    logger.warning("TARGET_USER_ID not set, EventSub client disabled")


def _parse_layout(layout: Optional[str]) -> Layout:
    value = (layout or settings.overlay_layout).lower()
    try:
        return Layout(value)
    except ValueError:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown layout '{value}', expected one of: "
            + ", ".join(item.value for item in Layout),
        )


@app.get("/{user_id}/overlays/prediction", response_model=PredictionOverlayResponse)
async def prediction_overlay(user_id: str, layout: Optional[str] = None):
    """
    Current prediction for the overlay page.

    Outcomes are ordered for the requested layout (vertical stacks by
    ascending channel points, horizontal keeps Twitch's order).
    """
    if settings.target_user_id and user_id != settings.target_user_id:
        raise HTTPException(status_code=404, detail=f"No overlay for user {user_id}")

    return build_overlay(state_machine.snapshot, _parse_layout(layout))


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Service status, EventSub session state and frame counters."""
    eventsub = EventSubStatus(enabled=settings.eventsub_enabled and eventsub_client is not None)
    if eventsub_client and session_manager and dispatcher:
        eventsub.connected = eventsub_client.is_connected
        eventsub.session_state = session_manager.state.value
        eventsub.session_id = session_manager.session_id
        eventsub.frames_received = dispatcher.stats.received
        eventsub.frames_rejected = dispatcher.stats.rejected
        if dispatcher.last_error:
            eventsub.last_error = dispatcher.last_error.describe()
        elif session_manager.last_registration_error:
            eventsub.last_error = str(session_manager.last_registration_error)

    return HealthResponse(
        status="healthy",
        service="prediction-overlay",
        timestamp=datetime.now(timezone.utc).isoformat(),
        prediction_state=state_machine.state.value,
        eventsub=eventsub,
    )


# ============================================================================
# STARTUP/SHUTDOWN
# ============================================================================


@app.on_event("startup")
async def startup_event():
    """Start the EventSub WebSocket connection."""
    logger.info(f"Prediction overlay service starting on {settings.host}:{settings.port}")

    if eventsub_client:
        try:
            await eventsub_client.connect()
            eventsub_logger.info("EventSub WebSocket connection started")
        except Exception as exc:
            eventsub_logger.error(f"Failed to start EventSub connection: {exc}")


@app.on_event("shutdown")
async def shutdown_event():
    """Close the EventSub connection and cancel scheduled work."""
    if eventsub_client:
        try:
            await eventsub_client.disconnect()
            eventsub_logger.info("EventSub WebSocket connection closed")
        except Exception as exc:
            eventsub_logger.error(f"Error closing EventSub connection: {exc}")

    if registrar:
        await registrar.aclose()

    state_machine.reset()
    await scheduler.aclose()
    logger.info("Prediction overlay service stopped")


"""
RUNNING:
    uvicorn prediction_overlay.main:app --port 8000

    Then point an OBS browser source at the overlay page, which polls
    GET /<broadcaster user id>/overlays/prediction?layout=vertical
"""
