"""
Prediction State Machine

Tracks the lifecycle of the channel's current prediction.

State Machine:
    NOT_STARTED -> STARTED -> LOCKED -> ENDED
         ^                               |
         +------- reset timer (30s) -----+

    channel.prediction.begin    -> STARTED (from any state, replaces the event)
    channel.prediction.progress -> state unchanged, weights overwritten
    channel.prediction.lock     -> LOCKED
    channel.prediction.end      -> ENDED, reset timer armed

State and the current event are held together in one immutable
PredictionSnapshot. `apply_notification` is the pure transition function;
PredictionStateMachine owns the current snapshot and the reset timer.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

from prediction_overlay.config import settings
from prediction_overlay.ingest.frames import PredictionNotification
from prediction_overlay.schemas.eventsub import Outcome, PredictionEvent, PredictionEventType
from prediction_overlay.utils.logging import get_logger
from prediction_overlay.utils.scheduling import Cancellable, Scheduler

logger = get_logger(__name__, category="prediction")


class PredictionState(Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    LOCKED = "locked"
    ENDED = "ended"


@dataclass(frozen=True)
class PredictionSnapshot:
    """Read-only view of the lifecycle state and the latest event."""

    state: PredictionState = PredictionState.NOT_STARTED
    event: Optional[PredictionEvent] = None

    @property
    def title(self) -> str:
        return self.event.title if self.event else ""

    @property
    def outcomes(self) -> Tuple[Outcome, ...]:
        return tuple(self.event.outcomes) if self.event else ()

    @property
    def winning_outcome_id(self) -> Optional[str]:
        return self.event.winning_outcome_id if self.event else None

    @property
    def visible(self) -> bool:
        """The overlay is shown while predictions are open and after they resolve."""
        return self.state in (PredictionState.STARTED, PredictionState.ENDED)


StateListener = Callable[[PredictionSnapshot, PredictionSnapshot], None]

_NEXT_STATE = {
    PredictionEventType.BEGIN: PredictionState.STARTED,
    PredictionEventType.LOCK: PredictionState.LOCKED,
    PredictionEventType.END: PredictionState.ENDED,
}


def _overwrite_weights(current: PredictionEvent, incoming: PredictionEvent) -> PredictionEvent:
    """
    Take the incoming event, keeping the stored outcome order and labels.

    Only the weight-bearing fields of each outcome come from the incoming
    payload. The caller guarantees both events carry the same outcome ids.
    """
    by_id = {outcome.id: outcome for outcome in incoming.outcomes}
    outcomes = [
        outcome.model_copy(
            update={
                "users": by_id[outcome.id].users,
                "channel_points": by_id[outcome.id].channel_points,
                "top_predictors": by_id[outcome.id].top_predictors,
            }
        )
        for outcome in current.outcomes
    ]
    return incoming.model_copy(update={"outcomes": outcomes})


def _same_prediction(current: PredictionEvent, incoming: PredictionEvent) -> bool:
    return current.id == incoming.id and sorted(current.outcome_ids()) == sorted(
        incoming.outcome_ids()
    )


def apply_notification(
    snapshot: PredictionSnapshot, notification: PredictionNotification
) -> PredictionSnapshot:
    """
    Compute the snapshot that follows `notification`.

    begin always replaces the event wholesale. progress/lock/end overwrite
    the weights of the stored event; when there is no stored event, or it is
    a different prediction, the incoming event is shown as-is.
    """
    event_type = notification.event_type
    incoming = notification.event
    next_state = _NEXT_STATE.get(event_type, snapshot.state)

    if event_type is PredictionEventType.BEGIN:
        return PredictionSnapshot(state=next_state, event=incoming)

    current = snapshot.event
    if current is None:
        logger.warning(
            f"{event_type.value} for prediction {incoming.id} without a prior begin, showing it as-is"
        )
        return replace(snapshot, state=next_state, event=incoming)

    if not _same_prediction(current, incoming):
        logger.warning(
            f"{event_type.value} for prediction {incoming.id} does not match current "
            f"prediction {current.id}, replacing it"
        )
        return replace(snapshot, state=next_state, event=incoming)

    return replace(snapshot, state=next_state, event=_overwrite_weights(current, incoming))


class PredictionStateMachine:
    """
    Holds the current prediction snapshot for the overlay.

    Usage:
        machine = PredictionStateMachine()
        machine.subscribe(lambda old, new: print(f"{old.state} -> {new.state}"))

        machine.handle(begin_notification)
        machine.handle(end_notification)  # reset to NOT_STARTED 30s later
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        reset_after_seconds: Optional[float] = None,
    ):
        self.scheduler = scheduler or Scheduler()
        self.reset_after_seconds = (
            settings.prediction_reset_seconds
            if reset_after_seconds is None
            else reset_after_seconds
        )
        self._snapshot = PredictionSnapshot()
        self._reset_timer: Optional[Cancellable] = None
        self._listeners: List[StateListener] = []

    @property
    def snapshot(self) -> PredictionSnapshot:
        return self._snapshot

    @property
    def state(self) -> PredictionState:
        return self._snapshot.state

    @property
    def reset_pending(self) -> bool:
        return self._reset_timer is not None and not self._reset_timer.cancelled()

    def subscribe(self, listener: StateListener) -> None:
        """Register a callback receiving (old, new) snapshots on every change."""
        self._listeners.append(listener)

    def handle(self, notification: PredictionNotification) -> PredictionSnapshot:
        """Apply a prediction notification and return the new snapshot."""
        if notification.event_type is PredictionEventType.BEGIN:
            self._cancel_reset()

        self._set_snapshot(apply_notification(self._snapshot, notification))

        if notification.event_type is PredictionEventType.END:
            self._arm_reset()
        return self._snapshot

    def reset(self) -> None:
        """Clear the overlay back to NOT_STARTED."""
        self._cancel_reset()
        self._set_snapshot(PredictionSnapshot())

    def _set_snapshot(self, snapshot: PredictionSnapshot) -> None:
        old = self._snapshot
        self._snapshot = snapshot
        if old.state != snapshot.state:
            logger.info(f"Prediction state: {old.state.value} -> {snapshot.state.value}")
        if old != snapshot:
            for listener in list(self._listeners):
                listener(old, snapshot)

    def _arm_reset(self) -> None:
        self._cancel_reset()
        self._reset_timer = self.scheduler.call_later(self.reset_after_seconds, self._on_reset_timer)
        logger.debug(f"Prediction reset scheduled in {self.reset_after_seconds}s")

    def _cancel_reset(self) -> None:
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None

    def _on_reset_timer(self) -> None:
        self._reset_timer = None
        logger.info("Prediction display period over, clearing overlay")
        self._set_snapshot(PredictionSnapshot())
