"""
EventSub Frame Dispatcher

Validates each inbound frame and routes it:
- session control messages -> SessionManager
- prediction notifications -> PredictionStateMachine

A bad frame is logged and dropped; it never interrupts the message loop.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Optional

from prediction_overlay.config import settings
from prediction_overlay.ingest.frames import (
    ClassifiedMessage,
    FrameValidationError,
    PredictionNotification,
    RawFrame,
    Revocation,
    SessionKeepalive,
    SessionReconnect,
    SessionWelcome,
    parse_frame,
)
from prediction_overlay.ingest.session import SessionManager
from prediction_overlay.prediction.state_machine import PredictionStateMachine
from prediction_overlay.utils.logging import get_logger

logger = get_logger(__name__, category="eventsub")


@dataclass
class DispatchStats:
    """Frame counters since startup."""

    received: int = 0
    rejected: int = 0  # Malformed JSON or schema mismatch
    duplicates: int = 0  # message_id already seen
    dropped: int = 0  # Valid, but arrived in a state where it cannot be used
    ignored: int = 0  # Well-formed but not something we act on

    def to_dict(self) -> dict:
        return asdict(self)


class FrameDispatcher:
    """Processes frames strictly one at a time, in arrival order."""

    def __init__(
        self,
        session_manager: SessionManager,
        state_machine: PredictionStateMachine,
        dedupe_window: Optional[int] = None,
    ):
        self.session_manager = session_manager
        self.state_machine = state_machine
        self.dedupe_window = (
            settings.eventsub_dedupe_window if dedupe_window is None else dedupe_window
        )
        self.stats = DispatchStats()
        self.last_error: Optional[FrameValidationError] = None
        self._seen_ids: "OrderedDict[str, None]" = OrderedDict()

    def process(self, raw: RawFrame) -> Optional[ClassifiedMessage]:
        """
        Validate and route one frame.

        Returns:
            The classified message, or None if the frame was rejected or a duplicate
        """
        self.stats.received += 1
        try:
            message = parse_frame(raw)
        except FrameValidationError as e:
            self.stats.rejected += 1
            self.last_error = e
            logger.warning(f"Discarding EventSub frame: {e.describe()}")
            return None

        if self._is_duplicate(message.message_id):
            self.stats.duplicates += 1
            logger.debug(f"Duplicate EventSub message {message.message_id} ignored")
            return None

        if isinstance(message, SessionWelcome):
            self.session_manager.handle_welcome(message)
        elif isinstance(message, SessionReconnect):
            self.session_manager.handle_reconnect(message)
        elif isinstance(message, SessionKeepalive):
            pass
        elif isinstance(message, PredictionNotification):
            self._route_notification(message)
        elif isinstance(message, Revocation):
            subscription = message.subscription
            logger.warning(
                "EventSub subscription revoked: "
                f"{subscription.type if subscription else 'unknown'} "
                f"({subscription.status if subscription else 'no status'})"
            )
        else:
            self.stats.ignored += 1
            logger.debug(
                f"Ignoring EventSub message: {message.message_type} {message.subscription_type or ''}"
            )
        return message

    def _route_notification(self, message: PredictionNotification) -> None:
        if not self.session_manager.is_active:
            self.stats.dropped += 1
            logger.warning(
                f"Dropping {message.event_type.value} received before session welcome "
                f"(session state: {self.session_manager.state.value})"
            )
            return
        logger.info(f"Received EventSub notification: {message.event_type.value}")
        self.state_machine.handle(message)

    def _is_duplicate(self, message_id: str) -> bool:
        if self.dedupe_window <= 0:
            return False
        if message_id in self._seen_ids:
            return True
        self._seen_ids[message_id] = None
        while len(self._seen_ids) > self.dedupe_window:
            self._seen_ids.popitem(last=False)
        return False
