"""
EventSub Session Manager

Tracks the logical EventSub session across transport connections.

State Machine:
    DISCONNECTED -> AWAITING_WELCOME -> ACTIVE
                          ^               |
                          +---------------+ (session_reconnect: new endpoint)

- A welcome on a fresh connection starts a new session and registers the
  prediction subscriptions for the target user.
- A session_reconnect swaps the endpoint. The welcome that follows on the new
  connection keeps the same session id, and subscriptions carry over, so
  registration is skipped unless the last attempt for that session failed.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional

from prediction_overlay.config import settings
from prediction_overlay.ingest.frames import SessionReconnect, SessionWelcome
from prediction_overlay.ingest.registrar import SubscriptionRegistrar
from prediction_overlay.schemas.eventsub import EventSubSession
from prediction_overlay.utils.logging import get_logger
from prediction_overlay.utils.scheduling import Scheduler

logger = get_logger(__name__, category="eventsub")


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    AWAITING_WELCOME = "awaiting_welcome"
    ACTIVE = "active"


class SessionManager:
    """
    Owns the session id and the transport endpoint.

    Usage:
        manager = SessionManager(user_id="12345", registrar=registrar)
        manager.on_endpoint_change = lambda url: print(f"move to {url}")

        manager.on_transport_open()
        manager.handle_welcome(welcome)      # -> ACTIVE, registration task spawned
        manager.handle_reconnect(reconnect)  # -> endpoint swapped
    """

    def __init__(
        self,
        user_id: str,
        registrar: SubscriptionRegistrar,
        scheduler: Optional[Scheduler] = None,
        base_url: Optional[str] = None,
    ):
        if not user_id:
            raise ValueError("Target user id is required for EventSub subscriptions")

        self.user_id = user_id
        self.registrar = registrar
        self.scheduler = scheduler or Scheduler()
        self.base_url = base_url or settings.eventsub_ws_url

        self._state = SessionState.DISCONNECTED
        self._endpoint = self.base_url
        self.session: Optional[EventSubSession] = None

        # Set between session_reconnect and the welcome on the new connection
        self._migrating = False
        self._registered_session_id: Optional[str] = None

        self.registration_task: Optional[asyncio.Task] = None
        self.last_registration_error: Optional[Exception] = None

        # Callbacks
        self.on_endpoint_change: Optional[Callable[[str], None]] = None
        self.on_registration_error: Optional[Callable[[Exception], None]] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def endpoint(self) -> str:
        """WebSocket URL the next connection should use."""
        return self._endpoint

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id if self.session else None

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def is_migrating(self) -> bool:
        return self._migrating

    def _transition_to(self, new_state: SessionState) -> None:
        old_state = self._state
        if old_state != new_state:
            self._state = new_state
            logger.info(f"EventSub session state: {old_state.value} -> {new_state.value}")

    # Transport events

    def on_transport_open(self) -> None:
        """A WebSocket connection to `endpoint` has just been opened."""
        self._transition_to(SessionState.AWAITING_WELCOME)

    def on_transport_lost(self) -> None:
        """
        The connection dropped without a migration.

        Upstream discards the session with its subscriptions, so the next
        connection starts from the base URL with a brand new session.
        """
        self._transition_to(SessionState.DISCONNECTED)
        self._endpoint = self.base_url
        self._migrating = False
        self._registered_session_id = None
        self.session = None

    # Control messages

    def handle_welcome(self, message: SessionWelcome) -> Optional[asyncio.Task]:
        """
        Handle session_welcome.

        Returns:
            The registration task, or None when no registration was started
        """
        if self._state is SessionState.DISCONNECTED:
            logger.warning(f"Ignoring session_welcome {message.message_id}: no open transport")
            return None

        session = message.session
        if not session.id:
            logger.error(f"Ignoring session_welcome {message.message_id}: empty session id")
            return None

        if self._state is SessionState.ACTIVE:
            logger.warning(f"Duplicate session_welcome for session {session.id}, registering again")

        carried_over = self._migrating and self._registered_session_id == session.id
        self._migrating = False
        self.session = session
        self._transition_to(SessionState.ACTIVE)

        if carried_over:
            logger.info(f"EventSub session {session.id} resumed, subscriptions carried over")
            return None

        logger.info(f"EventSub session established: {session.id}")
        self.registration_task = self.scheduler.spawn(self._register(session.id))
        return self.registration_task

    def handle_reconnect(self, message: SessionReconnect) -> None:
        """Handle session_reconnect by moving the endpoint to the provided URL."""
        if self._state is not SessionState.ACTIVE:
            logger.warning(
                f"Ignoring session_reconnect {message.message_id} in state {self._state.value}"
            )
            return

        self.session = message.session
        reconnect_url = message.session.reconnect_url
        if not reconnect_url:
            logger.warning("session_reconnect without reconnect_url, keeping current endpoint")
            return

        logger.info("EventSub session reconnect requested")
        self._endpoint = reconnect_url
        self._migrating = True
        if self.on_endpoint_change:
            self.on_endpoint_change(reconnect_url)

    async def _register(self, session_id: str) -> bool:
        """Run the registrar; failures are reported, never raised."""
        try:
            await self.registrar.register(self.user_id, session_id)
        except Exception as e:
            self.last_registration_error = e
            logger.error(
                f"Failed to register prediction subscriptions for session {session_id}: {e}"
            )
            if self.on_registration_error:
                self.on_registration_error(e)
            return False

        self.last_registration_error = None
        self._registered_session_id = session_id
        return True
