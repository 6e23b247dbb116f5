"""
Twitch EventSub WebSocket Client

Holds the WebSocket connection to EventSub and feeds every frame, in order,
to the FrameDispatcher. Handles session migration (session_reconnect),
keepalive timeouts and reconnects with exponential backoff.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from prediction_overlay.config import settings
from prediction_overlay.ingest.dispatcher import FrameDispatcher
from prediction_overlay.ingest.session import SessionManager
from prediction_overlay.utils.logging import get_logger

logger = get_logger(__name__, category="eventsub")

Connector = Callable[[str], Awaitable[Any]]


async def _open_websocket(url: str) -> Any:
    return await websockets.connect(
        url,
        ping_interval=20,  # Send ping every 20 seconds
        ping_timeout=10,  # Wait 10 seconds for pong
    )


class EventSubWebSocketClient:
    """EventSub WebSocket client for receiving channel prediction events."""

    def __init__(
        self,
        session_manager: SessionManager,
        dispatcher: FrameDispatcher,
        connector: Optional[Connector] = None,
    ):
        """
        Initialize EventSub WebSocket client.

        Args:
            session_manager: Tracks the session and decides which endpoint to use
            dispatcher: Receives every raw frame
            connector: Coroutine opening a WebSocket for a URL (defaults to websockets.connect)
        """
        self.session_manager = session_manager
        self.dispatcher = dispatcher
        self.connector = connector or _open_websocket

        self.ws: Optional[Any] = None
        self.is_connected = False
        self.is_running = False

        # Reconnection state
        self.reconnect_delay = settings.eventsub_reconnect_delay
        self.max_reconnect_delay = settings.eventsub_max_reconnect_delay
        self.run_task: Optional[asyncio.Task] = None
        self._pending_endpoint: Optional[str] = None

        # Session migration: the previous socket is drained until the new one is welcomed
        self._old_ws: Optional[Any] = None
        self._awaiting_migrated_welcome = False
        self._reads: Dict[Any, asyncio.Future] = {}

        self.session_manager.on_endpoint_change = self._on_endpoint_change

    async def connect(self) -> None:
        """Start the connection loop in the background."""
        if self.run_task and not self.run_task.done():
            logger.warning("EventSub client is already running")
            return

        logger.info("Connecting to Twitch EventSub WebSocket...")
        self.is_running = True
        self.run_task = asyncio.create_task(self.run())

    async def disconnect(self) -> None:
        """Stop the connection loop and close the WebSocket."""
        self.is_running = False

        if self.run_task:
            self.run_task.cancel()
            try:
                await self.run_task
            except asyncio.CancelledError:
                # Expected when stopping the loop
                pass
            self.run_task = None

        await self._close_socket(self.ws)
        self.ws = None
        self.is_connected = False
        logger.info("Disconnected from EventSub WebSocket")

    async def run(self) -> None:
        """Keep a connection open until disconnect(), backing off between failures."""
        while self.is_running:
            welcomed = await self.listen()
            if not self.is_running:
                break

            if welcomed:
                self.reconnect_delay = settings.eventsub_reconnect_delay

            delay = self.reconnect_delay
            logger.info(f"Scheduling EventSub reconnect in {delay} seconds...")
            await asyncio.sleep(delay)

            if not welcomed:
                # Exponential backoff
                self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    async def listen(self) -> bool:
        """
        Run one connection lifetime, including any session migrations.

        Returns:
            True if a session became active during this connection
        """
        url = self.session_manager.endpoint
        welcomed = False

        try:
            self.ws = await self.connector(url)
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect to EventSub WebSocket: {e}")
            self.session_manager.on_transport_lost()
            return False

        self.is_connected = True
        self.session_manager.on_transport_open()
        logger.info("Connected to EventSub WebSocket")

        try:
            while True:
                ws, raw = await asyncio.wait_for(self._next_frame(), timeout=self._receive_timeout())

                if ws is self.ws and self._awaiting_migrated_welcome:
                    # First frame on the reconnect URL; the session moves with it
                    self._awaiting_migrated_welcome = False
                    self.session_manager.on_transport_open()
                    logger.info("Reconnected to EventSub WebSocket")

                self._dispatch(raw)
                welcomed = welcomed or self.session_manager.is_active

                if ws is self.ws and self._old_ws is not None and self.session_manager.is_active:
                    await self._retire_old_socket()

                if self._pending_endpoint:
                    await self._migrate(self._pending_endpoint)

        except asyncio.TimeoutError:
            logger.warning("No EventSub message within the keepalive window, reconnecting")
        except ConnectionClosed as e:
            logger.warning(f"EventSub WebSocket connection closed: {e}")
        except (OSError, WebSocketException) as e:
            logger.error(f"EventSub WebSocket error: {e}")
        finally:
            self.is_connected = False
            for read in self._reads.values():
                _discard(read)
            self._reads.clear()
            self._awaiting_migrated_welcome = False
            await self._close_socket(self._old_ws)
            self._old_ws = None
            await self._close_socket(self.ws)
            self.ws = None

        self.session_manager.on_transport_lost()
        return welcomed

    def _on_endpoint_change(self, url: str) -> None:
        # Acted on after the current frame has been fully processed
        self._pending_endpoint = url

    async def _migrate(self, url: str) -> None:
        """
        Open the reconnect URL while the old connection keeps delivering.

        The old socket is read until the new connection's welcome arrives or
        upstream closes it; see _next_frame.
        """
        self._pending_endpoint = None
        if self._old_ws is not None:
            await self._retire_old_socket()

        new_ws = await self.connector(url)
        self._old_ws = self.ws
        self.ws = new_ws
        self._awaiting_migrated_welcome = True
        logger.info("Opened EventSub reconnect URL, draining previous connection")

    async def _next_frame(self) -> Tuple[Any, Any]:
        """
        Receive the next frame as (socket, raw).

        While a migration is in flight both sockets are read; frames from the
        old socket win ties so nothing queued there is processed late.
        """
        while self._old_ws is not None:
            old_ws, new_ws = self._old_ws, self.ws
            for ws in (old_ws, new_ws):
                if ws not in self._reads:
                    self._reads[ws] = asyncio.ensure_future(ws.recv())
            await asyncio.wait(
                [self._reads[old_ws], self._reads[new_ws]],
                return_when=asyncio.FIRST_COMPLETED,
            )

            old_read = self._reads[old_ws]
            if old_read.done():
                del self._reads[old_ws]
                try:
                    return old_ws, old_read.result()
                except (ConnectionClosed, OSError, WebSocketException) as e:
                    logger.info(f"Previous EventSub connection closed: {e}")
                    await self._retire_old_socket()
                    continue

            return new_ws, self._reads.pop(new_ws).result()

        pending = self._reads.pop(self.ws, None)
        if pending is not None:
            return self.ws, await pending
        return self.ws, await self.ws.recv()

    async def _retire_old_socket(self) -> None:
        old_ws, self._old_ws = self._old_ws, None
        read = self._reads.pop(old_ws, None)
        if read is not None:
            if read.done() and not read.cancelled() and read.exception() is None:
                # Arrived on the old socket just before it was retired
                self._dispatch(read.result())
            else:
                _discard(read)
        await self._close_socket(old_ws)

    def _dispatch(self, raw: Any) -> None:
        try:
            self.dispatcher.process(raw)
        except Exception as e:
            logger.error(f"Error handling WebSocket message: {e}", exc_info=True)

    def _receive_timeout(self) -> float:
        session = self.session_manager.session
        if self.session_manager.is_active and session and session.keepalive_timeout_seconds:
            return session.keepalive_timeout_seconds + settings.eventsub_keepalive_grace_seconds
        return settings.eventsub_welcome_timeout_seconds + settings.eventsub_keepalive_grace_seconds

    async def _close_socket(self, ws: Optional[Any]) -> None:
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            logger.warning(f"Error closing WebSocket: {e}")


def _discard(read: asyncio.Future) -> None:
    """Cancel a pending read, or consume the outcome of a finished one."""
    if not read.done():
        read.cancel()
    elif not read.cancelled():
        read.exception()
