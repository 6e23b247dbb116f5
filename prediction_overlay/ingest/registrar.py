"""
EventSub Subscription Registrar

Registers channel prediction subscriptions for a broadcaster against an
EventSub WebSocket session via the Twitch Helix API.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol

import httpx

from prediction_overlay.config import settings
from prediction_overlay.schemas.eventsub import PredictionEventType
from prediction_overlay.utils.logging import get_logger

logger = get_logger(__name__, category="registrar")

SUBSCRIPTION_VERSION = "1"


class RegistrationError(RuntimeError):
    """Raised when one or more subscriptions could not be created."""


class SubscriptionRegistrar(Protocol):
    async def register(self, user_id: str, session_id: str) -> None:
        """Subscribe `user_id`'s prediction events to the WebSocket session `session_id`."""
        ...


class HelixSubscriptionRegistrar:
    """Creates channel.prediction.* subscriptions through POST /eventsub/subscriptions."""

    # Pause between subscription requests to stay clear of Helix rate limits
    request_spacing_seconds = 0.5

    def __init__(
        self,
        client_id: Optional[str] = None,
        access_token: Optional[str] = None,
        api_base: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the registrar.

        Args:
            client_id: Twitch Client ID (defaults to settings.twitch_client_id)
            access_token: Broadcaster user token (defaults to settings.twitch_access_token)
            api_base: Helix base URL (defaults to settings.helix_api_base)
            http_client: Pre-built client, mainly for tests; credentials are not applied to it
        """
        self.client_id = client_id or settings.twitch_client_id
        self.access_token = access_token or settings.twitch_access_token
        self.api_base = (api_base or settings.helix_api_base).rstrip("/")

        # Remove 'oauth:' prefix if present
        if self.access_token and self.access_token.startswith("oauth:"):
            self.access_token = self.access_token[6:]

        if http_client is not None:
            self.http_client: Optional[httpx.AsyncClient] = http_client
        elif self.client_id and self.access_token:
            self.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                headers={
                    "Client-ID": self.client_id,
                    "Authorization": f"Bearer {self.access_token}",
                },
            )
        else:
            self.http_client = None
            logger.warning("HTTP client not initialized - missing credentials")

    async def register(self, user_id: str, session_id: str) -> None:
        """
        Create every prediction subscription for `user_id` on `session_id`.

        Already-existing subscriptions count as success, so calling this twice
        for the same session is harmless.

        Raises:
            ValueError: empty user or session id
            RegistrationError: missing credentials or any subscription failed
        """
        if not user_id:
            raise ValueError("User id is required to register subscriptions")
        if not session_id:
            raise ValueError("Session id is required to register subscriptions")
        if self.http_client is None:
            raise RegistrationError("Twitch client id and access token are required")

        failures: List[str] = []
        for index, event_type in enumerate(PredictionEventType):
            if index and self.request_spacing_seconds:
                await asyncio.sleep(self.request_spacing_seconds)
            try:
                await self._create_subscription(user_id, session_id, event_type)
            except RegistrationError as e:
                failures.append(str(e))

        if failures:
            raise RegistrationError("; ".join(failures))

        logger.info(f"Prediction subscriptions registered for user {user_id} on session {session_id}")

    async def _create_subscription(
        self, user_id: str, session_id: str, event_type: PredictionEventType
    ) -> None:
        """Create a single EventSub subscription."""
        url = f"{self.api_base}/eventsub/subscriptions"
        payload = {
            "type": event_type.value,
            "version": SUBSCRIPTION_VERSION,
            "condition": {"broadcaster_user_id": user_id},
            "transport": {"method": "websocket", "session_id": session_id},
        }

        try:
            response = await self.http_client.post(url, json=payload)
        except httpx.RequestError as e:
            raise RegistrationError(f"{event_type.value}: request failed: {e}") from e

        if response.status_code == 409:
            logger.info(f"Subscription already exists: {event_type.value}")
            return

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                reason = "authentication failed, check the access token"
            elif status == 403:
                reason = "token lacks channel:read:predictions for this broadcaster"
            else:
                reason = e.response.text[:200]
            raise RegistrationError(f"{event_type.value}: {status} - {reason}") from e

        data = response.json().get("data") or [{}]
        subscription_id = data[0].get("id")
        if subscription_id:
            logger.info(f"Created EventSub subscription: {event_type.value} ({subscription_id})")
        else:
            logger.warning(f"Subscription created but no ID returned: {event_type.value}")

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
