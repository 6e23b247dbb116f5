import itertools
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from prediction_overlay.utils.scheduling import Scheduler


class ManualTimer:
    """Timer handle for ManualScheduler."""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Scheduler with a virtual clock; timers only fire on advance()."""

    def __init__(self):
        super().__init__()
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted(
            (t for t in self.timers if not t.cancelled() and t.when <= self.now),
            key=lambda t: t.when,
        )
        for timer in due:
            self.timers.remove(timer)
            timer.callback()

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled()]


class FrameFactory:
    """Builds EventSub frames as decoded JSON dicts."""

    def __init__(self):
        self._ids = itertools.count(1)

    def envelope(
        self,
        message_type: str,
        payload: Optional[Dict[str, Any]] = None,
        subscription_type: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        metadata = {
            "message_id": message_id or f"msg-{next(self._ids)}",
            "message_type": message_type,
            "message_timestamp": "2024-05-01T20:00:00.000000000Z",
        }
        if subscription_type:
            metadata["subscription_type"] = subscription_type
            metadata["subscription_version"] = "1"
        return {"metadata": metadata, "payload": payload if payload is not None else {}}

    def session(
        self,
        session_id: str = "abc123",
        status: str = "connected",
        keepalive: Optional[int] = 10,
        reconnect_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        return {
            "id": session_id,
            "status": status,
            "connected_at": "2024-05-01T20:00:00.000000000Z",
            "keepalive_timeout_seconds": keepalive,
            "reconnect_url": reconnect_url,
        }

    def welcome(self, session_id: str = "abc123", **kwargs) -> Dict[str, Any]:
        return self.envelope("session_welcome", {"session": self.session(session_id)}, **kwargs)

    def reconnect(
        self, reconnect_url: Optional[str], session_id: str = "abc123", **kwargs
    ) -> Dict[str, Any]:
        session = self.session(
            session_id, status="reconnecting", keepalive=None, reconnect_url=reconnect_url
        )
        return self.envelope("session_reconnect", {"session": session}, **kwargs)

    def keepalive(self, **kwargs) -> Dict[str, Any]:
        return self.envelope("session_keepalive", {}, **kwargs)

    def predictor(self, user: str, used: int, won: Optional[int] = None) -> Dict[str, Any]:
        return {
            "user_id": f"id-{user}",
            "user_login": user.lower(),
            "user_name": user,
            "channel_points_won": won,
            "channel_points_used": used,
        }

    def outcome(
        self,
        outcome_id: str,
        channel_points: Optional[int] = None,
        users: Optional[int] = None,
        title: Optional[str] = None,
        color: str = "blue",
        top_predictors: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        outcome: Dict[str, Any] = {
            "id": outcome_id,
            "title": title or f"Outcome {outcome_id}",
            "color": color,
        }
        if users is not None:
            outcome["users"] = users
        if channel_points is not None:
            outcome["channel_points"] = channel_points
        if top_predictors is not None:
            outcome["top_predictors"] = top_predictors
        return outcome

    def event(
        self,
        outcomes: List[Dict[str, Any]],
        prediction_id: str = "pred-1",
        title: str = "Who wins the next fight?",
        **fields,
    ) -> Dict[str, Any]:
        event = {
            "id": prediction_id,
            "broadcaster_user_id": "12345",
            "broadcaster_user_login": "cool_streamer",
            "broadcaster_user_name": "Cool_Streamer",
            "title": title,
            "outcomes": outcomes,
            "started_at": "2024-05-01T20:01:00Z",
            "locks_at": "2024-05-01T20:11:00Z",
        }
        event.update(fields)
        return event

    def notification(self, phase: str, event: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        subscription_type = f"channel.prediction.{phase}"
        subscription = {
            "id": "sub-1",
            "status": "enabled",
            "type": subscription_type,
            "version": "1",
            "condition": {"broadcaster_user_id": "12345"},
            "transport": {"method": "websocket", "session_id": "abc123"},
            "created_at": "2024-05-01T19:59:00Z",
            "cost": 0,
        }
        return self.envelope(
            "notification",
            {"subscription": subscription, "event": event},
            subscription_type=subscription_type,
            **kwargs,
        )


@pytest.fixture
def frames():
    return FrameFactory()


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()


@pytest.fixture
def registrar():
    """Registrar double whose register() succeeds immediately."""
    fake = AsyncMock()
    fake.register = AsyncMock(return_value=None)
    return fake
