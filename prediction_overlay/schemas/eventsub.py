"""
EventSub WebSocket Message Schemas

Pydantic models for the frames Twitch pushes over an EventSub WebSocket
session, plus the prediction event payloads carried by notifications.

Field names follow the wire format. Strings must arrive as JSON strings and
counts as JSON numbers (never numeric strings or booleans). A field declared
Optional may be absent or an explicit null, since upstream sends null for
unset values such as winning_outcome_id and top_predictors. Unknown keys are
ignored at every level so new upstream fields never break validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt, StrictStr, model_validator


def _json_number(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("Input should be a JSON number")
    return value


# Point and user counts: any JSON number, never a numeric string or boolean
Number = Annotated[Union[int, float], BeforeValidator(_json_number)]


class MessageType(str, Enum):
    """Known values of metadata.message_type."""

    SESSION_WELCOME = "session_welcome"
    SESSION_KEEPALIVE = "session_keepalive"
    SESSION_RECONNECT = "session_reconnect"
    NOTIFICATION = "notification"
    REVOCATION = "revocation"


class PredictionEventType(str, Enum):
    """Subscription types of the channel prediction lifecycle."""

    BEGIN = "channel.prediction.begin"
    PROGRESS = "channel.prediction.progress"
    LOCK = "channel.prediction.lock"
    END = "channel.prediction.end"


class EventSubModel(BaseModel):
    """Base for wire models: immutable, tolerant of extra keys."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class MessageMetadata(EventSubModel):
    message_id: StrictStr
    message_type: StrictStr
    message_timestamp: StrictStr
    subscription_type: Optional[StrictStr] = None
    subscription_version: Optional[StrictStr] = None


class EventSubSession(EventSubModel):
    """EventSub WebSocket session from session_welcome / session_reconnect."""

    id: StrictStr = Field(min_length=1, description="Session ID used to bind subscriptions")
    status: StrictStr = Field(description="Session status: 'connected', 'reconnecting'")
    connected_at: StrictStr
    keepalive_timeout_seconds: Optional[Number] = None  # null on reconnect messages
    reconnect_url: Optional[StrictStr] = None


class SubscriptionTransport(EventSubModel):
    method: StrictStr
    session_id: Optional[StrictStr] = None


class Subscription(EventSubModel):
    """Subscription block echoed back on notifications and revocations."""

    id: StrictStr
    status: StrictStr
    type: StrictStr
    version: StrictStr
    condition: Dict[str, Any]
    transport: SubscriptionTransport
    created_at: StrictStr
    cost: Optional[StrictInt] = None


class TopPredictor(EventSubModel):
    user_id: StrictStr
    user_login: StrictStr
    user_name: StrictStr
    channel_points_won: Optional[Number] = None  # null until the prediction resolves
    channel_points_used: Number


class Outcome(EventSubModel):
    id: StrictStr
    title: StrictStr
    color: StrictStr = Field(description="Swatch hint: 'blue' or 'pink'")
    users: Optional[Number] = None
    channel_points: Optional[Number] = None
    top_predictors: Optional[List[TopPredictor]] = None


class PredictionEvent(EventSubModel):
    """Event body of every channel.prediction.* notification."""

    id: StrictStr
    broadcaster_user_id: StrictStr
    broadcaster_user_login: StrictStr
    broadcaster_user_name: StrictStr
    title: StrictStr
    outcomes: List[Outcome] = Field(min_length=2)
    winning_outcome_id: Optional[StrictStr] = None
    status: Optional[StrictStr] = Field(default=None, description="'resolved' or 'canceled' on end events")
    started_at: StrictStr
    locks_at: Optional[StrictStr] = None
    locked_at: Optional[StrictStr] = None
    ended_at: Optional[StrictStr] = None

    @model_validator(mode="after")
    def _winner_is_an_outcome(self) -> "PredictionEvent":
        if self.winning_outcome_id is not None:
            if self.winning_outcome_id not in self.outcome_ids():
                raise ValueError(
                    f"winning_outcome_id {self.winning_outcome_id!r} does not match any outcome id"
                )
        return self

    def outcome_ids(self) -> List[str]:
        return [outcome.id for outcome in self.outcomes]


class MessagePayload(EventSubModel):
    """Payload union. Which block is populated depends on the message type.

    `event` stays a raw mapping here: its shape depends on the subscription
    type and is validated during classification.
    """

    session: Optional[EventSubSession] = None
    subscription: Optional[Subscription] = None
    event: Optional[Dict[str, Any]] = None


class Envelope(EventSubModel):
    """A single EventSub WebSocket frame."""

    metadata: MessageMetadata
    payload: MessagePayload
