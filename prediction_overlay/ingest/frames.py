"""
EventSub Frame Validation

Turns a raw WebSocket frame into one of a small set of typed messages:

    raw frame -> Envelope (shape check) -> tagged message (per message type)

Anything that does not fit raises FrameValidationError with the dotted path
of every violation, so a protocol drift can be diagnosed from the log line
alone. Well-formed frames of a type we do not act on come back as
UnhandledMessage rather than an error.
"""

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from prediction_overlay.schemas.eventsub import (
    Envelope,
    EventSubSession,
    MessageType,
    PredictionEvent,
    PredictionEventType,
    Subscription,
)

RawFrame = Union[str, bytes, bytearray, Mapping[str, Any]]


@dataclass(frozen=True)
class FrameIssue:
    """A single violation inside a frame."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class FrameValidationError(ValueError):
    """Raised when a frame is not valid JSON or does not match any known shape."""

    def __init__(self, issues: Iterable[FrameIssue], message_id: Optional[str] = None):
        self.issues: List[FrameIssue] = list(issues)
        self.message_id = message_id
        super().__init__(self.describe())

    def describe(self) -> str:
        prefix = f"frame {self.message_id}" if self.message_id else "frame"
        details = "; ".join(str(issue) for issue in self.issues) or "unknown error"
        return f"{prefix} rejected: {details}"


# Tagged message variants


@dataclass(frozen=True)
class SessionWelcome:
    message_id: str
    session: EventSubSession
    kind: ClassVar[MessageType] = MessageType.SESSION_WELCOME


@dataclass(frozen=True)
class SessionKeepalive:
    message_id: str
    kind: ClassVar[MessageType] = MessageType.SESSION_KEEPALIVE


@dataclass(frozen=True)
class SessionReconnect:
    message_id: str
    session: EventSubSession
    kind: ClassVar[MessageType] = MessageType.SESSION_RECONNECT


@dataclass(frozen=True)
class PredictionNotification:
    message_id: str
    event_type: PredictionEventType
    event: PredictionEvent
    subscription: Optional[Subscription] = None
    kind: ClassVar[MessageType] = MessageType.NOTIFICATION


@dataclass(frozen=True)
class Revocation:
    message_id: str
    subscription: Optional[Subscription] = None
    kind: ClassVar[MessageType] = MessageType.REVOCATION


@dataclass(frozen=True)
class UnhandledMessage:
    """Well-formed frame whose type or subscription type we do not act on."""

    message_id: str
    message_type: str
    subscription_type: Optional[str] = None


ClassifiedMessage = Union[
    SessionWelcome,
    SessionKeepalive,
    SessionReconnect,
    PredictionNotification,
    Revocation,
    UnhandledMessage,
]


def _issues_from(exc: ValidationError, prefix: str = "") -> List[FrameIssue]:
    issues = []
    for error in exc.errors():
        parts = [prefix] if prefix else []
        parts.extend(str(part) for part in error["loc"])
        issues.append(FrameIssue(path=".".join(parts) or "$", message=error["msg"]))
    return issues


def _peek_message_id(data: Any) -> Optional[str]:
    if isinstance(data, Mapping):
        metadata = data.get("metadata")
        if isinstance(metadata, Mapping) and isinstance(metadata.get("message_id"), str):
            return metadata["message_id"]
    return None


def decode_frame(raw: RawFrame) -> Envelope:
    """
    Decode and shape-check a raw frame.

    Args:
        raw: JSON text/bytes as received from the socket, or an already decoded mapping

    Returns:
        Validated Envelope

    Raises:
        FrameValidationError: invalid JSON or envelope shape mismatch
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise FrameValidationError([FrameIssue("$", f"invalid JSON: {exc}")]) from exc
    else:
        data = raw

    try:
        return Envelope.model_validate(data)
    except ValidationError as exc:
        raise FrameValidationError(_issues_from(exc), _peek_message_id(data)) from exc


def _require_session(envelope: Envelope) -> EventSubSession:
    session = envelope.payload.session
    if session is None:
        raise FrameValidationError(
            [FrameIssue("payload.session", f"Field required for {envelope.metadata.message_type}")],
            envelope.metadata.message_id,
        )
    return session


def _subscription_type(envelope: Envelope) -> Optional[str]:
    if envelope.metadata.subscription_type:
        return envelope.metadata.subscription_type
    if envelope.payload.subscription is not None:
        return envelope.payload.subscription.type
    return None


def classify(envelope: Envelope) -> ClassifiedMessage:
    """Map a validated envelope to its tagged message variant."""
    message_id = envelope.metadata.message_id
    message_type = envelope.metadata.message_type

    if message_type == MessageType.SESSION_WELCOME:
        return SessionWelcome(message_id=message_id, session=_require_session(envelope))

    if message_type == MessageType.SESSION_KEEPALIVE:
        return SessionKeepalive(message_id=message_id)

    if message_type == MessageType.SESSION_RECONNECT:
        return SessionReconnect(message_id=message_id, session=_require_session(envelope))

    if message_type == MessageType.REVOCATION:
        return Revocation(message_id=message_id, subscription=envelope.payload.subscription)

    if message_type != MessageType.NOTIFICATION:
        return UnhandledMessage(message_id=message_id, message_type=message_type)

    subscription_type = _subscription_type(envelope)
    try:
        event_type = PredictionEventType(subscription_type)
    except ValueError:
        return UnhandledMessage(
            message_id=message_id,
            message_type=message_type,
            subscription_type=subscription_type,
        )

    if envelope.payload.event is None:
        raise FrameValidationError(
            [FrameIssue("payload.event", f"Field required for {event_type.value}")],
            message_id,
        )
    try:
        event = PredictionEvent.model_validate(envelope.payload.event)
    except ValidationError as exc:
        raise FrameValidationError(_issues_from(exc, "payload.event"), message_id) from exc

    return PredictionNotification(
        message_id=message_id,
        event_type=event_type,
        event=event,
        subscription=envelope.payload.subscription,
    )


def parse_frame(raw: RawFrame) -> ClassifiedMessage:
    """Decode, validate and classify a raw frame in one step."""
    return classify(decode_frame(raw))
