"""
Ingest layer: EventSub frame validation, session tracking and subscription registration
"""

from .frames import (
    FrameIssue,
    FrameValidationError,
    PredictionNotification,
    SessionReconnect,
    SessionWelcome,
    parse_frame,
)
from .registrar import HelixSubscriptionRegistrar, RegistrationError
from .session import SessionManager, SessionState

__all__ = [
    "FrameIssue",
    "FrameValidationError",
    "PredictionNotification",
    "SessionReconnect",
    "SessionWelcome",
    "parse_frame",
    "HelixSubscriptionRegistrar",
    "RegistrationError",
    "SessionManager",
    "SessionState",
]
