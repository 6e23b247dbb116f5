"""Unit tests for EventSub frame validation and classification."""
import json

import pytest

from prediction_overlay.ingest.frames import (
    FrameValidationError,
    PredictionNotification,
    Revocation,
    SessionKeepalive,
    SessionReconnect,
    SessionWelcome,
    UnhandledMessage,
    decode_frame,
    parse_frame,
)
from prediction_overlay.schemas.eventsub import PredictionEventType


def _paths(exc_info):
    return [issue.path for issue in exc_info.value.issues]


@pytest.mark.unit
class TestDecodeFrame:
    def test_welcome_round_trips(self, frames):
        raw = frames.welcome("abc123")

        envelope = decode_frame(raw)

        assert envelope.model_dump(exclude_unset=True) == raw

    def test_prediction_notification_round_trips(self, frames):
        event = frames.event(
            [
                frames.outcome("1", channel_points=500, users=3, top_predictors=[]),
                frames.outcome("2", channel_points=300, users=1, color="pink"),
            ]
        )
        raw = frames.notification("progress", event)

        envelope = decode_frame(raw)

        assert envelope.model_dump(exclude_unset=True) == raw

    def test_accepts_json_text_and_bytes(self, frames):
        raw = frames.keepalive(message_id="ka-1")

        from_text = decode_frame(json.dumps(raw))
        from_bytes = decode_frame(json.dumps(raw).encode("utf-8"))

        assert from_text == from_bytes
        assert from_text.metadata.message_id == "ka-1"

    def test_unknown_fields_are_ignored(self, frames):
        raw = frames.welcome("abc123")
        raw["metadata"]["shiny_new_field"] = True
        raw["payload"]["session"]["recovery_url"] = None
        raw["something_else"] = {"nested": [1, 2, 3]}

        message = parse_frame(raw)

        assert isinstance(message, SessionWelcome)
        assert message.session.id == "abc123"

    def test_invalid_json_is_rejected(self):
        with pytest.raises(FrameValidationError) as exc_info:
            decode_frame('{"metadata": ')

        assert _paths(exc_info) == ["$"]
        assert "invalid JSON" in exc_info.value.issues[0].message

    def test_missing_required_metadata_field(self, frames):
        raw = frames.keepalive()
        del raw["metadata"]["message_id"]

        with pytest.raises(FrameValidationError) as exc_info:
            decode_frame(raw)

        assert "metadata.message_id" in _paths(exc_info)
        assert exc_info.value.message_id is None

    def test_missing_payload_is_rejected(self, frames):
        raw = frames.keepalive(message_id="ka-2")
        del raw["payload"]

        with pytest.raises(FrameValidationError) as exc_info:
            decode_frame(raw)

        assert _paths(exc_info) == ["payload"]
        assert exc_info.value.message_id == "ka-2"

    def test_session_id_must_be_non_empty(self, frames):
        with pytest.raises(FrameValidationError) as exc_info:
            decode_frame(frames.welcome(""))

        assert "payload.session.id" in _paths(exc_info)

    def test_numbers_are_not_coerced_from_strings(self, frames):
        raw = frames.welcome("abc123")
        raw["payload"]["session"]["keepalive_timeout_seconds"] = "10"

        with pytest.raises(FrameValidationError) as exc_info:
            decode_frame(raw)

        assert "payload.session.keepalive_timeout_seconds" in _paths(exc_info)

    def test_not_an_object(self):
        with pytest.raises(FrameValidationError):
            decode_frame("[1, 2, 3]")


@pytest.mark.unit
class TestClassify:
    def test_welcome(self, frames):
        message = parse_frame(frames.welcome("abc123", message_id="w-1"))

        assert isinstance(message, SessionWelcome)
        assert message.message_id == "w-1"
        assert message.session.keepalive_timeout_seconds == 10

    def test_welcome_without_session_is_rejected(self, frames):
        raw = frames.envelope("session_welcome", {})

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(raw)

        assert _paths(exc_info) == ["payload.session"]

    def test_reconnect_allows_null_keepalive(self, frames):
        message = parse_frame(frames.reconnect("wss://example.test/ws?id=2"))

        assert isinstance(message, SessionReconnect)
        assert message.session.reconnect_url == "wss://example.test/ws?id=2"
        assert message.session.keepalive_timeout_seconds is None

    def test_keepalive(self, frames):
        assert isinstance(parse_frame(frames.keepalive()), SessionKeepalive)

    def test_prediction_notification_with_many_outcomes(self, frames):
        outcomes = [frames.outcome(str(i), channel_points=i * 100) for i in range(1, 6)]

        message = parse_frame(frames.notification("begin", frames.event(outcomes)))

        assert isinstance(message, PredictionNotification)
        assert message.event_type is PredictionEventType.BEGIN
        assert [o.id for o in message.event.outcomes] == ["1", "2", "3", "4", "5"]
        assert message.subscription.type == "channel.prediction.begin"

    def test_subscription_type_falls_back_to_subscription_block(self, frames):
        raw = frames.notification(
            "lock", frames.event([frames.outcome("1"), frames.outcome("2")])
        )
        del raw["metadata"]["subscription_type"]

        message = parse_frame(raw)

        assert isinstance(message, PredictionNotification)
        assert message.event_type is PredictionEventType.LOCK

    def test_wrong_typed_outcome_field_reports_path(self, frames):
        event = frames.event([frames.outcome("1"), frames.outcome("2")])
        event["outcomes"][1]["channel_points"] = "500"

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(frames.notification("progress", event, message_id="n-7"))

        assert _paths(exc_info) == ["payload.event.outcomes.1.channel_points"]
        assert exc_info.value.message_id == "n-7"
        assert "n-7" in str(exc_info.value)

    def test_fractional_counts_are_accepted(self, frames):
        event = frames.event(
            [
                frames.outcome("1", channel_points=500, users=3),
                frames.outcome("2", channel_points=300.0, users=1.5),
            ]
        )

        message = parse_frame(frames.notification("progress", event))

        outcome = message.event.outcomes[1]
        assert outcome.channel_points == 300.0
        assert isinstance(outcome.channel_points, float)
        assert outcome.users == 1.5
        assert isinstance(message.event.outcomes[0].channel_points, int)

    @pytest.mark.parametrize("value", ["500", True])
    def test_numeric_strings_and_booleans_are_rejected(self, frames, value):
        event = frames.event([frames.outcome("1"), frames.outcome("2")])
        event["outcomes"][1]["channel_points"] = value

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(frames.notification("progress", event))

        assert _paths(exc_info) == ["payload.event.outcomes.1.channel_points"]

    def test_explicit_nulls_are_accepted(self, frames):
        event = frames.event(
            [
                frames.outcome("1", top_predictors=[frames.predictor("Alice", used=100)]),
                frames.outcome("2"),
            ],
            winning_outcome_id=None,
            locked_at=None,
            ended_at=None,
            status=None,
        )
        event["outcomes"][1].update({"users": None, "channel_points": None, "top_predictors": None})

        message = parse_frame(frames.notification("lock", event))

        assert message.event.winning_outcome_id is None
        assert message.event.outcomes[0].top_predictors[0].channel_points_won is None
        assert message.event.outcomes[1].top_predictors is None

    def test_boolean_is_not_a_number(self, frames):
        event = frames.event([frames.outcome("1"), frames.outcome("2")])
        event["outcomes"][0]["users"] = True

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(frames.notification("progress", event))

        assert _paths(exc_info) == ["payload.event.outcomes.0.users"]

    def test_invalid_top_predictor_reports_nested_path(self, frames):
        predictor = frames.predictor("Alice", used=100, won=250)
        del predictor["channel_points_used"]
        event = frames.event(
            [frames.outcome("1", top_predictors=[predictor]), frames.outcome("2")],
            winning_outcome_id="1",
        )

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(frames.notification("end", event))

        assert _paths(exc_info) == [
            "payload.event.outcomes.0.top_predictors.0.channel_points_used"
        ]

    def test_prediction_notification_requires_event(self, frames):
        raw = frames.notification(
            "begin", frames.event([frames.outcome("1"), frames.outcome("2")])
        )
        del raw["payload"]["event"]

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(raw)

        assert _paths(exc_info) == ["payload.event"]

    def test_winner_must_be_one_of_the_outcomes(self, frames):
        event = frames.event(
            [frames.outcome("1"), frames.outcome("2")], winning_outcome_id="3"
        )

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(frames.notification("end", event))

        assert _paths(exc_info) == ["payload.event"]
        assert "winning_outcome_id" in exc_info.value.issues[0].message

    def test_prediction_needs_at_least_two_outcomes(self, frames):
        event = frames.event([frames.outcome("1")])

        with pytest.raises(FrameValidationError) as exc_info:
            parse_frame(frames.notification("begin", event))

        assert _paths(exc_info) == ["payload.event.outcomes"]

    def test_other_notification_types_are_unhandled(self, frames):
        raw = frames.envelope(
            "notification",
            {"event": {"from_broadcaster_user_id": "1", "viewers": 10}},
            subscription_type="channel.raid",
        )

        message = parse_frame(raw)

        assert isinstance(message, UnhandledMessage)
        assert message.subscription_type == "channel.raid"

    def test_unknown_message_types_are_unhandled(self, frames):
        message = parse_frame(frames.envelope("session_teleport", {"anything": 1}))

        assert isinstance(message, UnhandledMessage)
        assert message.message_type == "session_teleport"

    def test_revocation(self, frames):
        raw = frames.notification(
            "begin", frames.event([frames.outcome("1"), frames.outcome("2")])
        )
        raw["metadata"]["message_type"] = "revocation"
        raw["payload"]["subscription"]["status"] = "authorization_revoked"
        del raw["payload"]["event"]

        message = parse_frame(raw)

        assert isinstance(message, Revocation)
        assert message.subscription.status == "authorization_revoked"
