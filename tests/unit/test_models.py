"""Tests for payload parsing and model validation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from errorpulse.models.events import ErrorEvent, Severity
from errorpulse.models.rules import AlertRule, ChannelType, ConditionType


class TestErrorEventFromPayload:
    def test_minimal_payload(self) -> None:
        event = ErrorEvent.from_payload({"message": "DB timeout"})
        assert event.message == "DB timeout"
        assert event.severity is Severity.ERROR
        assert event.context == {}
        assert event.stack is None
        assert event.group_id is None
        assert event.created_at.tzinfo is not None
        assert event.name == "Error"

    def test_full_payload(self) -> None:
        event = ErrorEvent.from_payload(
            {
                "message": "Cannot read property 'id' of undefined",
                "stack": "TypeError: ...\n    at f (a.js:1)",
                "severity": "CRITICAL",
                "context": {"name": "TypeError", "route": "/checkout"},
                "url": "https://shop.example.com/checkout",
                "userRef": "user-42",
            }
        )
        assert event.severity is Severity.CRITICAL
        assert event.name == "TypeError"
        assert event.context["route"] == "/checkout"
        assert event.url == "https://shop.example.com/checkout"
        assert event.user_ref == "user-42"

    def test_snake_case_user_ref(self) -> None:
        assert ErrorEvent.from_payload({"message": "m", "user_ref": "u1"}).user_ref == "u1"

    def test_created_at_with_z_suffix(self) -> None:
        event = ErrorEvent.from_payload({"message": "m", "created_at": "2026-03-01T11:45:00Z"})
        assert event.created_at == datetime(2026, 3, 1, 11, 45, tzinfo=UTC)

    def test_created_at_offset_normalised_to_utc(self) -> None:
        event = ErrorEvent.from_payload({"message": "m", "created_at": "2026-03-01T13:45:00+02:00"})
        assert event.created_at == datetime(2026, 3, 1, 11, 45, tzinfo=UTC)
        assert event.created_at.utcoffset() == timedelta(0)

    def test_naive_created_at_assumed_utc(self) -> None:
        event = ErrorEvent.from_payload({"message": "m", "created_at": "2026-03-01T11:45:00"})
        assert event.created_at.tzinfo is not None
        assert event.created_at == datetime(2026, 3, 1, 11, 45, tzinfo=UTC)

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"message": ""},
            {"message": 42},
            {"message": "m", "severity": "fatal"},
            {"message": "m", "context": ["not", "a", "dict"]},
            {"message": "m", "created_at": "yesterday"},
        ],
    )
    def test_invalid_payload_rejected(self, payload: dict) -> None:
        with pytest.raises(ValueError):
            ErrorEvent.from_payload(payload)


class TestAlertRuleValidation:
    def test_valid_threshold_rule(self) -> None:
        rule = AlertRule(
            name="spike",
            condition_type=ConditionType.THRESHOLD,
            threshold_count=5,
            time_window_minutes=15,
        )
        assert rule.window_minutes(60) == 15
        assert rule.active is True
        assert rule.channel is ChannelType.LOG

    def test_window_falls_back_to_default(self) -> None:
        rule = AlertRule(name="new", condition_type=ConditionType.NEW_ERROR)
        assert rule.window_minutes(60) == 60

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": "", "condition_type": ConditionType.CRITICAL},
            {"name": "t", "condition_type": ConditionType.THRESHOLD, "time_window_minutes": 15},
            {"name": "t", "condition_type": ConditionType.THRESHOLD, "threshold_count": 0, "time_window_minutes": 15},
            {"name": "t", "condition_type": ConditionType.THRESHOLD, "threshold_count": 5},
            {"name": "n", "condition_type": ConditionType.NEW_ERROR, "time_window_minutes": 0},
            {"name": "s", "condition_type": ConditionType.CRITICAL, "channel": ChannelType.SLACK},
            {"name": "w", "condition_type": ConditionType.CRITICAL, "channel": ChannelType.WEBHOOK},
        ],
    )
    def test_inconsistent_rule_rejected(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            AlertRule(**kwargs)
