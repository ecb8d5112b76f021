"""Tests for notification text rendering and parsing."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from errorpulse.notifications.formatting import (
    format_notification_text,
    incident_url,
    parse_notification_text,
)

_URL = "https://app.example.com/admin/errors/abc"

# Line and paragraph separators are folded into spaces in the header line.
_HEADER_TEXT = st.characters(blacklist_categories=("Cs", "Cc", "Zl", "Zp"), blacklist_characters="*")
_BODY_TEXT = st.characters(blacklist_categories=("Cs",))


class TestFormatNotificationText:
    def test_renders_expected_layout(self) -> None:
        text = format_notification_text("DB errors spiking", "DB timeout", 5, 15, _URL)
        assert text == (
            "🚨 *Error Alert: DB errors spiking*\n"
            "*Message:* DB timeout\n"
            "*Occurrences:* 5 in the last 15 minutes\n"
            f"*View Group:* {_URL}"
        )

    def test_multiline_rule_name_is_flattened(self) -> None:
        text = format_notification_text("line one\nline two", "m", 1, 60, _URL)
        assert text.splitlines()[0] == "🚨 *Error Alert: line one line two*"

    def test_incident_url_strips_trailing_slash(self) -> None:
        assert incident_url("https://app.example.com/", "g1") == "https://app.example.com/admin/errors/g1"


class TestParseNotificationText:
    def test_parses_rendered_text(self) -> None:
        parsed = parse_notification_text(format_notification_text("Spike", "DB timeout", 5, 15, _URL))
        assert parsed.rule_name == "Spike"
        assert parsed.message == "DB timeout"
        assert parsed.window_count == 5
        assert parsed.window_minutes == 15
        assert parsed.url == _URL

    def test_multiline_message_survives(self) -> None:
        message = "Traceback:\n  File x\nValueError: bad"
        parsed = parse_notification_text(format_notification_text("r", message, 2, 10, _URL))
        assert parsed.message == message

    @pytest.mark.parametrize("text", ["", "hello", "🚨 *Error Alert: r*\n*Message:* m"])
    def test_foreign_text_rejected(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_notification_text(text)

    @given(
        rule_name=st.text(alphabet=_HEADER_TEXT, max_size=40),
        message=st.text(alphabet=_BODY_TEXT, min_size=1, max_size=200),
        window_count=st.integers(min_value=0, max_value=10**6),
        window_minutes=st.integers(min_value=1, max_value=1440),
        group_id=st.uuids().map(str),
    )
    def test_rendered_fields_are_recoverable(
        self,
        rule_name: str,
        message: str,
        window_count: int,
        window_minutes: int,
        group_id: str,
    ) -> None:
        url = incident_url("https://app.example.com", group_id)
        parsed = parse_notification_text(
            format_notification_text(rule_name, message, window_count, window_minutes, url)
        )
        assert parsed.rule_name == rule_name
        assert parsed.message == message
        assert parsed.window_count == window_count
        assert parsed.window_minutes == window_minutes
        assert parsed.url == url
