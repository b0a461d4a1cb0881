"""Tests for schedule and digest models."""

import pytest
from pydantic import ValidationError

from models.digest import DigestRecord
from models.schedule import ExecutionLogEntry, Schedule, ScheduleState, cron_to_human


class TestCronToHuman:

    @pytest.mark.parametrize("expression,expected", [
        ("*/15 * * * *", "Every 15 minutes"),
        ("5 * * * *", "Every hour at minute 5"),
        ("30 7 * * *", "Every day at 07:30"),
        ("0 9 * * 1-5", "Every weekday at 09:00"),
        ("0 8 * * 1", "Every Monday at 08:00"),
        ("0 8 * * MON,FRI", "Every Monday, Friday at 08:00"),
        ("0 6 1 * *", "Monthly on day 1 at 06:00"),
    ])
    def test_known_shapes(self, expression, expected):
        assert cron_to_human(expression) == expected

    @pytest.mark.parametrize("expression", [
        "",
        "@weekly",
        "0 8 * 1 *",
        "0 8-17 * * *",
        "0 8 * * 9",
    ])
    def test_unrecognized_returned_unchanged(self, expression):
        assert cron_to_human(expression) == expression


class TestSchedule:

    def test_state_follows_is_active(self):
        assert Schedule(id="s", is_active=True).state is ScheduleState.ACTIVE
        assert Schedule(id="s").state is ScheduleState.PAUSED


class TestExecutionLogEntry:

    def test_attempt_cannot_exceed_max(self):
        with pytest.raises(ValidationError):
            ExecutionLogEntry(id="e", attempt=3, max_attempts=2)

    def test_error_message_only_on_failure(self):
        ok = ExecutionLogEntry(id="e", success=True, error_message="ignored")
        failed = ExecutionLogEntry(id="f", success=False)

        assert ok.error_message is None
        assert failed.error_message == "Execution failed"


class TestDigestRecord:

    def test_negative_paper_count_rejected(self):
        with pytest.raises(ValidationError):
            DigestRecord(id="r", timestamp="t", paper_count=-1)

    def test_json_round_trip(self):
        record = DigestRecord(id="r", timestamp="2026-10-17T08:00:00Z", topics=["LLMs"], paper_count=3)
        assert DigestRecord.model_validate(record.model_dump(mode="json")) == record
