"""Schedule and execution log models.

The remote scheduler service is authoritative for all of these: they are
fetched, displayed and re-fetched, never mutated locally and never written
to the local store.

State Model:
    ACTIVE  --pause-->  PAUSED
    PAUSED  --resume--> ACTIVE

    UNKNOWN is a view-only state used when the schedule could not be
    fetched. Triggering a run is orthogonal and valid from either
    ACTIVE or PAUSED.
"""

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ScheduleState(str, Enum):
    """Observed state of a schedule."""

    ACTIVE = "active"
    PAUSED = "paused"
    UNKNOWN = "unknown"  # Not fetched or fetch failed


class Schedule(BaseModel):
    """A single recurring job definition."""

    id: str = Field(description="External schedule identifier")
    is_active: bool = Field(default=False, description="Whether the cron trigger fires")
    cron_expression: str = Field(default="", description="Five-field cron expression")
    timezone: str = Field(default="", description="Timezone the cron is evaluated in")
    next_run_time: datetime | None = Field(default=None, description="Next scheduled run")
    last_run_at: datetime | None = Field(default=None, description="Most recent run")

    @property
    def state(self) -> ScheduleState:
        return ScheduleState.ACTIVE if self.is_active else ScheduleState.PAUSED

    @property
    def description(self) -> str:
        """Human-readable rendering of the cron expression."""
        return cron_to_human(self.cron_expression)


class ExecutionLogEntry(BaseModel):
    """One historical invocation of a schedule.

    Invariants:
        - attempt <= max_attempts
        - error_message is set if and only if the execution failed
    """

    id: str = Field(description="Execution identifier")
    executed_at: datetime | None = Field(default=None, description="When the run started")
    success: bool = Field(default=False, description="Whether the run succeeded")
    attempt: int = Field(default=1, ge=0, description="Attempt number of this execution")
    max_attempts: int = Field(default=1, ge=0, description="Retry budget for this execution")
    error_message: str | None = Field(default=None, description="Failure detail")

    @model_validator(mode="after")
    def _check_invariants(self) -> "ExecutionLogEntry":
        if self.attempt > self.max_attempts:
            raise ValueError(
                f"attempt {self.attempt} exceeds max_attempts {self.max_attempts}"
            )
        if self.success:
            self.error_message = None
        elif not self.error_message:
            self.error_message = "Execution failed"
        return self


class ActionOutcome(BaseModel):
    """Result of a schedule action that the service accepted."""

    success: bool = True
    message: str = ""


_DAY_NAMES = {
    "0": "Sunday",
    "1": "Monday",
    "2": "Tuesday",
    "3": "Wednesday",
    "4": "Thursday",
    "5": "Friday",
    "6": "Saturday",
    "7": "Sunday",
    "SUN": "Sunday",
    "MON": "Monday",
    "TUE": "Tuesday",
    "WED": "Wednesday",
    "THU": "Thursday",
    "FRI": "Friday",
    "SAT": "Saturday",
}

_NUMBER = re.compile(r"^\d+$")
_STEP = re.compile(r"^\*/(\d+)$")


def cron_to_human(expression: str) -> str:
    """Render a five-field cron expression as English.

    Only the shapes a digest schedule realistically uses are recognized;
    anything else is returned unchanged.

    Example:
        >>> cron_to_human("0 8 * * 1")
        'Every Monday at 08:00'
    """
    fields = expression.split()
    if len(fields) != 5:
        return expression
    minute, hour, dom, month, dow = fields

    if step := _STEP.match(minute):
        if (hour, dom, month, dow) == ("*", "*", "*", "*"):
            return f"Every {step.group(1)} minutes"
        return expression

    if not _NUMBER.match(minute):
        return expression

    if hour == "*" and (dom, month, dow) == ("*", "*", "*"):
        return f"Every hour at minute {int(minute)}"

    if not _NUMBER.match(hour):
        return expression

    at = f"{int(hour):02d}:{int(minute):02d}"
    if month != "*":
        return expression
    if dom == "*" and dow == "*":
        return f"Every day at {at}"
    if dom == "*" and dow == "1-5":
        return f"Every weekday at {at}"
    if dom == "*":
        days = [_DAY_NAMES.get(d.upper()) for d in dow.split(",")]
        if all(days):
            return f"Every {', '.join(days)} at {at}"
        return expression
    if dow == "*" and _NUMBER.match(dom):
        return f"Monthly on day {int(dom)} at {at}"
    return expression
