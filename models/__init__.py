"""Pydantic models for the digestctl control surface.

This package contains all data models shared by the orchestrator, the
schedule controller and the local state store:

DigestRecord:
    Normalized result of one pipeline run, with per-agent outcomes
    (AgentStatuses, SearchAgentStatus, DeliveryAgentStatus).

Schedule:
    Remote recurring job definition (is_active, cron_expression, ...).

ScheduleState:
    Observed state of a schedule (ACTIVE, PAUSED, UNKNOWN).

ExecutionLogEntry:
    One historical invocation of a schedule.

ActionOutcome:
    Result of an accepted pause/resume/trigger action.

Example:
    >>> from models import DigestRecord, Schedule, cron_to_human
    >>> cron_to_human("0 8 * * 1")
    'Every Monday at 08:00'
"""

from models.digest import AgentStatuses, DeliveryAgentStatus, DigestRecord, SearchAgentStatus
from models.schedule import (
    ActionOutcome,
    ExecutionLogEntry,
    Schedule,
    ScheduleState,
    cron_to_human,
)

__all__ = [
    "DigestRecord",
    "AgentStatuses",
    "SearchAgentStatus",
    "DeliveryAgentStatus",
    "Schedule",
    "ScheduleState",
    "ExecutionLogEntry",
    "ActionOutcome",
    "cron_to_human",
]
