"""Shared fixtures: in-memory state and fake service clients."""

from unittest.mock import AsyncMock, Mock

import pytest

from config import Config
from state import AppState
from store import MemoryStore


@pytest.fixture
def config():
    return Config(
        agent_api_url="https://agents.example.com/api/agent",
        manager_agent_id="manager-1",
        scheduler_api_url="https://scheduler.example.com",
        schedule_id="sched-1",
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def state(store):
    app_state = AppState(store)
    app_state.load()
    return app_state


@pytest.fixture
def agent_client():
    client = Mock()
    client.invoke = AsyncMock()
    return client


def schedule_payload(is_active=True, **overrides):
    payload = {
        "id": "sched-1",
        "is_active": is_active,
        "cron_expression": "0 8 * * 1",
        "timezone": "UTC",
        "next_run_time": "2026-10-19T08:00:00+00:00",
    }
    payload.update(overrides)
    return payload


def execution_payload(id, executed_at, success=True, **overrides):
    payload = {
        "id": id,
        "executed_at": executed_at,
        "success": success,
        "attempt": 1,
        "max_attempts": 3,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def scheduler_client():
    """Scheduler fake reporting an active schedule with one execution."""
    client = Mock()
    client.get_schedule = AsyncMock(
        return_value={"success": True, "schedule": schedule_payload(is_active=True)}
    )
    client.list_schedules = AsyncMock(return_value={"success": True, "schedules": []})
    client.get_execution_log = AsyncMock(
        return_value={
            "success": True,
            "executions": [execution_payload("run-1", "2026-10-12T08:00:00+00:00")],
        }
    )
    client.pause = AsyncMock(return_value={"success": True})
    client.resume = AsyncMock(return_value={"success": True})
    client.trigger_now = AsyncMock(return_value={"success": True})
    return client
