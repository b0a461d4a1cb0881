"""Tests for the command line entry point."""

import asyncio
import json

import pytest

import clients
import main
from store import EMAIL_KEY, HISTORY_KEY, TOPICS_KEY, SlotStore


@pytest.fixture
def env(tmp_path, monkeypatch):
    store_path = tmp_path / "digest.db"
    monkeypatch.setenv("STORE_PATH", str(store_path))
    for key in (
        "AGENT_API_URL", "MANAGER_AGENT_ID", "SEARCH_AGENT_ID", "DELIVERY_AGENT_ID",
        "SCHEDULER_API_URL", "SCHEDULE_ID",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(main, "setup_logging", lambda *args, **kwargs: False)
    return store_path


def _slot(path, key):
    with SlotStore(path) as store:
        return store.read(key)


class TestTopicsCommand:

    def test_add_and_list(self, env, capsys):
        assert main.main(["topics", "add", "Large Language Models"]) == 0
        assert main.main(["topics", "import", "Vision, Robotics"]) == 0
        assert main.main(["topics", "list"]) == 0

        out = capsys.readouterr().out
        assert "3. Robotics" in out
        assert json.loads(_slot(env, TOPICS_KEY)) == ["Large Language Models", "Vision", "Robotics"]

    def test_duplicate_add_fails(self, env):
        main.main(["topics", "add", "LLMs"])
        assert main.main(["topics", "add", "LLMs"]) == 1

    def test_remove_missing_fails(self, env):
        assert main.main(["topics", "remove", "absent"]) == 1


class TestEmailCommand:

    def test_set_and_show(self, env, capsys):
        assert main.main(["email", "me@example.com"]) == 0
        assert _slot(env, EMAIL_KEY) == "me@example.com"

        main.main(["email"])
        assert "me@example.com" in capsys.readouterr().out

    def test_invalid_address(self, env, capsys):
        assert main.main(["email", "nope"]) == 1
        assert "Invalid email address format" in capsys.readouterr().err


class TestHistoryCommand:

    def test_malformed_history_reported(self, env, capsys):
        with SlotStore(env) as store:
            store.write(HISTORY_KEY, "{broken")

        assert main.main(["history"]) == 0

        captured = capsys.readouterr()
        assert "No digests yet." in captured.out
        assert HISTORY_KEY in captured.err


class TestServiceCommands:

    def test_run_requires_agent_config(self, env, capsys):
        assert main.main(["run"]) == 1
        assert "AGENT_API_URL" in capsys.readouterr().err

    def test_schedule_requires_scheduler_config(self, env, capsys):
        assert main.main(["schedule", "pause"]) == 1
        assert "SCHEDULER_API_URL" in capsys.readouterr().err

    def test_run_with_no_topics(self, env, monkeypatch, capsys):
        monkeypatch.setenv("AGENT_API_URL", "https://agents.example.com/api/agent")
        monkeypatch.setenv("MANAGER_AGENT_ID", "manager-1")

        assert main.main(["run"]) == 1
        assert "Add at least one research topic" in capsys.readouterr().err

    def test_run_reports_agent_activity(self, env, monkeypatch, capsys, agent_client):
        monkeypatch.setenv("AGENT_API_URL", "https://agents.example.com/api/agent")
        monkeypatch.setenv("MANAGER_AGENT_ID", "manager-1")
        monkeypatch.setenv("DELIVERY_AGENT_ID", "email-1")

        async def invoke(message, agent_id):
            await asyncio.sleep(0)
            return {"success": True, "response": {"message": "All done."}}

        agent_client.invoke.side_effect = invoke
        monkeypatch.setattr(clients, "AgentClient", lambda *args, **kwargs: agent_client)
        main.main(["topics", "add", "LLMs"])

        assert main.main(["run"]) == 0

        out = capsys.readouterr().out
        assert "Research Digest Manager: working" in out
        assert "Email Digest Agent: idle" in out
        assert "All done." in out

    def test_schedule_logs_ignore_schedule_read(self, env, monkeypatch, capsys, scheduler_client):
        monkeypatch.setenv("SCHEDULER_API_URL", "https://scheduler.example.com")
        monkeypatch.setenv("SCHEDULE_ID", "sched-1")
        scheduler_client.get_schedule.return_value = {"success": False, "error": "HTTP 503"}
        scheduler_client.list_schedules.return_value = {"success": False, "error": "HTTP 503"}
        monkeypatch.setattr(clients, "SchedulerClient", lambda *args, **kwargs: scheduler_client)

        assert main.main(["schedule", "logs"]) == 0

        captured = capsys.readouterr()
        assert "Recent Executions (1)" in captured.out
        assert captured.err == ""
        scheduler_client.get_schedule.assert_not_awaited()

    def test_schedule_status_fails_when_unreachable(self, env, monkeypatch, capsys, scheduler_client):
        monkeypatch.setenv("SCHEDULER_API_URL", "https://scheduler.example.com")
        monkeypatch.setenv("SCHEDULE_ID", "sched-1")
        scheduler_client.get_schedule.return_value = {"success": False, "error": "HTTP 503"}
        scheduler_client.list_schedules.return_value = {"success": False, "error": "HTTP 503"}
        monkeypatch.setattr(clients, "SchedulerClient", lambda *args, **kwargs: scheduler_client)

        assert main.main(["schedule", "status"]) == 1
        assert "Recent Executions (1)" in capsys.readouterr().out


class TestStatusCommand:

    def test_status_json(self, env, capsys):
        main.main(["topics", "add", "LLMs"])
        capsys.readouterr()

        assert main.main(["status"]) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["store"]["topics"] == 1
        assert status["store"]["history_records"] == 0

    def test_status_lists_configured_agents(self, env, monkeypatch, capsys):
        monkeypatch.setenv("MANAGER_AGENT_ID", "manager-1")
        monkeypatch.setenv("SEARCH_AGENT_ID", "arxiv-1")

        assert main.main(["status"]) == 0

        agents = json.loads(capsys.readouterr().out)["config"]["agents"]
        assert [(agent["id"], agent["name"]) for agent in agents] == [
            ("manager-1", "Research Digest Manager"),
            ("arxiv-1", "ArXiv Research Agent"),
        ]
