"""Tests for the digest run orchestrator."""

import asyncio
from datetime import date

import pytest

from errors import CallFailedError, EmptyTopicSetError, RunInProgressError
from orchestrator import (
    CALL_ERRORED_FALLBACK,
    CALL_FAILED_FALLBACK,
    PREVIEW_RECIPIENT,
    AgentInfo,
    DigestOrchestrator,
    agent_roster,
    build_instruction,
    default_window,
    failure_message,
)
from store import HISTORY_KEY

DATE_FROM = date(2026, 10, 10)
DATE_TO = date(2026, 10, 17)

SUCCESS_ENVELOPE = {
    "success": True,
    "response": {"result": {
        "digest_summary": "X",
        "total_papers_found": 5,
        "topics_processed": ["Large Language Models"],
        "email_sent": True,
    }},
}


@pytest.fixture
def orchestrator(config, agent_client, state):
    return DigestOrchestrator(config, agent_client, state)


class TestRunDigestPipeline:

    @pytest.mark.asyncio
    async def test_successful_run_records_digest(self, orchestrator, agent_client, state, store):
        agent_client.invoke.return_value = SUCCESS_ENVELOPE

        result = await orchestrator.run_digest_pipeline(
            ["Large Language Models"], "me@example.com", DATE_FROM, DATE_TO
        )

        record = result.record
        assert record.paper_count == 5
        assert record.delivered is True
        assert record.summary_text == "X"
        assert record.recipient == "me@example.com"
        assert state.history == [record]
        assert HISTORY_KEY in store.slots
        assert result.data["digest_summary"] == "X"

    @pytest.mark.asyncio
    async def test_single_call_to_manager_agent(self, orchestrator, agent_client):
        agent_client.invoke.return_value = SUCCESS_ENVELOPE

        await orchestrator.run_digest_pipeline(["LLMs", "RL"], "", DATE_FROM, DATE_TO)

        agent_client.invoke.assert_awaited_once()
        message, agent_id = agent_client.invoke.await_args.args
        assert agent_id == "manager-1"
        assert "LLMs, RL" in message
        assert PREVIEW_RECIPIENT in message
        assert "2026-10-10 to 2026-10-17" in message

    @pytest.mark.asyncio
    async def test_failed_call_leaves_history_unchanged(self, orchestrator, agent_client, state):
        agent_client.invoke.return_value = {"success": False, "error": "timeout"}

        with pytest.raises(CallFailedError) as exc_info:
            await orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)

        assert exc_info.value.message == "timeout"
        assert state.history == []
        assert orchestrator.run_in_flight is False

    @pytest.mark.asyncio
    async def test_failure_without_error_uses_response_message(self, orchestrator, agent_client):
        agent_client.invoke.return_value = {"success": False, "response": {"message": "quota exceeded"}}

        with pytest.raises(CallFailedError, match="quota exceeded"):
            await orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)

    @pytest.mark.asyncio
    async def test_empty_topics_makes_no_call(self, orchestrator, agent_client):
        with pytest.raises(EmptyTopicSetError):
            await orchestrator.run_digest_pipeline([], "me@example.com", DATE_FROM, DATE_TO)

        agent_client.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_raised_exception_becomes_call_failed(self, orchestrator, agent_client, state):
        agent_client.invoke.side_effect = RuntimeError("")

        with pytest.raises(CallFailedError) as exc_info:
            await orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)

        assert exc_info.value.message == CALL_ERRORED_FALLBACK
        assert state.history == []

    @pytest.mark.asyncio
    async def test_reentrant_run_rejected(self, orchestrator, agent_client):
        release = asyncio.Event()

        async def slow_invoke(message, agent_id):
            await release.wait()
            return SUCCESS_ENVELOPE

        agent_client.invoke.side_effect = slow_invoke

        first = asyncio.create_task(
            orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)
        )
        await asyncio.sleep(0)
        assert orchestrator.run_in_flight is True
        assert orchestrator.active_agent_id == "manager-1"
        assert [(agent.name, working) for agent, working in orchestrator.agent_activity()] == [
            ("Research Digest Manager", True),
        ]

        with pytest.raises(RunInProgressError):
            await orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)

        release.set()
        result = await first
        assert result.record.paper_count == 5
        assert orchestrator.run_in_flight is False
        assert orchestrator.active_agent_id is None

    @pytest.mark.asyncio
    async def test_prose_response_still_recorded(self, orchestrator, agent_client, state):
        agent_client.invoke.return_value = {"success": True, "response": {"message": "All done."}}

        result = await orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)

        assert result.record.summary_text == "All done."
        assert result.record.paper_count == 0
        assert result.record.topics == ["LLMs"]
        assert len(state.history) == 1

    @pytest.mark.asyncio
    async def test_new_records_are_prepended(self, orchestrator, agent_client, state):
        agent_client.invoke.return_value = {"success": True, "response": {"message": "first"}}
        await orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)
        agent_client.invoke.return_value = {"success": True, "response": {"message": "second"}}
        await orchestrator.run_digest_pipeline(["LLMs"], "", DATE_FROM, DATE_TO)

        assert [r.summary_text for r in state.history] == ["second", "first"]


class TestHelpers:

    def test_failure_message_fallback(self):
        assert failure_message({"success": False}) == CALL_FAILED_FALLBACK
        assert failure_message(None) == CALL_FAILED_FALLBACK
        assert failure_message({"success": False, "error": "  "}) == CALL_FAILED_FALLBACK

    def test_default_window(self):
        assert default_window(7, today=DATE_TO) == (DATE_FROM, DATE_TO)

    def test_instruction_contents(self):
        message = build_instruction(
            ["Graph Neural Networks"], "me@example.com", DATE_FROM, DATE_TO, today=DATE_TO
        )
        assert "Graph Neural Networks" in message
        assert "me@example.com" in message
        assert "Today's date is 2026-10-17" in message
        assert "Never return empty results" in message

    def test_agent_roster_skips_unconfigured(self, config):
        config.delivery_agent_id = "email-1"

        roster = agent_roster(config)

        assert [agent.id for agent in roster] == ["manager-1", "email-1"]
        assert roster[1] == AgentInfo("email-1", "Email Digest Agent", "Composes and sends digest emails")

    def test_idle_when_no_run(self, config, agent_client, state):
        config.search_agent_id = "search-1"
        orchestrator = DigestOrchestrator(config, agent_client, state)

        assert [working for _, working in orchestrator.agent_activity()] == [False, False]
