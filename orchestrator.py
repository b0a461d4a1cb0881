"""Run orchestration for on-demand digest pipeline runs.

This module issues one invocation of the remote multi-agent digest pipeline
and turns its response into a DigestRecord.

Run Flow:
    1. GUARD: Reject empty topic sets and re-entrant runs (no network call)
    2. INSTRUCT: Build one natural-language instruction (topics, recipient,
       today's date, preferred window, never-empty fallback policy)
    3. INVOKE: Exactly one call to the manager agent, awaited to completion
       with no timeout and no retries
    4. CLASSIFY: Transport failure or an explicit failure flag -> CallFailedError
    5. NORMALIZE: Locate the result object (normalize.normalize_response)
    6. MAP: Build the DigestRecord with safe defaults (normalize.to_digest_record)
    7. RECORD: Prepend the record to history, only after 5 and 6 succeeded

A failed call never produces a record and never touches history.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from config import Config
from errors import CallFailedError, EmptyTopicSetError, RunInProgressError
from models.digest import DigestRecord
from normalize import as_dict, normalize_response, to_digest_record
from observability.logging import log_context
from observability.tracing import trace_operation
from state import AppState

logger = logging.getLogger(__name__)

PREVIEW_RECIPIENT = "preview-only@none.com"
CALL_FAILED_FALLBACK = "Agent call failed. Please try again."
CALL_ERRORED_FALLBACK = (
    "Failed to generate preview. The agent may have timed out. Please try again."
)


@dataclass
class RunResult:
    """Outcome of a successful pipeline run.

    Attributes:
        record: The DigestRecord prepended to history
        data: The normalized result object, for preview display
        duration: Wall-clock run time in seconds
    """

    record: DigestRecord
    data: dict[str, Any] = field(default_factory=dict)
    duration: float = 0.0


@dataclass(frozen=True)
class AgentInfo:
    """One agent of the remote pipeline."""

    id: str
    name: str
    role: str


def agent_roster(config: Config) -> list[AgentInfo]:
    """Configured pipeline agents, manager first. Agents with no id are left out."""
    roster = [
        AgentInfo(config.manager_agent_id, "Research Digest Manager", "Orchestrates the weekly pipeline"),
        AgentInfo(config.search_agent_id, "ArXiv Research Agent", "Searches ArXiv for papers"),
        AgentInfo(config.delivery_agent_id, "Email Digest Agent", "Composes and sends digest emails"),
    ]
    return [agent for agent in roster if agent.id]


def default_window(days: int, today: date | None = None) -> tuple[date, date]:
    """Preferred search window ending today."""
    end = today or date.today()
    return end - timedelta(days=days), end


def build_instruction(
    topics: list[str],
    recipient: str,
    date_from: date,
    date_to: date,
    today: date | None = None,
) -> str:
    """Build the single instruction sent to the manager agent.

    The never-empty clause is a policy hint for the remote pipeline, not a
    contract: responses with zero papers are still accepted.
    """
    today = today or datetime.now(timezone.utc).date()
    return (
        f"Run the weekly research digest pipeline for the following topics: {', '.join(topics)}. "
        f"Send the digest email to: {recipient or PREVIEW_RECIPIENT}. "
        f"Today's date is {today.isoformat()}. "
        f"Preferred date range: {date_from.isoformat()} to {date_to.isoformat()}. "
        "Search ArXiv for the most recent papers on each topic, sorted by submission date descending. "
        "Prioritize papers from the preferred date range but always return at least 3-5 papers "
        "per topic even if they fall outside the range. Never return empty results. "
        "Then compose and send a structured digest email with paper summaries, "
        "titles with links, and key insights."
    )


def failure_message(envelope: Any) -> str:
    """User-facing message for a failed call, preferring remote text."""
    payload = as_dict(envelope)
    for candidate in (payload.get("error"), as_dict(payload.get("response")).get("message")):
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return CALL_FAILED_FALLBACK


class DigestOrchestrator:
    """Runs the remote digest pipeline on demand.

    Only one run may be in flight per instance: a second call while one is
    pending raises RunInProgressError. ``run_in_flight`` and
    ``active_agent_id`` let callers disable re-entry and show which agent is
    working.

    Example:
        >>> orchestrator = DigestOrchestrator(config, AgentClient(...), state)
        >>> result = await orchestrator.run_digest_pipeline(
        ...     ["Large Language Models"], "me@example.com", date_from, date_to
        ... )
        >>> result.record.paper_count
        12
    """

    def __init__(self, config: Config, agent_client: Any, state: AppState):
        """Initialize the orchestrator.

        Args:
            config: Application configuration (agent ids)
            agent_client: Object with ``async invoke(message, agent_id) -> dict``
            state: Application state owning the history
        """
        self.config = config
        self.agent_client = agent_client
        self.state = state
        self.run_in_flight = False
        self.active_agent_id: str | None = None

    def agent_activity(self) -> list[tuple[AgentInfo, bool]]:
        """Each configured agent paired with whether it is working right now."""
        return [(agent, agent.id == self.active_agent_id) for agent in agent_roster(self.config)]

    async def run_digest_pipeline(
        self,
        topics: list[str],
        recipient: str,
        date_from: date,
        date_to: date,
    ) -> RunResult:
        """Run the pipeline once and record the result.

        Args:
            topics: Research topics (must be non-empty)
            recipient: Digest destination, empty for preview-only
            date_from: Start of the preferred publication window
            date_to: End of the preferred publication window

        Returns:
            RunResult with the new DigestRecord

        Raises:
            EmptyTopicSetError: No topics given (no network call made)
            RunInProgressError: Another run is in flight on this instance
            CallFailedError: The call failed; history is unchanged
        """
        topics = list(topics)
        if not topics:
            raise EmptyTopicSetError()
        if self.run_in_flight:
            raise RunInProgressError()

        run_id = uuid.uuid4().hex[:8]
        agent_id = self.config.manager_agent_id
        message = build_instruction(topics, recipient, date_from, date_to)

        self.run_in_flight = True
        self.active_agent_id = agent_id
        start = time.monotonic()
        try:
            with log_context(run_id, "digest_run"), \
                    trace_operation("digest_run", {"run_id": run_id, "topics": len(topics)}) as attrs:
                logger.info(
                    "Run started | topics=%d window=%s..%s",
                    len(topics), date_from.isoformat(), date_to.isoformat(),
                )
                envelope = await self._invoke(message, agent_id)

                if not isinstance(envelope, dict) or not envelope.get("success"):
                    error = failure_message(envelope)
                    attrs["outcome"] = "failed"
                    logger.warning("Run failed | error=%s", error)
                    raise CallFailedError(error)

                data = normalize_response(envelope)
                record = to_digest_record(data, topics, recipient)
                self.state.prepend_record(record)

                duration = time.monotonic() - start
                attrs["outcome"] = "completed"
                attrs["paper_count"] = record.paper_count
                logger.info(
                    "Run complete | papers=%d delivered=%s status=%s duration=%.1fs",
                    record.paper_count, record.delivered, record.workflow_status, duration,
                )
                return RunResult(record=record, data=data, duration=duration)
        finally:
            self.run_in_flight = False
            self.active_agent_id = None

    async def _invoke(self, message: str, agent_id: str) -> Any:
        """Call the agent, converting unexpected transport exceptions."""
        try:
            return await self.agent_client.invoke(message, agent_id)
        except CallFailedError:
            raise
        except Exception as e:
            logger.error("Agent call raised | type=%s error=%s", type(e).__name__, e, exc_info=True)
            raise CallFailedError(str(e).strip() or CALL_ERRORED_FALLBACK) from e
