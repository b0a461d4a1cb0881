"""Digest record models for completed pipeline runs.

A DigestRecord is the canonical, normalized form of one pipeline run. It is
built by normalize.to_digest_record() from whatever shape the remote
pipeline returned, and is the only type stored in the history slot.

History Ordering:
    History is a list of DigestRecord, newest first. The orchestrator only
    ever prepends; clearing is the one other mutation.
"""

from pydantic import BaseModel, Field


class SearchAgentStatus(BaseModel):
    """Outcome reported for the paper search sub-agent."""

    status: str = Field(default="", description="Free-form status token")
    papers_found: int = Field(default=0, ge=0, description="Papers the agent found")


class DeliveryAgentStatus(BaseModel):
    """Outcome reported for the email delivery sub-agent."""

    status: str = Field(default="", description="Free-form status token")
    email_delivered: bool = Field(default=False, description="Delivery confirmed")


class AgentStatuses(BaseModel):
    """Per-agent outcomes of a pipeline run.

    Either entry may be missing when the pipeline did not report it.
    """

    search: SearchAgentStatus | None = None
    delivery: DeliveryAgentStatus | None = None

    @property
    def is_empty(self) -> bool:
        return self.search is None and self.delivery is None


class DigestRecord(BaseModel):
    """One completed pipeline run.

    Attributes:
        id: Opaque unique identifier (generated locally)
        timestamp: ISO-8601 instant from the response, else time of receipt
        topics: Topics actually processed, falling back to the requested set
        paper_count: Number of papers found across all topics
        summary_text: Digest body, possibly empty
        delivered: True only when the pipeline explicitly confirmed delivery
        recipient: Destination address used for this run, possibly empty
        workflow_status: Status token from the pipeline ("completed" if absent)
        agent_statuses: Search and delivery sub-agent outcomes

    Example:
        >>> record = DigestRecord(id="abc", timestamp="2026-10-17T08:00:00+00:00")
        >>> record.paper_count
        0
    """

    id: str = Field(description="Opaque unique identifier")
    timestamp: str = Field(description="ISO-8601 instant of the run")
    topics: list[str] = Field(default_factory=list, description="Topics processed")
    paper_count: int = Field(default=0, ge=0, description="Papers found")
    summary_text: str = Field(default="", description="Digest body")
    delivered: bool = Field(default=False, description="Delivery explicitly confirmed")
    recipient: str = Field(default="", description="Destination address")
    workflow_status: str = Field(default="completed", description="Pipeline status token")
    agent_statuses: AgentStatuses = Field(default_factory=AgentStatuses)

    def matches(self, text: str) -> bool:
        """Check whether the record matches a history filter.

        Matching is a case-insensitive substring test against every topic
        and the summary. A blank filter matches everything.
        """
        needle = text.strip().lower()
        if not needle:
            return True
        if any(needle in topic.lower() for topic in self.topics):
            return True
        return needle in self.summary_text.lower()

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return f"DigestRecord({self.id[:8]}, topics={len(self.topics)}, papers={self.paper_count})"
