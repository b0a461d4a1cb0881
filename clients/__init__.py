"""Service clients for the remote agent and scheduler services.

AgentClient:
    Invokes a remote agent workflow and returns its response envelope.
    No total timeout: digest runs can take minutes.

SchedulerClient:
    Reads and controls the remote recurring schedule
    (get, list, execution log, pause, resume, trigger).

Both clients fold transport failures into ``{"success": False, "error": ...}``
envelopes instead of raising.

Example:
    >>> from clients import AgentClient, SchedulerClient
    >>> agents = AgentClient(config.agent_api_url, config.agent_api_key)
    >>> scheduler = SchedulerClient(config.scheduler_api_url)
"""

from clients.agent import AgentClient
from clients.scheduler import SchedulerClient
from clients.utils import create_ssl_context, USER_AGENT

__all__ = [
    "AgentClient",
    "SchedulerClient",
    "create_ssl_context",
    "USER_AGENT",
]
