"""Agent invocation client.

Sends one natural-language instruction to a remote agent workflow and
returns its single response envelope:

    {"success": bool, "response": {"result"?: object, "message"?: str}, "error"?: str}

The call is deliberately given no total timeout: the digest pipeline can
run for minutes, and abandoning it early would not stop side effects
(search, email) that are already under way on the remote side.

Transport failures never raise; they are folded into a failure envelope so
the orchestrator has a single failure path to classify.
"""

import asyncio
import logging
from typing import Any

import aiohttp

from clients.utils import USER_AGENT, create_ssl_context, describe_exception, failure, read_envelope

logger = logging.getLogger(__name__)

# Connection setup is bounded, the pipeline run itself is not
CONNECT_TIMEOUT_SECONDS = 30


class AgentClient:
    """HTTP client for the remote agent invocation endpoint.

    Example:
        >>> client = AgentClient("https://agents.example.com/api/agent")
        >>> envelope = await client.invoke("Run the digest ...", "manager-id")
        >>> envelope["success"]
        True
    """

    def __init__(self, api_url: str, api_key: str = "", verify_ssl: bool = True):
        """Initialize the client.

        Args:
            api_url: POST endpoint accepting ``{"message", "agent_id"}``
            api_key: Optional bearer token
            verify_ssl: Verify TLS certificates against the certifi bundle
        """
        self.api_url = api_url
        self.api_key = api_key
        self.verify_ssl = verify_ssl

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def invoke(self, message: str, agent_id: str) -> dict[str, Any]:
        """Invoke an agent and wait for its single response.

        Args:
            message: Instruction for the agent
            agent_id: Opaque routing key of the target agent

        Returns:
            The response envelope. Always a dict with a ``success`` key.
        """
        payload = {"message": message, "agent_id": agent_id}
        timeout = aiohttp.ClientTimeout(total=None, connect=CONNECT_TIMEOUT_SECONDS)
        logger.debug("Agent call started | agent=%s chars=%d", agent_id, len(message))

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.api_url,
                    json=payload,
                    headers=self._headers(),
                    ssl=create_ssl_context(self.verify_ssl),
                ) as resp:
                    envelope = await read_envelope(resp, payload_key="response")
                    logger.debug(
                        "Agent call finished | agent=%s status=%d success=%s",
                        agent_id, resp.status, envelope.get("success"),
                    )
                    return envelope
        except asyncio.TimeoutError:
            logger.warning("Agent call timed out connecting | agent=%s", agent_id)
            return failure("Timed out connecting to the agent service")
        except aiohttp.ClientError as e:
            logger.warning("Agent call transport error | agent=%s error=%s", agent_id, e)
            return failure(describe_exception(e))
