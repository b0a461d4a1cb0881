"""Remote scheduler service client.

The scheduler service owns the recurring digest schedule. This client only
observes and controls it; it never computes cron timings itself.

Endpoints (relative to the configured base URL):
    GET  /schedules                     -> {"success", "schedules": [...]}
    GET  /schedules/{id}                -> {"success", "schedule": {...}}
    GET  /schedules/{id}/logs?limit=N   -> {"success", "executions": [...]}
    POST /schedules/{id}/pause          -> {"success", "message"?}
    POST /schedules/{id}/resume         -> {"success", "message"?}
    POST /schedules/{id}/trigger        -> {"success", "message"?}

Every method returns a ``{"success": bool, ...payload | "error"}`` envelope.
Transport failures and non-2xx responses are folded into failure envelopes.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from clients.utils import USER_AGENT, create_ssl_context, describe_exception, failure, read_envelope

logger = logging.getLogger(__name__)


class SchedulerClient:
    """HTTP client for the remote scheduler service."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ):
        """Initialize the client.

        Args:
            base_url: Scheduler service base URL
            api_key: Optional bearer token
            timeout: Total timeout per request in seconds
            verify_ssl: Verify TLS certificates against the certifi bundle
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, *(quote(part, safe="") for part in parts)])

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    params=params,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ssl=create_ssl_context(self.verify_ssl),
                ) as resp:
                    envelope = await read_envelope(resp)
                    if not envelope.get("success"):
                        logger.debug("Scheduler %s %s failed | status=%d", method, url, resp.status)
                    return envelope
        except asyncio.TimeoutError:
            logger.warning("Scheduler request timed out | %s %s", method, url)
            return failure(f"Scheduler request timed out after {self.timeout:g}s")
        except aiohttp.ClientError as e:
            logger.warning("Scheduler transport error | %s %s error=%s", method, url, e)
            return failure(describe_exception(e))

    async def list_schedules(self) -> dict[str, Any]:
        """List all schedules visible to this client."""
        return await self._request("GET", self._url("schedules"))

    async def get_schedule(self, schedule_id: str) -> dict[str, Any]:
        """Fetch one schedule by id."""
        return await self._request("GET", self._url("schedules", schedule_id))

    async def get_execution_log(self, schedule_id: str, limit: int = 10) -> dict[str, Any]:
        """Fetch the most recent executions of a schedule, newest first."""
        return await self._request(
            "GET",
            self._url("schedules", schedule_id, "logs"),
            params={"limit": limit},
        )

    async def pause(self, schedule_id: str) -> dict[str, Any]:
        """Pause a schedule."""
        return await self._request("POST", self._url("schedules", schedule_id, "pause"))

    async def resume(self, schedule_id: str) -> dict[str, Any]:
        """Resume a paused schedule."""
        return await self._request("POST", self._url("schedules", schedule_id, "resume"))

    async def trigger_now(self, schedule_id: str) -> dict[str, Any]:
        """Request an immediate out-of-band execution.

        Returns as soon as the service accepts the trigger; it does not wait
        for the execution to finish.
        """
        return await self._request("POST", self._url("schedules", schedule_id, "trigger"))
