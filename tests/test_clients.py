"""Tests for service client envelope folding and error handling."""

from unittest.mock import patch

import aiohttp
import pytest
from aiohttp import test_utils, web

from clients.agent import AgentClient
from clients.scheduler import SchedulerClient
from clients.utils import describe_exception, read_envelope
from models.schedule import Schedule, ScheduleState
from schedule import ScheduleController


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse."""

    def __init__(self, status, body, charset="utf-8"):
        self.status = status
        self.charset = charset
        self._body = body.encode("utf-8") if isinstance(body, str) else body

    async def read(self):
        return self._body


class TestReadEnvelope:

    @pytest.mark.asyncio
    async def test_envelope_passed_through(self):
        envelope = await read_envelope(FakeResponse(200, '{"success": false, "error": "nope"}'))
        assert envelope == {"success": False, "error": "nope"}

    @pytest.mark.asyncio
    async def test_bare_payload_merged(self):
        envelope = await read_envelope(FakeResponse(200, '{"schedule": {"id": "s"}}'))
        assert envelope == {"success": True, "schedule": {"id": "s"}}

    @pytest.mark.asyncio
    async def test_bare_payload_nested_under_key(self):
        envelope = await read_envelope(FakeResponse(200, '{"message": "hi"}'), payload_key="response")
        assert envelope == {"success": True, "response": {"message": "hi"}}

    @pytest.mark.asyncio
    async def test_plain_text_success(self):
        envelope = await read_envelope(FakeResponse(200, "digest sent"), payload_key="response")
        assert envelope == {"success": True, "response": {"message": "digest sent"}}

    @pytest.mark.asyncio
    async def test_http_error_uses_body_detail(self):
        envelope = await read_envelope(FakeResponse(404, '{"detail": "Schedule not found"}'))
        assert envelope == {"success": False, "error": "Schedule not found"}

    @pytest.mark.asyncio
    async def test_http_error_without_body(self):
        envelope = await read_envelope(FakeResponse(502, ""))
        assert envelope == {"success": False, "error": "HTTP 502"}

    @pytest.mark.asyncio
    async def test_invalid_utf8_body_does_not_raise(self):
        envelope = await read_envelope(FakeResponse(502, b"\xff\xfe\xfa"))
        assert envelope["success"] is False
        assert envelope["error"]

    @pytest.mark.asyncio
    async def test_unknown_charset_falls_back_to_utf8(self):
        envelope = await read_envelope(FakeResponse(200, '{"schedules": []}', charset="x-no-such"))
        assert envelope == {"success": True, "schedules": []}

    @pytest.mark.asyncio
    async def test_deeply_nested_body_treated_as_text(self):
        envelope = await read_envelope(FakeResponse(200, "[" * 100000), payload_key="response")
        assert envelope["success"] is True
        assert envelope["response"]["message"].startswith("[[[")

    def test_describe_exception_never_empty(self):
        assert describe_exception(aiohttp.ClientError()) == "ClientError"


class TestTransportFailures:

    @pytest.mark.asyncio
    async def test_agent_client_error_folded(self):
        client = AgentClient("https://agents.example.com/api/agent")
        with patch("aiohttp.ClientSession.post", side_effect=aiohttp.ClientConnectionError("refused")):
            envelope = await client.invoke("run", "manager-1")
        assert envelope == {"success": False, "error": "refused"}

    @pytest.mark.asyncio
    async def test_agent_timeout_folded(self):
        client = AgentClient("https://agents.example.com/api/agent")
        with patch("aiohttp.ClientSession.post", side_effect=TimeoutError()):
            envelope = await client.invoke("run", "manager-1")
        assert envelope["success"] is False
        assert "Timed out" in envelope["error"]

    @pytest.mark.asyncio
    async def test_scheduler_timeout_folded(self):
        client = SchedulerClient("https://scheduler.example.com", timeout=5)
        with patch("aiohttp.ClientSession.request", side_effect=TimeoutError()):
            envelope = await client.get_schedule("sched-1")
        assert envelope == {"success": False, "error": "Scheduler request timed out after 5s"}

    def test_scheduler_urls_escape_ids(self):
        client = SchedulerClient("https://scheduler.example.com/")
        assert client._url("schedules", "a/b", "logs") == "https://scheduler.example.com/schedules/a%2Fb/logs"


class TestSchedulerOverHttp:

    @staticmethod
    def _app(schedule_body):
        async def trigger(request):
            return web.json_response({"success": True})

        async def garbled(request):
            return web.Response(body=schedule_body, content_type="application/json")

        app = web.Application()
        app.router.add_post("/schedules/s1/trigger", trigger)
        app.router.add_get("/schedules/s1", garbled)
        app.router.add_get("/schedules", garbled)
        app.router.add_get("/schedules/s1/logs", garbled)
        return app

    @pytest.mark.asyncio
    async def test_undecodable_refresh_keeps_trigger_outcome(self):
        async with test_utils.TestServer(self._app(b"\xff\xfe\xfa")) as server:
            client = SchedulerClient(str(server.make_url("")))
            controller = ScheduleController(client, "s1")
            snapshot = Schedule(id="s1", is_active=True)
            controller.view.schedule = snapshot

            outcome = await controller.trigger_now()

        assert outcome.message == "Schedule triggered -- execution started"
        assert controller.view.schedule is snapshot
        assert controller.view.error

    @pytest.mark.asyncio
    async def test_undecodable_schedule_read_is_unknown(self):
        async with test_utils.TestServer(self._app(b"\xff\xfe\xfa")) as server:
            client = SchedulerClient(str(server.make_url("")))
            view = await ScheduleController(client, "s1").load()

        assert view.state is ScheduleState.UNKNOWN
