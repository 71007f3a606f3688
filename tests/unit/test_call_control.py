"""Unit tests for the Telnyx call-control and AI platform clients."""
import json

import httpx
import pytest

from app.services.agents.directory import AgentConfig
from app.services.telephony.agent_platform import AgentPlatformClient
from app.services.telephony.call_control import CallControlClient


def telnyx_client(handler, api_key="test-key"):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CallControlClient(http_client, api_key=api_key, connection_id="conn_1", base_url="https://telnyx.test/v2")


class TestCallControlClient:
    """Test requests to Telnyx and how failures come back."""

    @pytest.mark.asyncio
    async def test_create_conference(self):
        """Test the conference id is read from the response."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": {"id": "conf_1"}})

        result = await telnyx_client(handler).create_conference("call_1", "L1")

        assert result.success is True
        assert result.conference_id == "conf_1"
        assert requests[0].url.path == "/v2/conferences"
        assert requests[0].headers["Authorization"] == "Bearer test-key"
        body = json.loads(requests[0].content)
        assert body == {"name": "call_1", "beep_enabled": "never", "call_control_id": "L1"}

    @pytest.mark.asyncio
    async def test_dial_sends_client_state(self):
        """Test dialing passes the connection, addresses and token."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": {"call_control_id": "L2"}})

        result = await telnyx_client(handler).dial_sip("sip:phnum_1@sip.test;transport=tls", "+1AGENT", "tok")

        assert result.call_control_id == "L2"
        body = json.loads(requests[0].content)
        assert body["connection_id"] == "conn_1"
        assert body["to"] == "sip:phnum_1@sip.test;transport=tls"
        assert body["from"] == "+1AGENT"
        assert body["client_state"] == "tok"

    @pytest.mark.asyncio
    async def test_join_and_answer_paths(self):
        """Test action endpoints are addressed by conference and leg."""
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json={"data": {"result": "ok"}})

        client = telnyx_client(handler)
        assert (await client.answer("L1")).success is True
        assert (await client.join_conference("C1", "L2")).success is True
        assert (await client.start_transcription("C1", "L1")).success is True

        assert paths == [
            "/v2/calls/L1/actions/answer",
            "/v2/conferences/C1/actions/join",
            "/v2/calls/L1/actions/transcription_start",
        ]

    @pytest.mark.asyncio
    async def test_provider_error_detail(self):
        """Test the provider's error detail is returned."""
        def handler(request):
            return httpx.Response(422, json={"errors": [{"title": "Invalid", "detail": "Call has already ended"}]})

        result = await telnyx_client(handler).answer("L1")

        assert result.success is False
        assert result.error == "Call has already ended"

    @pytest.mark.asyncio
    async def test_error_without_body(self):
        """Test a bare error status still produces a message."""
        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        result = await telnyx_client(handler).join_conference("C1", "L2")

        assert result.error == "API error: 503"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test no request is made without an API key."""
        def handler(request):
            raise AssertionError("unexpected request")

        result = await telnyx_client(handler, api_key=None).answer("L1")

        assert result.success is False
        assert result.error == "No API key"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test network failures are returned, not raised."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await telnyx_client(handler).answer("L1")

        assert result.success is False
        assert "connection refused" in result.error


class TestAgentPlatformClient:
    """Test outbound calls placed by the AI platform."""

    @pytest.fixture
    def platform_agent(self):
        return AgentConfig(phone_number="+1AGENT", phone_number_id="phnum_1", agent_id="agent_1")

    @pytest.mark.asyncio
    async def test_outbound_call(self, platform_agent):
        """Test the agent and number ids are sent with the API key."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"success": True, "conversation_id": "conv_1", "sip_call_id": "sip_1"})

        client = AgentPlatformClient(
            httpx.AsyncClient(transport=httpx.MockTransport(handler)), api_key="xi-key", base_url="https://el.test"
        )
        result = await client.outbound_call(platform_agent, "+15550002222")

        assert result.success is True
        assert result.conversation_id == "conv_1"
        assert requests[0].url.path == "/v1/convai/sip-trunk/outbound-call"
        assert requests[0].headers["xi-api-key"] == "xi-key"
        assert json.loads(requests[0].content) == {
            "agent_id": "agent_1",
            "agent_phone_number_id": "phnum_1",
            "to_number": "+15550002222",
        }

    @pytest.mark.asyncio
    async def test_outbound_call_rejected(self, platform_agent):
        """Test a platform-reported failure carries its message."""
        def handler(request):
            return httpx.Response(200, json={"success": False, "message": "Number not verified"})

        client = AgentPlatformClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), api_key="xi-key")
        result = await client.outbound_call(platform_agent, "+15550002222")

        assert result.success is False
        assert result.error == "Number not verified"

    @pytest.mark.asyncio
    async def test_outbound_call_validation_error(self, platform_agent):
        """Test a structured error detail is flattened to its message."""
        def handler(request):
            return httpx.Response(400, json={"detail": {"status": "invalid", "message": "Unknown agent"}})

        client = AgentPlatformClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), api_key="xi-key")
        result = await client.outbound_call(platform_agent, "+15550002222")

        assert result.error == "Unknown agent"

    @pytest.mark.asyncio
    async def test_outbound_call_without_key(self, platform_agent):
        """Test a missing API key fails without a request."""
        client = AgentPlatformClient(httpx.AsyncClient(), api_key=None)

        result = await client.outbound_call(platform_agent, "+15550002222")

        assert result.success is False
        assert result.error == "No API key"
