"""Unit tests for the HTTP chat backend."""
import json

import httpx
import pytest

from agentstream.backend import (
    Attachment,
    BackendError,
    ChatRequest,
    HttpChatBackend,
    create_chat_backend,
)
from agentstream.streaming import CompleteEvent, ContentEvent, MessageStartEvent, decode_stream


def make_backend(handler, **kwargs) -> HttpChatBackend:
    return HttpChatBackend(
        "https://project.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestChatRequest:
    """Tests for payload serialization."""

    def test_camel_case_payload(self):
        request = ChatRequest(
            message="Hello",
            conversation_id="c-1",
            agent_slug="demo-agent",
            attachments=[Attachment(url="https://f.test/a.pdf", name="a.pdf", type="application/pdf")],
            forced_tool="dom_snapshot",
        )

        assert request.to_payload() == {
            "message": "Hello",
            "conversationId": "c-1",
            "agentSlug": "demo-agent",
            "attachments": [{"url": "https://f.test/a.pdf", "name": "a.pdf", "type": "application/pdf"}],
            "forcedTool": "dom_snapshot",
        }

    def test_silent_round_trip_payload(self):
        request = ChatRequest(
            conversation_id="c-1",
            agent_slug="demo-agent",
            silent=True,
            dom_result={"success": True, "session_id": "s-1"},
            mode_flags={"deepResearch": True, "message": "not overridden"},
        )

        payload = request.to_payload()

        assert payload["silent"] is True
        assert payload["domResult"] == {"success": True, "session_id": "s-1"}
        assert payload["deepResearch"] is True
        assert payload["message"] == ""
        assert "toolServerResult" not in payload


class TestHttpChatBackend:
    """Tests for streaming and error mapping."""

    @pytest.mark.asyncio
    async def test_streams_sse_body(self):
        captured: list[httpx.Request] = []
        body = (
            b'data: {"type":"message_start","messageId":"m-1"}\n\n'
            b'data: {"type":"content","text":"Hi"}\n\n'
            b'data: {"type":"complete","conversationId":"c-1"}\n\n'
        )

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        backend = make_backend(handler, api_key="anon", access_token="user-token")
        request = ChatRequest(message="Hello", conversation_id="c-1", agent_slug="demo-agent")

        async with backend:
            async with backend.stream(request) as stream:
                events = [event async for event in decode_stream(stream.aiter_bytes())]
            assert stream.cancelled

        assert [type(e) for e in events] == [MessageStartEvent, ContentEvent, CompleteEvent]
        sent = captured[0]
        assert sent.url.path == "/functions/v1/agent-chat"
        assert sent.headers["authorization"] == "Bearer user-token"
        assert sent.headers["apikey"] == "anon"
        assert sent.headers["accept"] == "text/event-stream"
        assert json.loads(sent.content)["agentSlug"] == "demo-agent"

    @pytest.mark.asyncio
    async def test_error_body_becomes_backend_error(self):
        backend = make_backend(lambda request: httpx.Response(402, json={"error": "Insufficient credits"}))
        request = ChatRequest(message="Hi", conversation_id="c-1", agent_slug="demo-agent")

        with pytest.raises(BackendError) as exc_info:
            async with backend.stream(request):
                pass

        assert str(exc_info.value) == "Insufficient credits"
        assert exc_info.value.status_code == 402
        await backend.close()

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        backend = make_backend(lambda request: httpx.Response(503, text="upstream down"))
        request = ChatRequest(message="Hi", conversation_id="c-1", agent_slug="demo-agent")

        with pytest.raises(BackendError, match=r"HTTP 503"):
            async with backend.stream(request):
                pass
        await backend.close()

    @pytest.mark.asyncio
    async def test_token_refresh(self):
        seen: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("authorization"))
            return httpx.Response(200, content=b"")

        backend = make_backend(handler)
        request = ChatRequest(message="Hi", conversation_id="c-1", agent_slug="demo-agent")

        async with backend.stream(request):
            pass
        backend.set_access_token("fresh")
        async with backend.stream(request):
            pass
        await backend.close()

        assert seen == [None, "Bearer fresh"]


class TestCreateChatBackend:
    """Tests for the backend factory."""

    def test_requires_base_url(self):
        with pytest.raises(TypeError, match="base_url"):
            create_chat_backend("http")

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unsupported chat backend"):
            create_chat_backend("grpc", base_url="https://x.test")

    @pytest.mark.asyncio
    async def test_creates_http_backend(self):
        backend = create_chat_backend("http", base_url="https://x.test", api_key="anon")
        assert isinstance(backend, HttpChatBackend)
        await backend.close()
