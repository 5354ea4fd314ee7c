"""Unit tests for the tool server client and the automation session slot."""
import json

import httpx
import pytest

from agentstream.tools import AutomationSessionService, ToolServerClient, normalize_tool_server_url


def recording_client(handler=None, base_url="https://abc.ngrok.app/"):
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if handler is not None:
            return handler(request)
        return httpx.Response(200, json={"success": True})

    client = ToolServerClient(base_url, transport=httpx.MockTransport(_handler))
    return client, requests


class TestToolServerClient:
    """Tests for request shaping and error reporting."""

    @pytest.mark.parametrize(
        "value,expected",
        [(None, ""), ("", ""), ("  https://a.test//  ", "https://a.test"), ("http://b.test", "http://b.test")],
    )
    def test_normalize_url(self, value, expected):
        assert normalize_tool_server_url(value) == expected

    @pytest.mark.asyncio
    async def test_unconfigured_client_refuses(self):
        client = ToolServerClient(None)
        assert not client.is_configured()
        with pytest.raises(RuntimeError, match="not configured"):
            await client.screenshot()
        await client.close()

    @pytest.mark.asyncio
    async def test_post_sends_json_body_and_headers(self):
        client, requests = recording_client()

        await client.click(10, 20, session_id="s-1")

        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://abc.ngrok.app/click"
        assert request.headers["ngrok-skip-browser-warning"] == "true"
        body = json.loads(request.content)
        assert body == {
            "scope": "browser",
            "coordinate_origin": "viewport",
            "click_type": "single",
            "x": 10,
            "y": 20,
            "session_id": "s-1",
        }

    @pytest.mark.asyncio
    async def test_get_sends_query_params(self):
        client, requests = recording_client()

        await client.snapshot("s-9")

        request = requests[0]
        assert request.method == "GET"
        assert request.url.path == "/browser/snapshot"
        assert request.url.params["session_id"] == "s-9"
        assert request.url.params["format"] == "text"
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_aliases_resolve_to_canonical_endpoint(self):
        client, requests = recording_client()

        await client.call("browser_navigate", {"url": "https://x.test"}, session_id="s-1")

        assert requests[0].url.path == "/browser/navigate"

    @pytest.mark.asyncio
    async def test_unknown_action_raises(self):
        client, requests = recording_client()
        with pytest.raises(ValueError, match="Unknown tool server action"):
            await client.call("levitate")
        assert requests == []

    @pytest.mark.asyncio
    async def test_http_error_mentions_url(self):
        client, _ = recording_client(lambda request: httpx.Response(502))
        with pytest.raises(RuntimeError, match=r"502 .*URL: https://abc\.ngrok\.app"):
            await client.keypress("Enter")

    @pytest.mark.asyncio
    async def test_transport_error_becomes_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client, _ = recording_client(handler)
        with pytest.raises(ConnectionError, match="abc.ngrok.app"):
            await client.current_url("s-1")

    @pytest.mark.asyncio
    async def test_update_base_url(self):
        client, requests = recording_client(base_url=None)
        client.update_base_url("https://new.test/")

        await client.type_text("hi")

        assert client.base_url == "https://new.test"
        assert requests[0].url.host == "new.test"

    @pytest.mark.asyncio
    async def test_check_health_and_connection(self):
        def handler(request):
            if request.url.path == "/health":
                return httpx.Response(200, json={"status": "healthy"})
            return httpx.Response(200, json={"version": "1.4.0"})

        client, _ = recording_client(handler)

        assert await client.check_health()
        status = await client.test_connection()
        assert status == {"connected": True, "version": "1.4.0", "url_used": "https://abc.ngrok.app"}

    @pytest.mark.asyncio
    async def test_connection_failure_is_reported(self):
        client, _ = recording_client(lambda request: httpx.Response(404))

        assert not await client.check_health()
        status = await client.test_connection()
        assert not status["connected"]
        assert "404" in status["error"]


class TestAutomationSessionService:
    """Tests for the persisted session slot."""

    def test_resolve_prefers_explicit(self):
        sessions = AutomationSessionService()
        assert sessions.resolve() is None
        sessions.set("s-1")
        assert sessions.resolve() == "s-1"
        assert sessions.resolve("s-2") == "s-2"

    def test_capture_requires_session_id(self):
        sessions = AutomationSessionService()
        assert not sessions.capture_from_result({"success": True})
        assert not sessions.capture_from_result(None)
        assert sessions.capture_from_result({"success": True, "session_id": "s-7"})
        assert sessions.session_id == "s-7"

    def test_last_establish_wins_and_notifies(self):
        sessions = AutomationSessionService()
        seen: list[str | None] = []
        unsubscribe = sessions.subscribe(seen.append)

        sessions.set("s-1")
        sessions.set("s-2")
        sessions.clear()
        unsubscribe()
        sessions.set("s-3")

        assert seen == ["s-1", "s-2", None]

    def test_persists_across_instances(self, tmp_path):
        state_file = tmp_path / "state" / "session.json"

        AutomationSessionService(state_file).set("s-persisted")
        restored = AutomationSessionService(state_file)

        assert restored.session_id == "s-persisted"
        restored.clear()
        assert not state_file.exists()
        assert AutomationSessionService(state_file).session_id is None

    def test_unreadable_file_is_ignored(self, tmp_path, debug_log):
        state_file = tmp_path / "session.json"
        state_file.write_text("{not json")

        sessions = AutomationSessionService(state_file, debug_callback=debug_log)

        assert sessions.session_id is None
        assert debug_log.entries[-1][0] == "warning"

    @pytest.mark.asyncio
    async def test_end_session_stops_browser_then_clears(self):
        client, requests = recording_client()
        sessions = AutomationSessionService()
        sessions.set("s-1")

        await sessions.end_session(client)

        assert requests[0].url.path == "/browser/stop"
        assert json.loads(requests[0].content)["session_id"] == "s-1"
        assert sessions.session_id is None

    @pytest.mark.asyncio
    async def test_end_session_clears_even_when_stop_fails(self):
        client, _ = recording_client(lambda request: httpx.Response(500))
        sessions = AutomationSessionService()
        sessions.set("s-1")

        await sessions.end_session(client)

        assert not sessions.has_active_session
