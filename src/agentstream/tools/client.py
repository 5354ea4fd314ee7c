"""HTTP client for the local automation tool server.

The tool server URL is user-configured (usually a tunnel). There is never a
localhost fallback: an unconfigured client refuses to send anything.
"""

from typing import Any

import httpx

from ..config import TOOL_SERVER_TIMEOUT

# Browser viewport used by the tool server for coordinate mapping
VIEWPORT_WIDTH = 1260
VIEWPORT_HEIGHT = 700

COMMON_HEADERS = {
    "Accept": "application/json",
    "ngrok-skip-browser-warning": "true",
}

# action -> (HTTP method, endpoint)
ACTION_ENDPOINTS: dict[str, tuple[str, str]] = {
    "browser_start": ("POST", "/browser/start"),
    "browser_stop": ("POST", "/browser/stop"),
    "navigate": ("POST", "/browser/navigate"),
    "current_url": ("GET", "/browser/current_url"),
    "dom_tree": ("GET", "/browser/dom/tree"),
    "snapshot": ("GET", "/browser/snapshot"),
    "element_rect": ("POST", "/browser/dom/element_rect"),
    "screenshot": ("POST", "/screenshot"),
    "click": ("POST", "/click"),
    "click_by_ref": ("POST", "/click_by_ref"),
    "type": ("POST", "/type"),
    "scroll": ("POST", "/scroll"),
    "keypress": ("POST", "/keypress"),
    "trace_start": ("POST", "/browser/tracing/start"),
    "trace_stop": ("POST", "/browser/tracing/stop"),
    "console_messages": ("GET", "/browser/console"),
    "network_requests": ("GET", "/browser/network"),
    "verify_element": ("POST", "/browser/verify/element"),
    "verify_text": ("POST", "/browser/verify/text"),
    "verify_url": ("POST", "/browser/verify/url"),
    "verify_title": ("POST", "/browser/verify/title"),
}

ACTION_ALIASES = {
    "browser_navigate": "navigate",
    "browser_screenshot": "screenshot",
    "browser_snapshot": "snapshot",
    "type_text": "type",
}

# Defaults merged under caller params for each action
ACTION_DEFAULTS: dict[str, dict[str, Any]] = {
    "browser_start": {
        "headless": False,
        "viewport_width": VIEWPORT_WIDTH,
        "viewport_height": VIEWPORT_HEIGHT,
    },
    "screenshot": {"scope": "browser"},
    "click": {"scope": "browser", "coordinate_origin": "viewport", "click_type": "single"},
    "click_by_ref": {"click_type": "single"},
    "type": {"scope": "browser", "method": "clipboard"},
    "scroll": {"scope": "browser", "amount": 500},
    "keypress": {"scope": "browser"},
    "snapshot": {"format": "text"},
}


def normalize_tool_server_url(value: str | None) -> str:
    """Trim whitespace and trailing slashes."""
    if not value:
        return ""
    return value.strip().rstrip("/")


def canonical_action(action: str) -> str:
    return ACTION_ALIASES.get(action, action)


class ToolServerClient:
    """Async JSON client for the automation tool server.

    Hidden design decisions:
    - Endpoint per action
    - Default parameters per action
    - Error messages that carry the URL used
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = TOOL_SERVER_TIMEOUT,
        **client_kwargs: Any
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Tool server URL (None leaves the client unconfigured)
            timeout: Per-request timeout in seconds
            **client_kwargs: Additional kwargs for httpx.AsyncClient
        """
        self._base_url = normalize_tool_server_url(base_url)
        self._timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, headers=COMMON_HEADERS, **client_kwargs)

    @property
    def base_url(self) -> str | None:
        return self._base_url or None

    def is_configured(self) -> bool:
        return bool(self._base_url)

    def update_base_url(self, value: str | None) -> None:
        self._base_url = normalize_tool_server_url(value)

    def _require_base_url(self) -> str:
        if not self._base_url:
            raise RuntimeError("Tool server not configured. Set TOOL_SERVER_URL to your tunnel URL.")
        return self._base_url

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        base_url = self._require_base_url()
        url = f"{base_url}{endpoint}"
        try:
            response = await self._client.request(
                method,
                url,
                json=body if method != "GET" else None,
                params={k: v for k, v in (query or {}).items() if v is not None},
                timeout=timeout or self._timeout,
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Tool server timeout (URL: {base_url}), check that the tunnel is running") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"{e} (URL: {base_url})") from e

        if response.is_error:
            raise RuntimeError(
                f"Tool server error: {response.status_code} {response.reason_phrase} (URL: {base_url})"
            )
        data = response.json()
        return data if isinstance(data, dict) else {"success": True, "data": data}

    async def call(
        self,
        action: str,
        params: dict[str, Any] | None = None,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Invoke one tool server action.

        Args:
            action: Action name (see ACTION_ENDPOINTS)
            params: Action parameters, merged over the action defaults
            session_id: Browser session to act on
            timeout: Override for the request timeout

        Returns:
            The raw JSON response (``{success, ...}``)

        Raises:
            ValueError: If the action is unknown
            RuntimeError: If the client is unconfigured or the server errors
            TimeoutError: If the request times out
        """
        name = canonical_action(action)
        if name not in ACTION_ENDPOINTS:
            raise ValueError(f"Unknown tool server action: {action}")
        method, endpoint = ACTION_ENDPOINTS[name]

        payload: dict[str, Any] = {**ACTION_DEFAULTS.get(name, {}), **(params or {})}
        payload.pop("action", None)
        payload.pop("session_id", None)
        if session_id is not None:
            payload["session_id"] = session_id

        if method == "GET":
            return await self._request(method, endpoint, query=payload, timeout=timeout)
        return await self._request(method, endpoint, body=payload, timeout=timeout)

    async def test_connection(self) -> dict[str, Any]:
        """Probe ``/status`` without raising."""
        if not self._base_url:
            return {"connected": False, "error": "Tool server not configured", "url_used": None}
        try:
            data = await self._request("GET", "/status")
        except (RuntimeError, TimeoutError, ConnectionError) as e:
            return {"connected": False, "error": str(e), "url_used": self._base_url}
        return {"connected": True, "version": data.get("version"), "url_used": self._base_url}

    async def check_health(self) -> bool:
        try:
            result = await self._request("GET", "/health")
        except (RuntimeError, TimeoutError, ConnectionError):
            return False
        return result.get("status") == "healthy"

    async def browser_start(self, start_url: str, **options: Any) -> dict[str, Any]:
        return await self.call("browser_start", {"start_url": start_url, **options})

    async def browser_stop(self, session_id: str) -> dict[str, Any]:
        return await self.call("browser_stop", session_id=session_id)

    async def browser_navigate(self, session_id: str, url: str) -> dict[str, Any]:
        return await self.call("navigate", {"url": url}, session_id=session_id)

    async def current_url(self, session_id: str) -> dict[str, Any]:
        return await self.call("current_url", session_id=session_id)

    async def dom_tree(self, session_id: str) -> dict[str, Any]:
        return await self.call("dom_tree", session_id=session_id)

    async def snapshot(self, session_id: str, timeout: float | None = None) -> dict[str, Any]:
        """Text snapshot of interactive elements with ref ids."""
        return await self.call("snapshot", session_id=session_id, timeout=timeout)

    async def element_rect(self, session_id: str, **locator: Any) -> dict[str, Any]:
        return await self.call("element_rect", locator, session_id=session_id)

    async def screenshot(self, scope: str = "browser", session_id: str | None = None, **options: Any) -> dict[str, Any]:
        return await self.call("screenshot", {"scope": scope, **options}, session_id=session_id)

    async def click(self, x: int, y: int, session_id: str | None = None, **options: Any) -> dict[str, Any]:
        return await self.call("click", {"x": x, "y": y, **options}, session_id=session_id)

    async def click_by_ref(self, session_id: str, ref: str, **options: Any) -> dict[str, Any]:
        return await self.call("click_by_ref", {"ref": ref, **options}, session_id=session_id)

    async def type_text(self, text: str, session_id: str | None = None, **options: Any) -> dict[str, Any]:
        return await self.call("type", {"text": text, **options}, session_id=session_id)

    async def scroll(self, direction: str, session_id: str | None = None, **options: Any) -> dict[str, Any]:
        return await self.call("scroll", {"direction": direction, **options}, session_id=session_id)

    async def keypress(self, keys: str, session_id: str | None = None, **options: Any) -> dict[str, Any]:
        return await self.call("keypress", {"keys": keys, **options}, session_id=session_id)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ToolServerClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
