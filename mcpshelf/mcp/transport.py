"""MCP server communication over SSE and streamable-HTTP channels."""

from __future__ import annotations

import json
import logging
from contextlib import ExitStack
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Type

import httpx

from mcpshelf.registry.schema import TransportKind
from mcpshelf.validation.config import TransportConfig

logger = logging.getLogger(__name__)


class MCPTransportError(Exception):
    """Raised when MCP transport communication fails."""


class MCPConnectionError(MCPTransportError):
    """The remote could not be reached, or it rejected the connection."""


class MCPProtocolError(MCPTransportError):
    """The remote answered, but not with something we can use."""


def iter_sse_events(lines: Iterable[str]) -> Iterator[Tuple[str, str]]:
    """
    Parse ``text/event-stream`` lines into ``(event, data)`` pairs.

    Events are dispatched on the blank line that terminates them, so a
    caller that stops iterating after an event has not consumed anything
    beyond it.
    """
    event, data = "message", []
    for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue  # comment / keep-alive
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


def _decode(raw: str) -> Dict[str, Any]:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MCPProtocolError(f"Invalid JSON from MCP server: {exc}")
    if not isinstance(message, dict):
        raise MCPProtocolError("MCP server sent a non-object JSON-RPC message")
    return message


class MCPChannel:
    """
    A JSON-RPC session with one MCP server.

    Subclasses decide how a message travels (``_exchange``); everything
    above that, including the MCP handshake and tool listing, is shared.
    Channels are context managers and close their HTTP client on exit.
    """

    kind: TransportKind

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        settings: Optional[TransportConfig] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.settings = settings or TransportConfig()
        self._client = client or httpx.Client(timeout=self.settings.timeout)
        self._owns_client = client is None
        self._request_id = 0
        self._initialized = False

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def open(self) -> "MCPChannel":
        """Establish the channel. Raises ``MCPConnectionError`` on failure."""
        return self

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "MCPChannel":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    def _exchange(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Deliver one message; return the matching response for requests."""
        raise NotImplementedError

    def _post(self, target: str, message: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        try:
            response = self._client.post(target, json=message, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            text = f"MCP server rejected {message.get('method')}: HTTP {exc.response.status_code}"
            # After the handshake the server is reachable; a bad status is a bad answer.
            if self._initialized:
                raise MCPProtocolError(text)
            raise MCPConnectionError(text)
        except httpx.HTTPError as exc:
            raise MCPConnectionError(f"MCP transport error: {exc}")
        return response

    def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a JSON-RPC request and return the result."""
        self._request_id += 1
        request: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
        }
        if params:
            request["params"] = params

        response = self._exchange(request) or {}

        if "error" in response:
            err = response["error"]
            if isinstance(err, dict):
                raise MCPProtocolError(f"MCP error {err.get('code')}: {err.get('message')}")
            raise MCPProtocolError(f"MCP error: {err}")

        result = response.get("result", {})
        if not isinstance(result, dict):
            raise MCPProtocolError(f"Malformed result for {method}")
        return result

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no response expected)."""
        notification: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params:
            notification["params"] = params
        self._exchange(notification)

    # ── MCP Protocol ──────────────────────────────────────────────────────

    def initialize(self) -> Dict[str, Any]:
        """Perform MCP initialize handshake."""
        result = self.send("initialize", {
            "protocolVersion": self.settings.protocol_version,
            "capabilities": {},
            "clientInfo": {
                "name": self.settings.client_name,
                "version": self.settings.client_version,
            },
        })
        self._initialized = True
        self.notify("notifications/initialized")
        return result

    def list_tools(self) -> List[Dict[str, Any]]:
        """
        Fetch the full tool list, following pagination cursors.

        A cursor the server already handed out means it is looping, which
        raises ``MCPProtocolError`` instead of paginating forever.
        """
        tools: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        seen = set()
        while True:
            result = self.send("tools/list", {"cursor": cursor} if cursor else None)
            page = result.get("tools", [])
            if not isinstance(page, list):
                raise MCPProtocolError("tools/list returned a non-list 'tools' field")
            tools.extend(page)
            cursor = result.get("nextCursor")
            if not cursor:
                return tools
            cursor = str(cursor)
            if cursor in seen:
                raise MCPProtocolError(f"tools/list repeated pagination cursor {cursor!r}")
            seen.add(cursor)


class StreamingChannel(MCPChannel):
    """
    SSE transport: a long-lived GET stream for server messages, plus POSTs
    to the endpoint the server announces for client messages.

    Provider headers go on the stream and on every POST.
    """

    kind = TransportKind.STREAMING

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._stack = ExitStack()
        self._events: Optional[Iterator[Tuple[str, str]]] = None
        self.endpoint: Optional[str] = None

    def open(self) -> "StreamingChannel":
        headers = {**self.headers, "Accept": "text/event-stream"}
        try:
            response = self._stack.enter_context(self._client.stream("GET", self.url, headers=headers))
            response.raise_for_status()
            self._events = iter_sse_events(response.iter_lines())
            for event, data in self._events:
                if event == "endpoint":
                    self.endpoint = self._resolve_endpoint(data.strip())
                    logger.debug("SSE endpoint for %s is %s", self.url, self.endpoint)
                    return self
        except httpx.HTTPStatusError as exc:
            raise MCPConnectionError(
                f"MCP server rejected SSE connection: HTTP {exc.response.status_code}"
            )
        except httpx.HTTPError as exc:
            raise MCPConnectionError(f"Could not connect to {self.url}: {exc}")
        raise MCPConnectionError(f"SSE stream from {self.url} closed before announcing an endpoint")

    def _resolve_endpoint(self, data: str) -> str:
        """Resolve the announced endpoint against ``url``; it must share its origin."""
        try:
            base = httpx.URL(self.url)
            endpoint = base.join(data)
        except httpx.InvalidURL as exc:
            raise MCPProtocolError(f"MCP server announced an invalid SSE endpoint {data!r}: {exc}")
        if (endpoint.scheme, endpoint.host, endpoint.port) != (base.scheme, base.host, base.port):
            raise MCPConnectionError("Endpoint origin does not match connection origin")
        return str(endpoint)

    def close(self) -> None:
        self._stack.close()
        super().close()

    def _exchange(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self._events is None or self.endpoint is None:
            raise MCPConnectionError("SSE channel is not open")

        self._post(self.endpoint, message, self.headers)
        if "id" not in message:
            return None

        try:
            for event, data in self._events:
                if event != "message":
                    continue
                reply = _decode(data)
                if reply.get("id") == message["id"]:
                    return reply
        except httpx.HTTPError as exc:
            raise MCPConnectionError(f"SSE stream error: {exc}")
        raise MCPConnectionError(f"SSE stream closed before a response to {message['method']}")


class RequestResponseChannel(MCPChannel):
    """
    Streamable-HTTP transport: every message is a POST to ``url``.

    Replies come back as JSON or as a short event stream. The session id the
    server hands out is echoed on later requests.
    """

    kind = TransportKind.REQUEST_RESPONSE

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.session_id: Optional[str] = None

    def _exchange(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        headers = {**self.headers, "Accept": "application/json, text/event-stream"}
        if self.session_id:
            headers["Mcp-Session-Id"] = self.session_id

        response = self._post(self.url, message, headers)
        self.session_id = response.headers.get("mcp-session-id", self.session_id)
        if "id" not in message:
            return None

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("text/event-stream"):
            for _event, data in iter_sse_events(response.text.splitlines()):
                reply = _decode(data)
                if reply.get("id") == message["id"]:
                    return reply
            raise MCPProtocolError(f"No response to {message['method']} in event stream")
        return _decode(response.text)


_CHANNEL_TYPES: Dict[TransportKind, Type[MCPChannel]] = {
    TransportKind.STREAMING: StreamingChannel,
    TransportKind.REQUEST_RESPONSE: RequestResponseChannel,
}


def open_channel(
    url: str,
    headers: Optional[Dict[str, str]],
    transport_kind: Any,
    settings: Optional[TransportConfig] = None,
    client: Optional[httpx.Client] = None,
) -> MCPChannel:
    """
    Build and open the channel for ``transport_kind``.

    This is the only place that looks at the transport kind; everything
    above works against ``MCPChannel``.
    """
    channel_cls = _CHANNEL_TYPES[TransportKind.parse(transport_kind)]
    channel = channel_cls(url, headers, settings=settings, client=client)
    try:
        return channel.open()
    except MCPTransportError:
        channel.close()
        raise
