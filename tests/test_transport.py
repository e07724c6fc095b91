"""Tests for the SSE and streamable-HTTP MCP channels."""

import json

import httpx
import pytest

from mcpshelf.mcp.transport import (
    MCPConnectionError,
    MCPProtocolError,
    RequestResponseChannel,
    StreamingChannel,
    iter_sse_events,
    open_channel,
)
from mcpshelf.registry.schema import TransportKind

TOOLS = [
    {"name": "search", "description": "Search docs", "inputSchema": {"type": "object"}},
    {"name": "fetch", "inputSchema": {"type": "object"}},
]


def _result_for(body, pages):
    """Answer initialize and tools/list the way an MCP server would."""
    if body["method"] == "initialize":
        return {
            "protocolVersion": body["params"]["protocolVersion"],
            "capabilities": {"tools": {}},
            "serverInfo": {"name": "fake", "version": "1.0"},
        }
    if body["method"] == "tools/list":
        cursor = (body.get("params") or {}).get("cursor")
        index = int(cursor) if cursor else 0
        result = {"tools": pages[index]}
        if index + 1 < len(pages):
            result["nextCursor"] = str(index + 1)
        return result
    raise AssertionError(f"unexpected method {body['method']}")


class FakeHTTPServer:
    """Streamable-HTTP MCP endpoint behind httpx.MockTransport."""

    def __init__(self, pages=None, sse_replies=False):
        self.pages = pages or [TOOLS]
        self.sse_replies = sse_replies
        self.requests = []

    def handler(self, request):
        body = json.loads(request.content)
        self.requests.append((body, request.headers))
        if "id" not in body:
            return httpx.Response(202)

        reply = {"jsonrpc": "2.0", "id": body["id"], "result": _result_for(body, self.pages)}
        headers = {"mcp-session-id": "session-42"}
        if self.sse_replies:
            headers["content-type"] = "text/event-stream"
            text = f"event: message\ndata: {json.dumps(reply)}\n\n"
            return httpx.Response(200, headers=headers, content=text.encode())
        return httpx.Response(200, headers=headers, json=reply)

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self.handler))


class FakeSSEServer:
    """Legacy SSE MCP endpoint: replies to POSTs arrive on the GET stream."""

    def __init__(self, pages=None):
        self.pages = pages or [TOOLS]
        self.pending = []
        self.posts = []
        self.stream_headers = None

    def events(self):
        yield b": connected\n\n"
        yield b"event: endpoint\ndata: /messages?session_id=abc\n\n"
        while self.pending:
            yield self.pending.pop(0)

    def handler(self, request):
        if request.method == "GET":
            self.stream_headers = request.headers
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=self.events()
            )

        body = json.loads(request.content)
        self.posts.append((str(request.url), body, request.headers))
        if "id" in body:
            reply = {"jsonrpc": "2.0", "id": body["id"], "result": _result_for(body, self.pages)}
            self.pending.append(f"event: message\ndata: {json.dumps(reply)}\n\n".encode())
        return httpx.Response(202)

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self.handler))


class AnnouncingSSEServer(FakeSSEServer):
    """SSE endpoint that announces a fixed message endpoint."""

    def __init__(self, endpoint, pages=None):
        super().__init__(pages)
        self.endpoint = endpoint

    def events(self):
        yield f"event: endpoint\ndata: {self.endpoint}\n\n".encode()
        while self.pending:
            yield self.pending.pop(0)


class TestSSEParsing:
    """Tests for iter_sse_events."""

    def test_events_and_multiline_data(self):
        lines = [
            ": keep-alive",
            "event: endpoint",
            "data: /messages",
            "",
            "data: line one",
            "data: line two",
            "",
        ]

        assert list(iter_sse_events(lines)) == [
            ("endpoint", "/messages"),
            ("message", "line one\nline two"),
        ]

    def test_trailing_event_without_blank_line(self):
        assert list(iter_sse_events(["data: {}"])) == [("message", "{}")]

    def test_line_endings_are_ignored(self):
        assert list(iter_sse_events(["data: x\r\n", "\n"])) == [("message", "x")]


class TestRequestResponseChannel:
    """Tests for the streamable-HTTP channel."""

    def test_initialize_and_list_tools(self):
        """Headers go on every call and the session id is echoed back."""
        server = FakeHTTPServer()
        channel = open_channel(
            "https://ex.com/mcp", {"Authorization": "Bearer t"}, "http", client=server.client()
        )

        assert isinstance(channel, RequestResponseChannel)
        with channel:
            info = channel.initialize()
            tools = channel.list_tools()

        assert info["serverInfo"]["name"] == "fake"
        assert [t["name"] for t in tools] == ["search", "fetch"]

        methods = [body["method"] for body, _ in server.requests]
        assert methods == ["initialize", "notifications/initialized", "tools/list"]
        assert all(h["authorization"] == "Bearer t" for _, h in server.requests)
        assert "mcp-session-id" not in server.requests[0][1]
        assert server.requests[2][1]["mcp-session-id"] == "session-42"

    def test_event_stream_replies(self):
        server = FakeHTTPServer(sse_replies=True)
        with open_channel("https://ex.com/mcp", {}, TransportKind.REQUEST_RESPONSE, client=server.client()) as channel:
            channel.initialize()
            assert [t["name"] for t in channel.list_tools()] == ["search", "fetch"]

    def test_pagination(self):
        """list_tools follows nextCursor until the last page."""
        server = FakeHTTPServer(pages=[TOOLS[:1], TOOLS[1:]])
        with open_channel("https://ex.com/mcp", {}, "http", client=server.client()) as channel:
            tools = channel.list_tools()

        assert [t["name"] for t in tools] == ["search", "fetch"]
        cursors = [(body.get("params") or {}).get("cursor") for body, _ in server.requests]
        assert cursors == [None, "1"]

    def test_http_error_is_connection_error(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(401)))
        with open_channel("https://ex.com/mcp", {}, "http", client=client) as channel:
            with pytest.raises(MCPConnectionError, match="401"):
                channel.initialize()

    def test_unreachable_is_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(refuse))
        with open_channel("https://ex.com/mcp", {}, "http", client=client) as channel:
            with pytest.raises(MCPConnectionError, match="refused"):
                channel.initialize()

    def test_jsonrpc_error_is_protocol_error(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "nope"}},
            )

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with open_channel("https://ex.com/mcp", {}, "http", client=client) as channel:
            with pytest.raises(MCPProtocolError, match="-32601"):
                channel.send("tools/list")

    def test_garbage_body_is_protocol_error(self):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>"))
        )
        with open_channel("https://ex.com/mcp", {}, "http", client=client) as channel:
            with pytest.raises(MCPProtocolError):
                channel.send("tools/list")

    def test_repeated_cursor_is_protocol_error(self):
        """A server that keeps handing out the same cursor cannot stall discovery."""
        requests = []

        def handler(request):
            body = json.loads(request.content)
            requests.append(body)
            result = {"tools": [TOOLS[0]], "nextCursor": "same"}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with open_channel("https://ex.com/mcp", {}, "http", client=client) as channel:
            with pytest.raises(MCPProtocolError, match="cursor"):
                channel.list_tools()

        assert len(requests) == 2

    def test_error_status_after_handshake_is_protocol_error(self):
        def handler(request):
            body = json.loads(request.content)
            if "id" not in body:
                return httpx.Response(202)
            if body["method"] == "tools/list":
                return httpx.Response(500)
            result = _result_for(body, [TOOLS])
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with open_channel("https://ex.com/mcp", {}, "http", client=client) as channel:
            channel.initialize()
            with pytest.raises(MCPProtocolError, match="500"):
                channel.list_tools()

    def test_non_list_tools_is_protocol_error(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"tools": "x"}})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with open_channel("https://ex.com/mcp", {}, "http", client=client) as channel:
            with pytest.raises(MCPProtocolError):
                channel.list_tools()


class TestStreamingChannel:
    """Tests for the SSE channel."""

    def test_handshake_and_list_tools(self):
        """Messages are posted to the announced endpoint and answered on the stream."""
        server = FakeSSEServer()
        channel = open_channel(
            "https://ex.com/sse", {"X-Api-Key": "k"}, "sse", client=server.client()
        )

        assert isinstance(channel, StreamingChannel)
        assert channel.endpoint == "https://ex.com/messages?session_id=abc"
        with channel:
            channel.initialize()
            tools = channel.list_tools()

        assert [t["name"] for t in tools] == ["search", "fetch"]
        assert server.stream_headers["x-api-key"] == "k"
        assert server.stream_headers["accept"] == "text/event-stream"
        assert [body["method"] for _, body, _ in server.posts] == [
            "initialize",
            "notifications/initialized",
            "tools/list",
        ]
        assert all(url == channel.endpoint for url, _, _ in server.posts)
        assert all(h["x-api-key"] == "k" for _, _, h in server.posts)

    def test_rejected_handshake(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(403)))
        with pytest.raises(MCPConnectionError, match="403"):
            open_channel("https://ex.com/sse", {}, "sse", client=client)

    def test_stream_without_endpoint(self):
        client = httpx.Client(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(
                    200, headers={"content-type": "text/event-stream"}, content=b": hello\n\n"
                )
            )
        )
        with pytest.raises(MCPConnectionError, match="endpoint"):
            open_channel("https://ex.com/sse", {}, "sse", client=client)

    def test_absolute_same_origin_endpoint(self):
        server = AnnouncingSSEServer("https://ex.com/rpc/messages")
        with open_channel("https://ex.com/sse", {}, "sse", client=server.client()) as channel:
            assert channel.endpoint == "https://ex.com/rpc/messages"
            channel.initialize()

    @pytest.mark.parametrize(
        "endpoint",
        [
            "https://attacker.example/collect",
            "http://ex.com/messages",
            "https://ex.com:8443/messages",
            "//attacker.example/collect",
        ],
    )
    def test_cross_origin_endpoint_is_rejected(self, endpoint):
        """Provider credentials are never posted to another origin."""
        server = AnnouncingSSEServer(endpoint)

        with pytest.raises(MCPConnectionError, match="origin"):
            open_channel(
                "https://ex.com/sse", {"Authorization": "Bearer secret"}, "sse", client=server.client()
            )

        assert server.posts == []

    def test_malformed_endpoint_is_protocol_error(self):
        server = AnnouncingSSEServer("http://[::1")

        with pytest.raises(MCPProtocolError, match="invalid SSE endpoint"):
            open_channel("https://ex.com/sse", {}, "sse", client=server.client())

        assert server.posts == []

    def test_stream_closing_before_reply(self):
        """A reply that never arrives is a connection failure, not a hang."""

        class SilentSSEServer(FakeSSEServer):
            def handler(self, request):
                if request.method == "POST":
                    return httpx.Response(202)
                return super().handler(request)

        server = SilentSSEServer()
        with open_channel("https://ex.com/sse", {}, "sse", client=server.client()) as channel:
            with pytest.raises(MCPConnectionError, match="closed"):
                channel.send("tools/list")
