"""
MCPShelf MCP client layer.

Two channels speak MCP JSON-RPC to remote servers:

SSE (streaming):       GET stream <-- server messages,  POST --> announced endpoint
HTTP (request/resp.):  POST --> url, reply as JSON or a short event stream

``open_channel`` picks one from the provider's transport kind and
``ToolDiscoveryClient`` uses it to list the server's tools.
"""

from mcpshelf.mcp.discovery import DiscoveryError, ToolDiscoveryClient, normalize_tools
from mcpshelf.mcp.transport import (
    MCPChannel,
    MCPConnectionError,
    MCPProtocolError,
    MCPTransportError,
    RequestResponseChannel,
    StreamingChannel,
    open_channel,
)

__all__ = [
    "DiscoveryError",
    "MCPChannel",
    "MCPConnectionError",
    "MCPProtocolError",
    "MCPTransportError",
    "RequestResponseChannel",
    "StreamingChannel",
    "ToolDiscoveryClient",
    "normalize_tools",
    "open_channel",
]
