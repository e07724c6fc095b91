"""Tool discovery - asks a provider which tools it exposes."""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from mcpshelf.mcp.transport import MCPChannel, MCPProtocolError, MCPTransportError, open_channel
from mcpshelf.registry.schema import NO_DESCRIPTION, DiscoveryResult, Provider, Tool
from mcpshelf.validation.config import TransportConfig

logger = logging.getLogger(__name__)

ChannelFactory = Callable[..., MCPChannel]


class DiscoveryError(Exception):
    """Discovery failed; wraps the underlying connection or protocol error."""

    def __init__(self, message: str, cause: Optional[MCPTransportError] = None):
        super().__init__(message)
        self.cause = cause


def normalize_tools(raw: Any) -> List[Tool]:
    """
    Turn a remote tool catalog into ``Tool`` objects, keeping remote order.

    Accepts the MCP ``tools/list`` shape (a list of descriptors with a
    ``name``) as well as a mapping of tool name to descriptor.
    """
    if isinstance(raw, dict):
        items = [(name, descriptor) for name, descriptor in raw.items()]
    elif isinstance(raw, list):
        items = []
        for descriptor in raw:
            if not isinstance(descriptor, dict) or not descriptor.get("name"):
                raise MCPProtocolError(f"Tool descriptor without a name: {descriptor!r}")
            items.append((descriptor["name"], descriptor))
    else:
        raise MCPProtocolError(f"Unexpected tool catalog type: {type(raw).__name__}")

    tools: List[Tool] = []
    for name, descriptor in items:
        description = descriptor.get("description") if isinstance(descriptor, dict) else None
        tools.append(Tool(name=str(name), description=str(description) if description else NO_DESCRIPTION))
    return tools


class ToolDiscoveryClient:
    """
    Opens a channel to a provider and lists its tools.

    Stateless apart from configuration: caching is the caller's job.
    ``channel_factory`` defaults to ``open_channel`` and is the seam tests
    use to substitute a fake channel.
    """

    def __init__(
        self,
        settings: Optional[TransportConfig] = None,
        channel_factory: ChannelFactory = open_channel,
    ):
        self._settings = settings or TransportConfig()
        self._channel_factory = channel_factory

    def fetch_tools(self, provider: Provider) -> List[Tool]:
        """
        Discover tools, raising ``DiscoveryError`` on any failure.

        Parameters
        ----------
        provider : the provider whose url, headers and transport kind are used
        """
        logger.debug("Discovering tools at %s via %s", provider.url, provider.transport_kind.value)
        try:
            with self._channel_factory(
                provider.url,
                provider.header_map(),
                provider.transport_kind,
                settings=self._settings,
            ) as channel:
                channel.initialize()
                return normalize_tools(channel.list_tools())
        except MCPTransportError as exc:
            raise DiscoveryError(str(exc), cause=exc)

    def discover(self, provider: Provider) -> DiscoveryResult:
        """Discover tools and report the outcome instead of raising."""
        try:
            tools = self.fetch_tools(provider)
        except DiscoveryError as exc:
            logger.warning("Tool discovery failed for %s: %s", provider.url, exc)
            return DiscoveryResult(url=provider.url, success=False, error=str(exc))
        return DiscoveryResult(url=provider.url, success=True, tools=tools)
