"""
MCPShelf - Client-side registry for remote MCP tool providers.

Register named MCP endpoints, persist them, discover the tools each one
exposes and keep the results in a short-lived in-process cache.

Architecture:
- registry/   providers, their persisted records and blob stores
- mcp/        SSE and streamable-HTTP channels, tool discovery
- core/       tool cache and the coordinator that ties them together
- cli/        click commands and an interactive shell
"""

__version__ = "0.3.0"
__license__ = "Apache-2.0"

from mcpshelf.core.cache import ToolCache
from mcpshelf.core.coordinator import Outcome, ProviderCoordinator
from mcpshelf.mcp.discovery import ToolDiscoveryClient
from mcpshelf.registry.providers import ProviderRegistry
from mcpshelf.registry.schema import Provider, RequestHeader, Tool, TransportKind

__all__ = [
    "Outcome",
    "Provider",
    "ProviderCoordinator",
    "ProviderRegistry",
    "RequestHeader",
    "Tool",
    "ToolCache",
    "ToolDiscoveryClient",
    "TransportKind",
    "__version__",
]
