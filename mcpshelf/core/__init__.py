"""
MCPShelf core module.

The tool cache and the coordinator that keeps it consistent with the
provider registry.
"""

from mcpshelf.core.cache import ToolCache
from mcpshelf.core.coordinator import Outcome, ProviderCoordinator

__all__ = ["Outcome", "ProviderCoordinator", "ToolCache"]
