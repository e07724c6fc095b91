"""
MCPShelf validation module.

This module provides configuration loading and schema enforcement.
"""

from mcpshelf.validation.config import Config, ConfigError, ShelfConfig, TransportConfig

__all__ = ["Config", "ConfigError", "ShelfConfig", "TransportConfig"]
