"""
MCPShelf Configuration - Configuration loading and validation.

This module provides the Config class for managing MCPShelf configuration
from both global (~/.mcpshelf/config.yaml) and local (.mcpshelf/config.yaml)
sources.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class StorageConfig(BaseModel):
    """Where the provider list is persisted."""

    directory: Path = Field(default_factory=lambda: Path.home() / ".mcpshelf" / "store")
    slot: str = "mcp-servers"


class CacheConfig(BaseModel):
    """Configuration for the discovery result cache."""

    ttl_seconds: int = Field(default=3600, gt=0)


class TransportConfig(BaseModel):
    """Settings shared by both MCP channels."""

    timeout: float = Field(default=30.0, gt=0)
    client_name: str = "mcpshelf"
    client_version: str = "0.3.0"
    protocol_version: str = "2024-11-05"


class ShelfConfig(BaseModel):
    """Complete MCPShelf configuration schema."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)


class Config:
    """
    MCPShelf configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.mcpshelf/config.yaml
    - Local: .mcpshelf/config.yaml (project-specific)

    Local configuration overrides global configuration.

    Example:
        >>> config = Config.load()
        >>> config.merged.cache.ttl_seconds
        3600
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".mcpshelf"
    LOCAL_CONFIG_DIR = Path(".mcpshelf")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._merged: Optional[ShelfConfig] = None

    @classmethod
    def load(cls) -> "Config":
        """
        Load configuration from default locations.

        Returns:
            Config instance with loaded configuration.
        """
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_config = cls._load_yaml(cls._find_local_config())

        return cls(global_config=global_config, local_config=local_config)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        return self._deep_merge(self._global_config.copy(), self._local_config)

    @property
    def merged(self) -> ShelfConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = ShelfConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def set_store_directory(self, directory: Path) -> None:
        """Point storage at another directory for this process only."""
        self._local_config.setdefault("storage", {})["directory"] = str(directory)
        self._merged = None  # Reset cache

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @classmethod
    def create_default_global(cls) -> Path:
        """Create default global configuration file."""
        config_dir = cls.GLOBAL_CONFIG_DIR
        config_file = config_dir / "config.yaml"

        if config_file.exists():
            return config_file

        config_dir.mkdir(parents=True, exist_ok=True)

        default_config = {
            "storage": {
                "directory": str(config_dir / "store"),
                "slot": "mcp-servers",
            },
            "cache": {"ttl_seconds": 3600},
            "transport": {"timeout": 30},
        }

        with open(config_file, "w") as f:
            yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

        return config_file
