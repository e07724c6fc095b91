"""
MCPShelf registry module.

Configured MCP providers, their persisted record shape and the blob stores
they are saved to.
"""

from mcpshelf.registry.providers import (
    ProviderNotFoundError,
    ProviderRegistry,
    ProviderValidationError,
)
from mcpshelf.registry.schema import Provider, RequestHeader, Tool, TransportKind
from mcpshelf.registry.store import BlobStore, FileBlobStore, MemoryBlobStore, StorageError

__all__ = [
    "BlobStore",
    "FileBlobStore",
    "MemoryBlobStore",
    "Provider",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "ProviderValidationError",
    "RequestHeader",
    "StorageError",
    "Tool",
    "TransportKind",
]
