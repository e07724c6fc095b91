"""Coordinator - ties provider configuration changes to the tool cache."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from mcpshelf.core.cache import ToolCache
from mcpshelf.mcp.discovery import ToolDiscoveryClient
from mcpshelf.registry.providers import (
    ProviderNotFoundError,
    ProviderRegistry,
    ProviderValidationError,
)
from mcpshelf.registry.schema import (
    ChatServerPayload,
    Provider,
    Tool,
    TransportKind,
    clean_headers,
)
from mcpshelf.registry.store import FileBlobStore
from mcpshelf.validation.config import Config

logger = logging.getLogger(__name__)


class Outcome(BaseModel):
    """Result of a user-triggered action, with a message fit for display."""

    success: bool
    message: str
    provider: Optional[Provider] = None
    tools: List[Tool] = Field(default_factory=list)
    cached: bool = False


class ProviderCoordinator:
    """
    The action surface used by the CLI and by embedding applications.

    Registry mutations invalidate the cache entries they make stale, and
    ``expand`` serves tools from the cache before asking the provider.
    Every action resolves to an ``Outcome``; validation, lookup and
    discovery failures become failed outcomes instead of exceptions.

    Example:
        >>> coordinator = ProviderCoordinator.from_config(Config.load())
        >>> outcome = coordinator.register("Docs", "https://ex.com/mcp", "http")
        >>> coordinator.expand(outcome.provider.id).tools
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: Optional[ToolCache] = None,
        discovery: Optional[ToolDiscoveryClient] = None,
    ):
        self.registry = registry
        self.cache = cache if cache is not None else ToolCache()
        self.discovery = discovery if discovery is not None else ToolDiscoveryClient()

    @classmethod
    def from_config(cls, config: Config) -> "ProviderCoordinator":
        """Wire the default file store, cache and discovery client from config."""
        settings = config.merged
        store = FileBlobStore(settings.storage.directory.expanduser())
        return cls(
            registry=ProviderRegistry(store, slot=settings.storage.slot),
            cache=ToolCache(ttl=timedelta(seconds=settings.cache.ttl_seconds)),
            discovery=ToolDiscoveryClient(settings.transport),
        )

    # ── Configuration actions ─────────────────────────────────────────────

    def list(self) -> List[Provider]:
        return self.registry.list()

    def register(
        self,
        name: str,
        url: str,
        transport_kind: Any = TransportKind.STREAMING,
        headers: Optional[Iterable[Any]] = None,
    ) -> Outcome:
        try:
            provider = self.registry.register(name, url, transport_kind, headers)
        except ProviderValidationError as e:
            return Outcome(success=False, message=f"Failed to register MCP server: {e}")
        return Outcome(
            success=True,
            message=f'MCP server "{provider.name}" registered successfully',
            provider=provider,
        )

    def update(
        self,
        provider_id: str,
        name: str,
        url: str,
        transport_kind: Any = TransportKind.STREAMING,
        headers: Optional[Iterable[Any]] = None,
    ) -> Outcome:
        try:
            previous = self.registry.get(provider_id)
            name, url, kind = self.registry.validate_fields(name, url, transport_kind)
        except ProviderNotFoundError as e:
            return Outcome(success=False, message=f"Failed to update MCP server: {e}")
        except ProviderValidationError as e:
            return Outcome(
                success=False,
                message=f'Failed to update MCP server "{previous.name}": {e}',
            )

        headers = clean_headers(headers)
        candidate = previous.model_copy(update={"url": url, "transport_kind": kind, "headers": headers})
        if candidate.connection_key() != previous.connection_key():
            # Key by the old URL: the cached tools were fetched through it.
            if self.cache.invalidate(previous.url):
                logger.debug("Invalidated cached tools for %s", previous.url)

        provider = self.registry.update(provider_id, name, url, kind, headers)
        return Outcome(
            success=True,
            message=f'MCP server "{provider.name}" updated successfully',
            provider=provider,
        )

    def remove(self, provider_id: str, name: Optional[str] = None) -> Outcome:
        """Delete a provider. Deleting an unknown id still succeeds."""
        removed = self.registry.remove(provider_id)
        if removed is not None:
            self.cache.invalidate(removed.url)
            name = removed.name
        label = name or provider_id
        return Outcome(
            success=True,
            message=f'MCP server "{label}" deleted successfully',
            provider=removed,
        )

    # ── Tool discovery ────────────────────────────────────────────────────

    def expand(self, provider_id: str) -> Outcome:
        """Return the provider's tools, from cache when fresh."""
        try:
            provider = self.registry.get(provider_id)
        except ProviderNotFoundError as e:
            return Outcome(success=False, message=f"Failed to fetch tools: {e}")

        cached = self.cache.get(provider.url)
        if cached is not None:
            return Outcome(
                success=True,
                message=f'{len(cached)} tools available from "{provider.name}"',
                provider=provider,
                tools=cached,
                cached=True,
            )

        result = self.discovery.discover(provider)
        if not result.success:
            return Outcome(
                success=False,
                message=f'Failed to fetch tools from "{provider.name}": {result.error}',
                provider=provider,
            )

        self.cache.put(provider.url, result.tools)
        return Outcome(
            success=True,
            message=f'{len(result.tools)} tools available from "{provider.name}"',
            provider=provider,
            tools=result.tools,
        )

    def refresh(self, provider_id: str) -> Outcome:
        """Drop any cached tools for the provider, then expand it."""
        if provider_id in self.registry:
            self.cache.invalidate(self.registry.get(provider_id).url)
        return self.expand(provider_id)

    # ── Chat integration ──────────────────────────────────────────────────

    def chat_payload(self) -> List[Dict[str, Any]]:
        """Providers in the ``mcpServers`` shape the chat pipeline accepts."""
        return [ChatServerPayload.from_provider(p).model_dump() for p in self.registry.list()]
