"""Provider registry - the source of truth for configured MCP servers."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from mcpshelf.registry.schema import (
    Provider,
    TransportKind,
    clean_headers,
    is_absolute_url,
    migrate_record,
)
from mcpshelf.registry.store import BlobStore, StorageError

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "mcp-servers"


class ProviderValidationError(Exception):
    """Raised when a provider's name or URL is unusable."""


class ProviderNotFoundError(Exception):
    """Raised when an operation references an unknown provider id."""


class ProviderRegistry:
    """
    In-memory list of providers, shadowed to a blob store.

    The in-memory list is authoritative. The store is read once in
    ``__init__`` and rewritten in full after every mutation; write failures
    are logged and never undo the mutation.
    """

    def __init__(self, store: BlobStore, slot: str = DEFAULT_SLOT):
        self._store = store
        self._slot = slot
        self._providers: List[Provider] = self._load()

    # ── Queries ───────────────────────────────────────────────────────────

    def list(self) -> List[Provider]:
        """Providers in insertion order. Returns copies."""
        return [p.model_copy(deep=True) for p in self._providers]

    def get(self, provider_id: str) -> Provider:
        return self._find(provider_id).model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return any(p.id == provider_id for p in self._providers)

    # ── Mutations ─────────────────────────────────────────────────────────

    def register(
        self,
        name: str,
        url: str,
        transport_kind: Any = TransportKind.STREAMING,
        headers: Optional[Iterable[Any]] = None,
    ) -> Provider:
        """Validate, assign a fresh id, append and persist."""
        name, url, kind = self.validate_fields(name, url, transport_kind)
        provider = Provider(
            id=self._new_id(),
            name=name,
            url=url,
            transport_kind=kind,
            headers=clean_headers(headers),
        )
        self._providers.append(provider)
        logger.info("Registered provider %s (%s)", provider.name, provider.id)
        self._persist()
        return provider.model_copy(deep=True)

    def update(
        self,
        provider_id: str,
        name: str,
        url: str,
        transport_kind: Any = TransportKind.STREAMING,
        headers: Optional[Iterable[Any]] = None,
    ) -> Provider:
        """Replace every mutable field of an existing provider, keeping its id."""
        provider = self._find(provider_id)
        name, url, kind = self.validate_fields(name, url, transport_kind)
        provider.name = name
        provider.url = url
        provider.transport_kind = kind
        provider.headers = clean_headers(headers)
        logger.info("Updated provider %s (%s)", provider.name, provider.id)
        self._persist()
        return provider.model_copy(deep=True)

    def remove(self, provider_id: str) -> Optional[Provider]:
        """
        Delete a provider. Unknown ids are ignored.

        Returns the removed provider, or None if there was nothing to remove.
        """
        for index, provider in enumerate(self._providers):
            if provider.id == provider_id:
                del self._providers[index]
                logger.info("Removed provider %s (%s)", provider.name, provider.id)
                self._persist()
                return provider
        return None

    # ── Validation ────────────────────────────────────────────────────────

    @staticmethod
    def validate_fields(name: str, url: str, transport_kind: Any) -> tuple:
        """Check name, URL and transport kind. Returns them normalized."""
        name = (name or "").strip()
        url = (url or "").strip()
        if not name:
            raise ProviderValidationError("Provider name must not be empty")
        if not url:
            raise ProviderValidationError("Provider URL must not be empty")
        if not is_absolute_url(url):
            raise ProviderValidationError(f"Provider URL must be an absolute http(s) URL: {url}")
        try:
            kind = TransportKind.parse(transport_kind)
        except ValueError:
            raise ProviderValidationError(
                f"Unknown transport type: {transport_kind!r} (expected 'sse' or 'http')"
            )
        return name, url, kind

    # ── Persistence ───────────────────────────────────────────────────────

    def _load(self) -> List[Provider]:
        try:
            blob = self._store.read(self._slot)
        except StorageError as e:
            logger.warning("Could not read saved providers: %s", e)
            return []
        if not blob:
            return []

        try:
            records = yaml.safe_load(blob)
        except yaml.YAMLError as e:
            logger.warning("Saved providers are unreadable, starting empty: %s", e)
            return []
        if not isinstance(records, list):
            logger.warning("Saved providers are not a list, starting empty")
            return []

        providers: List[Provider] = []
        seen = set()
        for record in records:
            if not isinstance(record, dict):
                logger.warning("Skipping malformed provider record: %r", record)
                continue
            try:
                provider = Provider.from_record(migrate_record(record))
                self.validate_fields(provider.name, provider.url, provider.transport_kind)
            except (KeyError, ValueError, ValidationError, ProviderValidationError) as e:
                logger.warning("Skipping malformed provider record %r: %s", record, e)
                continue
            if provider.id in seen:
                logger.warning("Skipping duplicate provider id %s", provider.id)
                continue
            seen.add(provider.id)
            providers.append(provider)
        return providers

    def _persist(self) -> None:
        try:
            if not self._providers:
                self._store.remove(self._slot)
                return
            blob = yaml.safe_dump(
                [p.to_record() for p in self._providers],
                default_flow_style=False,
                sort_keys=False,
            )
            self._store.write(self._slot, blob)
        except StorageError as e:
            logger.warning("Could not save providers: %s", e)

    # ── Helpers ───────────────────────────────────────────────────────────

    def _find(self, provider_id: str) -> Provider:
        for provider in self._providers:
            if provider.id == provider_id:
                return provider
        raise ProviderNotFoundError(f"No provider with id {provider_id!r}")

    def _new_id(self) -> str:
        while True:
            candidate = uuid.uuid4().hex[:12]
            if candidate not in self:
                return candidate
