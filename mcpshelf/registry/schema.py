"""Data models for MCPShelf providers, headers, discovered tools and cache entries."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

import httpx
from pydantic import BaseModel, Field, field_validator

NO_DESCRIPTION = "No description available"


class TransportKind(str, Enum):
    """Wire mechanism used to reach a provider. The value is what gets persisted."""

    STREAMING = "sse"
    REQUEST_RESPONSE = "http"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TransportKind":
        """Read a persisted or user-supplied kind; absent means streaming."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.STREAMING
        return cls(str(value).strip().lower())


class RequestHeader(BaseModel):
    """A single outbound header pair."""

    key: str
    value: str

    def is_complete(self) -> bool:
        return bool(self.key.strip()) and bool(self.value.strip())


def clean_headers(headers: Optional[Iterable[Any]]) -> List[RequestHeader]:
    """
    Drop header pairs with an empty key or value, keeping the rest verbatim.

    Accepts ``RequestHeader`` instances or ``{"key": ..., "value": ...}`` mappings.
    """
    cleaned: List[RequestHeader] = []
    for header in headers or []:
        if not isinstance(header, (RequestHeader, dict)):
            continue
        if isinstance(header, dict):
            header = RequestHeader(
                key=str(header.get("key") or ""),
                value=str(header.get("value") or ""),
            )
        if header.is_complete():
            cleaned.append(header)
    return cleaned


def is_absolute_url(url: str) -> bool:
    """True for ``http``/``https`` URLs that carry a host."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


class Provider(BaseModel):
    """A configured remote MCP endpoint."""

    id: str
    name: str
    url: str
    transport_kind: TransportKind = TransportKind.STREAMING
    headers: List[RequestHeader] = Field(default_factory=list)

    def header_map(self) -> Dict[str, str]:
        """Headers as a plain mapping, later keys winning on duplicates."""
        return {h.key: h.value for h in self.headers}

    def connection_key(self) -> Tuple[str, TransportKind, Tuple[Tuple[str, str], ...]]:
        """Everything that determines how discovery reaches this provider."""
        return (self.url, self.transport_kind, tuple((h.key, h.value) for h in self.headers))

    # ── Persisted record shape ────────────────────────────────────────────

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "transportType": self.transport_kind.value,
            "headers": [{"key": h.key, "value": h.value} for h in self.headers],
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Provider":
        """Build a provider from an already-migrated record."""
        return cls(
            id=str(record["id"]),
            name=record["name"],
            url=record["url"],
            transport_kind=TransportKind.parse(record.get("transportType")),
            headers=clean_headers(record.get("headers")),
        )


def migrate_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring an older persisted record up to the current shape.

    Records written before transport selection existed have no
    ``transportType``; they were always streaming. Returns a new dict and
    leaves the input untouched.
    """
    migrated = dict(record)
    if not migrated.get("transportType"):
        migrated["transportType"] = TransportKind.STREAMING.value
    migrated.setdefault("headers", [])
    return migrated


class Tool(BaseModel):
    """A tool reported by a provider during discovery."""

    name: str
    description: str = NO_DESCRIPTION


class CacheEntry(BaseModel):
    """Discovery result for one endpoint URL."""

    url: str
    tools: List[Tool] = Field(default_factory=list)
    fetched_at: datetime


class ChatHeaderPayload(BaseModel):
    key: str = Field(min_length=1, max_length=2000)
    value: str = Field(min_length=1, max_length=2000)


class ChatServerPayload(BaseModel):
    """One entry of the ``mcpServers`` list sent along with a chat request."""

    name: str = Field(min_length=1, max_length=2000)
    url: str
    transportType: Literal["sse", "http"] = "sse"
    headers: List[ChatHeaderPayload] = Field(default_factory=list)

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        if not is_absolute_url(value):
            raise ValueError(f"not an absolute URL: {value}")
        return value

    @classmethod
    def from_provider(cls, provider: Provider) -> "ChatServerPayload":
        record = provider.to_record()
        record.pop("id")
        return cls(**record)


class DiscoveryResult(BaseModel):
    """Outcome of a single discovery call. All-or-nothing: failures carry no tools."""

    url: str
    success: bool = False
    tools: List[Tool] = Field(default_factory=list)
    error: Optional[str] = None
