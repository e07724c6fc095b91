"""
MCPShelf blob stores - opaque named slots holding serialized provider lists.

The registry only ever reads a slot at startup, overwrites it after each
mutation, and removes it once the last provider is deleted.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a blob store cannot be read or written."""

    pass


class BlobStore(ABC):
    """A key-value store of text blobs."""

    @abstractmethod
    def read(self, slot: str) -> Optional[str]:
        """Return the blob in ``slot``, or None if the slot is empty."""

    @abstractmethod
    def write(self, slot: str, blob: str) -> None:
        """Replace the contents of ``slot``."""

    @abstractmethod
    def remove(self, slot: str) -> None:
        """Delete ``slot``. Removing an empty slot is not an error."""


class MemoryBlobStore(BlobStore):
    """Dict-backed store, for tests and for embedding applications."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.slots: Dict[str, str] = dict(initial or {})

    def read(self, slot: str) -> Optional[str]:
        return self.slots.get(slot)

    def write(self, slot: str, blob: str) -> None:
        self.slots[slot] = blob

    def remove(self, slot: str) -> None:
        self.slots.pop(slot, None)


class FileBlobStore(BlobStore):
    """
    Filesystem store: one ``<slot>.yaml`` file per slot.

    Example:
        >>> store = FileBlobStore(Path("~/.mcpshelf/store").expanduser())
        >>> store.write("mcp-servers", "[]")
        >>> store.read("mcp-servers")
        '[]'
    """

    def __init__(self, directory: Path):
        """
        Initialize the FileBlobStore.

        Args:
            directory: Directory holding the slot files. Created on first write.
        """
        self.directory = Path(directory)

    def _path(self, slot: str) -> Path:
        return self.directory / f"{slot}.yaml"

    def read(self, slot: str) -> Optional[str]:
        path = self._path(slot)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

    def write(self, slot: str, blob: str) -> None:
        path = self._path(slot)
        tmp_path = path.with_suffix(".yaml.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(blob, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")
        logger.debug("Wrote slot %s (%d bytes)", slot, len(blob))

    def remove(self, slot: str) -> None:
        path = self._path(slot)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove {path}: {e}")
