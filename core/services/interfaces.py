"""Core service interfaces and shared result structures.

The store and view-models depend on these protocols rather than on the
concrete infrastructure classes, so tests can pass simple fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
import uuid

from PIL import Image

from core.models import AppSnapshot


@dataclass
class DeleteResult:
    """Outcome of a delete operation.

    Attributes:
        found: Whether the requested subject/photo existed.
        removed_photo_ids: Photos removed from the store.
        deleted_files: Payload file names deleted from storage.
        failed: Tuples of (file_name, reason) for payloads that could not be
            deleted. Their rows are removed regardless.
    """

    found: bool
    removed_photo_ids: list[uuid.UUID] = field(default_factory=list)
    deleted_files: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class ActionResult:
    """Outcome of a user-initiated action with a single message to show.

    Attributes:
        success: Whether the action completed.
        message: Human-readable text; empty on silent success.
        value: Optional payload (e.g. the created `Photo`).
    """

    success: bool
    message: str
    value: Any = None


class ISnapshotRepository(Protocol):
    """Durable storage for the whole snapshot."""

    def load(self) -> AppSnapshot | None:
        """Return the stored snapshot or None on first run / unreadable data."""
        raise NotImplementedError

    def save(self, snapshot: AppSnapshot) -> None:
        """Atomically overwrite the stored snapshot."""
        raise NotImplementedError


class IPayloadRepository(Protocol):
    """Byte payload storage keyed by opaque file names."""

    def save(self, image_bytes: bytes) -> str:
        raise NotImplementedError

    def load(self, file_name: str) -> bytes:
        raise NotImplementedError

    def delete(self, file_name: str) -> None:
        """Remove a payload; absent files are not an error."""
        raise NotImplementedError


class IImageCache(Protocol):
    def get(self, file_name: str) -> Image.Image | None:
        raise NotImplementedError

    def invalidate(self, file_name: str) -> None:
        raise NotImplementedError


class ILibraryExporter(Protocol):
    """Receives finished comparison images (the system photo library)."""

    def save_image(self, image: Image.Image) -> None:
        """Persist ``image``.

        Raises:
            PermissionDeniedError: If write access was refused.
            PhotoIOError: If writing failed.
        """
        raise NotImplementedError
