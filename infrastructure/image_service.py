"""Decoded image caching for full-size photos and thumbnails.

Two independent LRU tiers sit in front of `PhotoFileRepository`. Entries are
always reconstructable from the repository, so any failure to load is logged
and reported to callers as "no image" (None).
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable
from dataclasses import dataclass
import threading
from typing import Protocol

from loguru import logger
from PIL import Image

from core.errors import DecodeFailureError, PhotoIOError, PhotoNotFoundError
from core.services.transform_service import downscale_to_fit
from infrastructure.image_codec import decode_image

FULL_SIZE_CAPACITY = 50
THUMBNAIL_CAPACITY = 100
DEFAULT_THUMBNAIL_SIDE = 200


class _PayloadSource(Protocol):
    def load(self, file_name: str) -> bytes: ...

    def load_thumbnail(self, file_name: str) -> bytes | None: ...


@dataclass
class _MemCacheItem:
    key: Hashable
    image: Image.Image


class _LRUCache:
    """Capacity-bounded LRU map; every operation holds the cache lock."""

    def __init__(self, capacity: int) -> None:
        self._cap = max(1, int(capacity or 1))
        self._data: OrderedDict[Hashable, _MemCacheItem] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._cap

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def keys(self) -> list[Hashable]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._data.keys())

    def get(self, key: Hashable) -> Image.Image | None:
        """Return cached image for key, moving it to the MRU position."""
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            self._data.move_to_end(key)
            return item.image

    def put(self, key: Hashable, image: Image.Image) -> list[Hashable]:
        """Insert or update `key`, evicting LRU entries over capacity; return evicted keys."""
        evicted: list[Hashable] = []
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = _MemCacheItem(key, image)
            while len(self._data) > self._cap:
                old_key, _ = self._data.popitem(last=False)
                evicted.append(old_key)
        return evicted

    def pop(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class ImageCache:
    """Full-size and thumbnail image cache backed by a photo repository.

    Loading and decoding run outside the cache locks, so different keys load
    concurrently. Two threads missing on the same key may both decode it; the
    later insert simply replaces the earlier, identical image. Thumbnail tier
    writes happen under `_sizes_lock` so the per-file size index mirrors the
    resident thumbnail keys.
    """

    def __init__(
        self,
        repository: _PayloadSource,
        full_size_capacity: int = FULL_SIZE_CAPACITY,
        thumbnail_capacity: int = THUMBNAIL_CAPACITY,
    ) -> None:
        self._repo = repository
        self._full = _LRUCache(full_size_capacity)
        self._thumbs = _LRUCache(thumbnail_capacity)
        # file_name -> thumbnail sizes currently resident
        self._thumb_sizes: dict[str, set[int]] = {}
        self._sizes_lock = threading.Lock()

    @classmethod
    def from_settings(cls, repository: _PayloadSource, settings: object | None) -> ImageCache:
        if settings is None:
            return cls(repository)
        get = settings.get  # type: ignore[attr-defined]
        try:
            full_cap = int(get("cache.full_size_capacity", FULL_SIZE_CAPACITY))
            thumb_cap = int(get("cache.thumbnail_capacity", THUMBNAIL_CAPACITY))
        except (TypeError, ValueError):
            full_cap, thumb_cap = FULL_SIZE_CAPACITY, THUMBNAIL_CAPACITY
        return cls(repository, full_cap, thumb_cap)

    # Public API
    def get(self, file_name: str) -> Image.Image | None:
        """Return the full-size image for ``file_name``, loading it on a miss."""
        img = self._full.get(file_name)
        if img is not None:
            return img
        try:
            img = decode_image(self._repo.load(file_name))
        except (PhotoNotFoundError, PhotoIOError, DecodeFailureError) as ex:
            logger.debug("Full-size load failed for {}: {}", file_name, ex)
            return None
        self._full.put(file_name, img)
        return img

    def get_thumbnail(
        self, file_name: str, size: int = DEFAULT_THUMBNAIL_SIDE
    ) -> Image.Image | None:
        """Return a thumbnail no larger than ``size`` x ``size``.

        Order of sources: memory, the repository's precomputed thumbnail,
        then a downscale of the full-size image.
        """
        side = max(1, int(size))
        key = (file_name, side)
        img = self._thumbs.get(key)
        if img is not None:
            return img

        img = self._load_saved_thumbnail(file_name, side)
        if img is None:
            full = self.get(file_name)
            if full is None:
                return None
            img = downscale_to_fit(full, side)

        with self._sizes_lock:
            self._thumb_sizes.setdefault(file_name, set()).add(side)
            for old_name, old_side in self._thumbs.put(key, img):
                sides = self._thumb_sizes.get(old_name)
                if sides is None:
                    continue
                sides.discard(old_side)
                if not sides:
                    del self._thumb_sizes[old_name]
        return img

    def invalidate(self, file_name: str) -> None:
        """Drop the full-size entry and every cached thumbnail size of ``file_name``."""
        self._full.pop(file_name)
        with self._sizes_lock:
            for side in self._thumb_sizes.pop(file_name, set()):
                self._thumbs.pop((file_name, side))

    def clear(self) -> None:
        """Drop everything from both tiers."""
        self._full.clear()
        with self._sizes_lock:
            self._thumbs.clear()
            self._thumb_sizes.clear()

    # Introspection
    @property
    def full_size_count(self) -> int:
        return len(self._full)

    @property
    def thumbnail_count(self) -> int:
        return len(self._thumbs)

    @property
    def tracked_thumbnail_files(self) -> int:
        """Number of file names with at least one resident thumbnail size."""
        with self._sizes_lock:
            return len(self._thumb_sizes)

    def contains(self, file_name: str, size: int | None = None) -> bool:
        """True when the full-size image (or the thumbnail of ``size``) is resident."""
        if size is None:
            return file_name in self._full
        return (file_name, int(size)) in self._thumbs

    def resident_full_size(self) -> list[str]:
        """Resident full-size keys, least recently used first."""
        return [str(k) for k in self._full.keys()]

    # Internal helpers
    def _load_saved_thumbnail(self, file_name: str, side: int) -> Image.Image | None:
        data = self._repo.load_thumbnail(file_name)
        if not data:
            return None
        try:
            img = decode_image(data)
        except DecodeFailureError as ex:
            logger.debug("Saved thumbnail unreadable for {}: {}", file_name, ex)
            return None
        # The saved companion may be larger than requested
        return downscale_to_fit(img, side) if max(img.size) > side else img
