from __future__ import annotations

import io
from pathlib import Path

from PIL import Image
import pytest

from core.services.photo_store import PhotoStore
from infrastructure.image_service import ImageCache
from infrastructure.photo_repository import PhotoFileRepository
from infrastructure.snapshot_repository import JsonSnapshotRepository


def make_image(width: int = 40, height: int = 30, mode: str = "RGBA") -> Image.Image:
    """Deterministic gradient so pixel comparisons are meaningful."""
    img = Image.new(mode, (width, height))
    px = img.load()
    for y in range(height):
        for x in range(width):
            r = (x * 255) // max(1, width - 1)
            g = (y * 255) // max(1, height - 1)
            if mode == "RGBA":
                px[x, y] = (r, g, 128, 255)
            else:
                px[x, y] = (r, g, 128)
    return img


def encode(img: Image.Image, fmt: str = "PNG", **params) -> bytes:
    buf = io.BytesIO()
    img.save(buf, fmt, **params)
    return buf.getvalue()


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def png_bytes() -> bytes:
    return encode(make_image(64, 48, "RGB"))


@pytest.fixture
def photo_dir(tmp_path: Path) -> Path:
    return tmp_path / "Photos"


@pytest.fixture
def files(photo_dir: Path) -> PhotoFileRepository:
    return PhotoFileRepository(photo_dir)


@pytest.fixture
def cache(files: PhotoFileRepository) -> ImageCache:
    return ImageCache(files)


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / "appData.json"


@pytest.fixture
def store(snapshot_path: Path, files: PhotoFileRepository, cache: ImageCache):
    s = PhotoStore(JsonSnapshotRepository(snapshot_path), files, cache)
    s.load()
    yield s
    s.close()
