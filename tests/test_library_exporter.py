"""Exporting finished comparisons to a picture folder."""

from __future__ import annotations

import os

from PIL import Image
import pytest

from core.errors import PermissionDeniedError, PhotoIOError
from infrastructure.library_exporter import DirectoryLibraryExporter


def test_export_writes_jpeg(tmp_path):
    exporter = DirectoryLibraryExporter(tmp_path / "Pictures")
    exporter.save_image(Image.new("RGB", (30, 20), (1, 2, 3)))

    path = exporter.last_path
    assert path is not None and path.parent == tmp_path / "Pictures"
    assert path.name.startswith("compare_") and path.suffix == ".jpg"
    with Image.open(path) as im:
        assert im.format == "JPEG"
        assert im.size == (30, 20)
    assert not list(path.parent.glob("*.tmp"))


def test_export_png_and_unique_names(tmp_path):
    exporter = DirectoryLibraryExporter(tmp_path, image_format="png")
    exporter.save_image(Image.new("RGBA", (4, 4)))
    first = exporter.last_path
    exporter.save_image(Image.new("RGBA", (4, 4)))
    assert exporter.last_path != first
    assert len(list(tmp_path.glob("compare_*.png"))) == 2


def test_unsupported_format():
    with pytest.raises(ValueError):
        DirectoryLibraryExporter("/tmp", image_format="gif")


def test_unwritable_folder_is_permission_denied(tmp_path, monkeypatch):
    monkeypatch.setattr(os, "access", lambda path, mode: False)
    with pytest.raises(PermissionDeniedError):
        DirectoryLibraryExporter(tmp_path).save_image(Image.new("RGB", (4, 4)))


def test_write_failure_is_io_error(tmp_path, monkeypatch):
    def fail(src, dst):
        raise OSError("device full")

    monkeypatch.setattr(os, "replace", fail)
    exporter = DirectoryLibraryExporter(tmp_path)
    with pytest.raises(PhotoIOError):
        exporter.save_image(Image.new("RGB", (4, 4)))
    assert exporter.last_path is None
    assert not list(tmp_path.glob("*.tmp"))


def test_folder_that_is_a_file(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(PhotoIOError):
        DirectoryLibraryExporter(blocker / "out").save_image(Image.new("RGB", (4, 4)))
