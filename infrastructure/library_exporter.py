"""Export of finished comparison images to a picture folder.

Stands in for the system photo library: the folder is the "library" and
write permission on it is the "grant".
"""

from __future__ import annotations

from datetime import datetime
import os
from pathlib import Path

from loguru import logger
from PIL import Image

from core.errors import PermissionDeniedError, PhotoIOError
from infrastructure.image_codec import encode_jpeg, encode_png


class DirectoryLibraryExporter:
    """Write comparison images as ``compare_YYYYMMDD_HHMMSS.<ext>`` into a folder."""

    def __init__(
        self, export_dir: str | Path, image_format: str = "JPEG", quality: int = 90
    ) -> None:
        self.export_dir = Path(export_dir).expanduser()
        fmt = image_format.upper()
        if fmt not in {"JPEG", "PNG"}:
            raise ValueError(f"unsupported export format: {image_format}")
        self.image_format = fmt
        self.quality = int(quality)
        self.last_path: Path | None = None

    def _target_path(self) -> Path:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        ext = ".jpg" if self.image_format == "JPEG" else ".png"
        path = self.export_dir / f"compare_{ts}{ext}"
        n = 1
        while path.exists():
            path = self.export_dir / f"compare_{ts}_{n}{ext}"
            n += 1
        return path

    def save_image(self, image: Image.Image) -> None:
        """Write ``image`` to the export folder.

        Raises:
            PermissionDeniedError: If the folder is not writable.
            PhotoIOError: If the write fails for another reason.
        """
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as ex:
            raise PermissionDeniedError(f"cannot create {self.export_dir}") from ex
        except OSError as ex:
            raise PhotoIOError(f"cannot create {self.export_dir}: {ex}") from ex
        if not os.access(self.export_dir, os.W_OK):
            raise PermissionDeniedError(f"no write access to {self.export_dir}")

        if self.image_format == "JPEG":
            data = encode_jpeg(image, self.quality)
        else:
            data = encode_png(image)
        path = self._target_path()
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except PermissionError as ex:
            tmp_path.unlink(missing_ok=True)
            raise PermissionDeniedError(f"no write access to {path}") from ex
        except OSError as ex:
            tmp_path.unlink(missing_ok=True)
            logger.error("Export write failed for {}: {}", path, ex)
            raise PhotoIOError(f"could not write {path.name}: {ex}") from ex
        self.last_path = path
        logger.info("Comparison exported to {} ({}x{})", path, image.width, image.height)
