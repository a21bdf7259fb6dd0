"""File storage for photo payloads.

Each photo is one JPEG named by a random token (``<uuid>.jpg``), with an
optional lower-quality companion thumbnail (``<uuid>_thumb.jpg``). The store
only ever holds the file name; this repository owns the bytes.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
import os
from pathlib import Path
import uuid

from loguru import logger
from PIL import Image
from send2trash import send2trash

from core.errors import ExportTimeoutError, PhotoIOError, PhotoNotFoundError
from core.services.transform_service import downscale_to_fit
from infrastructure.image_codec import decode_image, encode_jpeg

MAX_DIMENSION = 4096
JPEG_QUALITY = 80
THUMBNAIL_SIDE = 300
THUMBNAIL_QUALITY = 60
SAVE_TIMEOUT_SECONDS = 20.0


def thumbnail_name(file_name: str) -> str:
    """Companion thumbnail name: ``abc.jpg`` -> ``abc_thumb.jpg``."""
    stem, ext = os.path.splitext(file_name)
    return f"{stem}_thumb{ext}"


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    with tmp_path.open("wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


class PhotoFileRepository:
    """Save, load and delete photo payloads under ``photo_dir``."""

    def __init__(
        self,
        photo_dir: str | Path,
        *,
        max_dimension: int = MAX_DIMENSION,
        jpeg_quality: int = JPEG_QUALITY,
        thumbnail_side: int = THUMBNAIL_SIDE,
        thumbnail_quality: int = THUMBNAIL_QUALITY,
        write_thumbnails: bool = True,
        use_recycle_bin: bool = False,
        save_timeout_seconds: float = SAVE_TIMEOUT_SECONDS,
    ) -> None:
        self.photo_dir = Path(photo_dir)
        self.photo_dir.mkdir(parents=True, exist_ok=True)
        self.max_dimension = int(max_dimension)
        self.jpeg_quality = int(jpeg_quality)
        self.thumbnail_side = int(thumbnail_side)
        self.thumbnail_quality = int(thumbnail_quality)
        self.write_thumbnails = bool(write_thumbnails)
        self.use_recycle_bin = bool(use_recycle_bin)
        self.save_timeout_seconds = float(save_timeout_seconds)

    @classmethod
    def from_settings(cls, photo_dir: str | Path, settings: object | None) -> PhotoFileRepository:
        """Build a repository using ``storage.*`` keys from `JsonSettings`."""
        if settings is None:
            return cls(photo_dir)
        get = settings.get  # type: ignore[attr-defined]
        return cls(
            photo_dir,
            max_dimension=int(get("storage.max_dimension", MAX_DIMENSION)),
            jpeg_quality=int(get("storage.jpeg_quality", JPEG_QUALITY)),
            thumbnail_side=int(get("storage.thumbnail_side", THUMBNAIL_SIDE)),
            thumbnail_quality=int(get("storage.thumbnail_quality", THUMBNAIL_QUALITY)),
            write_thumbnails=bool(get("storage.write_thumbnails", True)),
            use_recycle_bin=bool(get("storage.use_recycle_bin", False)),
            save_timeout_seconds=float(get("storage.save_timeout_seconds", SAVE_TIMEOUT_SECONDS)),
        )

    # Paths
    def path_for(self, file_name: str) -> Path:
        """Absolute path of ``file_name``; rejects names that escape the folder."""
        if not file_name or Path(file_name).name != file_name:
            raise PhotoNotFoundError(f"invalid photo file name: {file_name!r}")
        return self.photo_dir / file_name

    def exists(self, file_name: str) -> bool:
        try:
            return self.path_for(file_name).is_file()
        except PhotoNotFoundError:
            return False

    # Save
    def save(self, image_bytes: bytes) -> str:
        """Decode, bound, re-encode and store ``image_bytes``; return the new file name.

        Raises:
            DecodeFailureError: If the bytes are not an image.
            PhotoIOError: If the file cannot be written.
        """
        return self.save_image(decode_image(image_bytes))

    def save_image(self, image: Image.Image) -> str:
        """Store an already decoded, upright image; return the new file name."""
        token = uuid.uuid4().hex.upper()
        file_name = f"{token}.jpg"
        prepared = downscale_to_fit(image, self.max_dimension)
        data = encode_jpeg(prepared, self.jpeg_quality)
        path = self.photo_dir / file_name
        try:
            _atomic_write_bytes(path, data)
        except OSError as ex:
            logger.error("Save photo failed for {}: {}", path, ex)
            raise PhotoIOError(f"could not write {file_name}: {ex}") from ex

        if self.write_thumbnails:
            self._save_thumbnail(prepared, file_name)
        logger.info("Saved photo {} ({}x{})", file_name, prepared.width, prepared.height)
        return file_name

    def _save_thumbnail(self, image: Image.Image, file_name: str) -> None:
        thumb = downscale_to_fit(image, self.thumbnail_side)
        path = self.photo_dir / thumbnail_name(file_name)
        try:
            _atomic_write_bytes(path, encode_jpeg(thumb, self.thumbnail_quality))
        except OSError as ex:
            # Thumbnails are regenerated on demand
            logger.warning("Save thumbnail failed for {}: {}", path, ex)

    def save_async(self, image_bytes: bytes, timeout: float | None = None) -> str:
        """Run `save` on a worker thread, giving up after ``timeout`` seconds.

        On timeout the worker is left to finish in the background and a file
        it completes late is deleted again, so no orphan payload remains.

        Raises:
            ExportTimeoutError: If the save did not finish in time.
        """
        limit = self.save_timeout_seconds if timeout is None else timeout
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="photo-save")
        try:
            future = pool.submit(self.save, image_bytes)
            try:
                return future.result(timeout=limit)
            except FutureTimeout as ex:
                logger.warning("Photo save timed out after {}s", limit)
                future.add_done_callback(self._discard_late_save)
                raise ExportTimeoutError(f"saving took longer than {limit}s") from ex
        finally:
            pool.shutdown(wait=False)

    def _discard_late_save(self, future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        file_name = future.result()
        try:
            self.delete(file_name)
        except PhotoIOError as ex:
            logger.error("Could not remove late save {}: {}", file_name, ex)
            return
        logger.info("Removed late save {}", file_name)

    # Load
    def load(self, file_name: str) -> bytes:
        """Return the stored bytes for ``file_name``.

        Raises:
            PhotoNotFoundError: If no such payload exists.
            PhotoIOError: If the file exists but cannot be read.
        """
        path = self.path_for(file_name)
        try:
            return path.read_bytes()
        except FileNotFoundError as ex:
            raise PhotoNotFoundError(f"no payload for {file_name}") from ex
        except OSError as ex:
            logger.error("Read photo failed for {}: {}", path, ex)
            raise PhotoIOError(f"could not read {file_name}: {ex}") from ex

    def load_thumbnail(self, file_name: str) -> bytes | None:
        """Return the precomputed thumbnail bytes, or None when there is none."""
        try:
            path = self.path_for(thumbnail_name(file_name))
            return path.read_bytes()
        except (PhotoNotFoundError, OSError):
            return None

    # Delete
    def delete(self, file_name: str) -> None:
        """Remove the payload and its thumbnail; missing files are ignored.

        Raises:
            PhotoIOError: If an existing file could not be removed.
        """
        for name in (file_name, thumbnail_name(file_name)):
            try:
                path = self.path_for(name)
            except PhotoNotFoundError:
                continue
            if not path.exists():
                continue
            try:
                if self.use_recycle_bin:
                    send2trash(str(path))
                else:
                    path.unlink()
            except FileNotFoundError:
                continue
            except OSError as ex:
                logger.error("Delete failed for {}: {}", path, ex)
                raise PhotoIOError(f"could not delete {name}: {ex}") from ex
        logger.info("Deleted photo payload {}", file_name)
