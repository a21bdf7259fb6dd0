"""ViewModel for subject and photo management screens."""

from __future__ import annotations

from datetime import datetime
import uuid

from loguru import logger
from PIL import Image

from app.viewmodels.photo_vm import PhotoVM, SubjectRowVM
from core.errors import PhotoJournalError
from core.models import Photo, Subject
from core.services.interfaces import ActionResult, IImageCache
from core.services.photo_store import PhotoStore
from infrastructure.photo_repository import PhotoFileRepository
from infrastructure.utils import get_exif_datetime_original


class MainVM:
    """Main application view-model.

    Mediates between the `PhotoStore`, the payload repository and UI lists.
    """

    def __init__(
        self,
        store: PhotoStore,
        files: PhotoFileRepository,
        cache: IImageCache | None = None,
    ) -> None:
        self._store = store
        self._files = files
        self._cache = cache

    @property
    def store(self) -> PhotoStore:
        return self._store

    # Subjects
    def create_subject(self, name: str) -> Subject | None:
        """Create a subject named ``name`` (trimmed); None for a blank name."""
        clean = name.strip()
        if not clean:
            return None
        subject = Subject(name=clean)
        self._store.add_subject(subject)
        return subject

    def rename_subject(self, subject_id: uuid.UUID, name: str) -> bool:
        clean = name.strip()
        if not clean:
            return False
        return self._store.update_subject_name(subject_id, clean)

    def set_cover(self, subject_id: uuid.UUID, photo_id: uuid.UUID | None) -> bool:
        """Pin ``photo_id`` as the cover, or None to go back to the latest photo."""
        return self._store.update_subject_cover(subject_id, photo_id)

    def delete_subject(self, subject_id: uuid.UUID) -> ActionResult:
        result = self._store.delete_subject(subject_id)
        if not result.found:
            return ActionResult(False, "Subject not found")
        if result.failed:
            logger.warning(
                "Subject {} deleted, {} files left behind", subject_id, len(result.failed)
            )
        return ActionResult(True, "", result)

    def subject_rows(self) -> list[SubjectRowVM]:
        """Subjects newest first with cover photo and photo count."""
        return [
            SubjectRowVM(
                subject=s,
                cover=self._store.cover_photo(s.id),
                photo_count=self._store.photo_count(s.id),
            )
            for s in self._store.sorted_subjects()
        ]

    # Photos
    def commit_capture(
        self,
        image_bytes: bytes,
        subject_id: uuid.UUID | None,
        captured_at: datetime | None = None,
        timeout: float | None = None,
    ) -> ActionResult:
        """Store captured/imported bytes and add the photo to ``subject_id``.

        The photo date is ``captured_at``, else the EXIF original date, else now.
        """
        try:
            file_name = self._files.save_async(image_bytes, timeout)
        except PhotoJournalError as ex:
            logger.error("Capture commit failed: {}", ex)
            return ActionResult(False, ex.user_message)
        taken_at = captured_at or get_exif_datetime_original(image_bytes) or datetime.now()
        photo = Photo(file_name=file_name, subject_id=subject_id, taken_at=taken_at)
        self._store.add_photo(photo)
        return ActionResult(True, "", photo)

    def edit_note(self, photo_id: uuid.UUID, text: str | None) -> bool:
        """Save a note; whitespace-only text clears it."""
        clean = (text or "").strip()
        return self._store.update_photo_note(photo_id, clean or None)

    def delete_photo(self, photo_id: uuid.UUID) -> ActionResult:
        result = self._store.delete_photo(photo_id)
        if not result.found:
            return ActionResult(False, "Photo not found")
        return ActionResult(True, "", result)

    def photo_rows(self, subject_id: uuid.UUID) -> list[PhotoVM]:
        """Photos of a subject, newest first, flagged with the current cover."""
        cover = self._store.cover_photo(subject_id)
        cover_id = cover.id if cover else None
        return [
            PhotoVM(photo=p, is_cover=(p.id == cover_id))
            for p in self._store.photos_for_subject(subject_id)
        ]

    def reference_image(self, subject_id: uuid.UUID) -> Image.Image | None:
        """Earliest photo of the subject, used as the camera alignment overlay."""
        first = self._store.first_photo(subject_id)
        if first is None or self._cache is None:
            return None
        return self._cache.get(first.file_name)
