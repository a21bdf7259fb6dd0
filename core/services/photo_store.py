"""Authoritative in-memory store for subjects and photos.

Mutations take effect immediately for subsequent reads; durable persistence
happens afterwards on a single writer thread. Each mutation hands the writer
an immutable copy of the full collections, and the writer processes them in
submission order, so the file on disk always converges on the latest state.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
import dataclasses
import threading
import uuid

from loguru import logger

from core.errors import PhotoIOError
from core.models import AppSnapshot, Photo, Subject
from core.services.interfaces import (
    DeleteResult,
    IImageCache,
    IPayloadRepository,
    ISnapshotRepository,
)


def _copy_subject(s: Subject) -> Subject:
    return dataclasses.replace(s)


def _copy_photo(p: Photo) -> Photo:
    return dataclasses.replace(p)


class PhotoStore:
    """Owns the subject and photo collections and keeps them consistent.

    Args:
        snapshots: Durable snapshot storage.
        files: Payload repository; photo deletes remove their files through it.
        cache: Image cache; photo deletes invalidate their entries.
    """

    def __init__(
        self,
        snapshots: ISnapshotRepository,
        files: IPayloadRepository | None = None,
        cache: IImageCache | None = None,
    ) -> None:
        self._snapshots = snapshots
        self._files = files
        self._cache = cache
        self._lock = threading.RLock()
        self._subjects: list[Subject] = []
        self._photos: list[Photo] = []
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapshot-writer")
        self._last_write: Future[None] | None = None
        self._closed = False
        self.is_loading = True
        self.last_save_error: PhotoIOError | None = None

    # Persistence
    def load(self) -> None:
        """Replace the in-memory collections with the durable snapshot.

        A missing or undecodable snapshot yields empty collections.
        """
        snapshot = self._snapshots.load()
        with self._lock:
            if snapshot is None:
                self._subjects, self._photos = [], []
            else:
                self._subjects = list(snapshot.subjects)
                self._photos = list(snapshot.photos)
            self.is_loading = False
            logger.info(
                "Store loaded: {} subjects, {} photos", len(self._subjects), len(self._photos)
            )

    def snapshot(self) -> AppSnapshot:
        """Immutable copy of the current collections."""
        with self._lock:
            return AppSnapshot(
                subjects=[_copy_subject(s) for s in self._subjects],
                photos=[_copy_photo(p) for p in self._photos],
            )

    def _save(self) -> None:
        """Queue a write of the current state; never blocks on IO."""
        with self._lock:
            if self._closed:
                logger.warning("Store closed, dropping snapshot write")
                return
            # Capture and enqueue together so queue order matches mutation order
            self._last_write = self._writer.submit(self._write, self.snapshot())

    def _write(self, snap: AppSnapshot) -> None:
        try:
            self._snapshots.save(snap)
            self.last_save_error = None
        except PhotoIOError as ex:
            # The in-memory state stays authoritative; the next mutation retries
            self.last_save_error = ex
            logger.error("Snapshot save failed: {}", ex)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every queued write has finished; False on timeout."""
        pending = self._last_write
        if pending is None:
            return True
        try:
            pending.result(timeout=timeout)
        except FutureTimeout:
            return False
        return True

    def close(self) -> None:
        """Drain pending writes and stop the writer thread."""
        self._closed = True
        self._writer.shutdown(wait=True)

    # Subject
    def add_subject(self, subject: Subject) -> bool:
        with self._lock:
            if any(s.id == subject.id for s in self._subjects):
                logger.warning("Subject {} already exists", subject.id)
                return False
            self._subjects.append(_copy_subject(subject))
        logger.info("Subject added: {} ({})", subject.name, subject.id)
        self._save()
        return True

    def update_subject_name(self, subject_id: uuid.UUID, name: str) -> bool:
        with self._lock:
            sub = self._find_subject(subject_id)
            if sub is None:
                return False
            sub.name = name
        self._save()
        return True

    def update_subject_cover(self, subject_id: uuid.UUID, photo_id: uuid.UUID | None) -> bool:
        """Set the subject's cover; None restores "latest photo" behaviour.

        A photo that does not belong to the subject is rejected (no-op).
        """
        with self._lock:
            sub = self._find_subject(subject_id)
            if sub is None:
                return False
            if photo_id is not None:
                photo = self._find_photo(photo_id)
                if photo is None or photo.subject_id != subject_id:
                    logger.warning("Photo {} is not part of subject {}", photo_id, subject_id)
                    return False
            sub.cover_photo_id = photo_id
        self._save()
        return True

    def delete_subject(self, subject_id: uuid.UUID) -> DeleteResult:
        """Remove the subject together with all its photos, files and cache entries."""
        with self._lock:
            if self._find_subject(subject_id) is None:
                return DeleteResult(found=False)
            doomed = [p for p in self._photos if p.subject_id == subject_id]
            # Swap both collections together so readers never see half a delete
            self._subjects = [s for s in self._subjects if s.id != subject_id]
            self._photos = [p for p in self._photos if p.subject_id != subject_id]
        result = DeleteResult(found=True, removed_photo_ids=[p.id for p in doomed])
        # File IO runs unlocked; the rows are already gone for every reader
        for photo in doomed:
            self._discard_payload(photo.file_name, result)
        logger.info("Subject {} deleted with {} photos", subject_id, len(doomed))
        self._save()
        return result

    # Photo
    def add_photo(self, photo: Photo) -> bool:
        with self._lock:
            if any(p.id == photo.id for p in self._photos):
                logger.warning("Photo {} already exists", photo.id)
                return False
            self._photos.append(_copy_photo(photo))
        logger.info("Photo added: {} -> subject {}", photo.file_name, photo.subject_id)
        self._save()
        return True

    def update_photo_note(self, photo_id: uuid.UUID, note: str | None) -> bool:
        with self._lock:
            photo = self._find_photo(photo_id)
            if photo is None:
                return False
            photo.note = note
        self._save()
        return True

    def delete_photo(self, photo_id: uuid.UUID) -> DeleteResult:
        """Remove one photo, clearing its subject's cover pointer first if needed."""
        with self._lock:
            photo = self._find_photo(photo_id)
            if photo is None:
                return DeleteResult(found=False)
            if photo.subject_id is not None:
                sub = self._find_subject(photo.subject_id)
                if sub is not None and sub.cover_photo_id == photo.id:
                    sub.cover_photo_id = None
            self._photos = [p for p in self._photos if p.id != photo_id]
        result = DeleteResult(found=True, removed_photo_ids=[photo_id])
        self._discard_payload(photo.file_name, result)
        logger.info("Photo {} deleted", photo_id)
        self._save()
        return result

    def _discard_payload(self, file_name: str, result: DeleteResult) -> None:
        if self._files is not None:
            try:
                self._files.delete(file_name)
                result.deleted_files.append(file_name)
            except PhotoIOError as ex:
                result.failed.append((file_name, str(ex)))
        if self._cache is not None:
            self._cache.invalidate(file_name)

    # Queries
    @property
    def subjects(self) -> list[Subject]:
        with self._lock:
            return [_copy_subject(s) for s in self._subjects]

    @property
    def photos(self) -> list[Photo]:
        with self._lock:
            return [_copy_photo(p) for p in self._photos]

    def get_subject(self, subject_id: uuid.UUID) -> Subject | None:
        with self._lock:
            sub = self._find_subject(subject_id)
            return _copy_subject(sub) if sub else None

    def get_photo(self, photo_id: uuid.UUID) -> Photo | None:
        with self._lock:
            photo = self._find_photo(photo_id)
            return _copy_photo(photo) if photo else None

    def photos_for_subject(self, subject_id: uuid.UUID) -> list[Photo]:
        """Photos of the subject, newest first."""
        with self._lock:
            mine = [_copy_photo(p) for p in self._photos if p.subject_id == subject_id]
        return sorted(mine, key=lambda p: p.taken_at, reverse=True)

    def photo_count(self, subject_id: uuid.UUID) -> int:
        with self._lock:
            return sum(1 for p in self._photos if p.subject_id == subject_id)

    def latest_photo(self, subject_id: uuid.UUID) -> Photo | None:
        photos = self.photos_for_subject(subject_id)
        return photos[0] if photos else None

    def first_photo(self, subject_id: uuid.UUID) -> Photo | None:
        """Earliest photo of the subject (used as the camera reference overlay)."""
        photos = self.photos_for_subject(subject_id)
        return photos[-1] if photos else None

    def cover_photo(self, subject_id: uuid.UUID) -> Photo | None:
        """Explicit cover if it still resolves, else the latest photo, else None."""
        with self._lock:
            sub = self._find_subject(subject_id)
            if sub is None:
                return None
            if sub.cover_photo_id is not None:
                cover = self._find_photo(sub.cover_photo_id)
                if cover is not None and cover.subject_id == subject_id:
                    return _copy_photo(cover)
        return self.latest_photo(subject_id)

    def sorted_subjects(self) -> list[Subject]:
        """Subjects, newest first."""
        return sorted(self.subjects, key=lambda s: s.created_at, reverse=True)

    # Internal helpers
    def _find_subject(self, subject_id: uuid.UUID) -> Subject | None:
        for s in self._subjects:
            if s.id == subject_id:
                return s
        return None

    def _find_photo(self, photo_id: uuid.UUID) -> Photo | None:
        for p in self._photos:
            if p.id == photo_id:
                return p
        return None
