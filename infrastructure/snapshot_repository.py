"""JSON persistence for the subject/photo snapshot.

The whole snapshot is rewritten on every save: the JSON is written to a
temporary sibling and swapped in with `os.replace`, so a reader never sees a
partially written file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
import time
from typing import Any

from loguru import logger

from core.errors import PhotoIOError
from core.models import AppSnapshot, Photo, Subject
from infrastructure.utils import format_iso_datetime, parse_iso_datetime, parse_uuid

SNAPSHOT_FILE_NAME = "appData.json"


def subject_to_dict(subject: Subject) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": str(subject.id),
        "name": subject.name,
        "createdAt": format_iso_datetime(subject.created_at),
    }
    if subject.cover_photo_id is not None:
        row["coverPhotoId"] = str(subject.cover_photo_id)
    return row


def photo_to_dict(photo: Photo) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": str(photo.id),
        "fileName": photo.file_name,
        "takenAt": format_iso_datetime(photo.taken_at),
    }
    if photo.note is not None:
        row["note"] = photo.note
    if photo.subject_id is not None:
        row["subjectId"] = str(photo.subject_id)
    return row


def subject_from_dict(row: dict[str, Any]) -> Subject:
    return Subject(
        id=parse_uuid(row["id"]),  # type: ignore[arg-type]
        name=str(row["name"]),
        created_at=parse_iso_datetime(row["createdAt"]),
        cover_photo_id=parse_uuid(row.get("coverPhotoId")),
    )


def photo_from_dict(row: dict[str, Any]) -> Photo:
    note = row.get("note")
    return Photo(
        id=parse_uuid(row["id"]),  # type: ignore[arg-type]
        file_name=str(row["fileName"]),
        taken_at=parse_iso_datetime(row["takenAt"]),
        note=None if note is None else str(note),
        subject_id=parse_uuid(row.get("subjectId")),
    )


def encode_snapshot(snapshot: AppSnapshot) -> str:
    """Serialize a snapshot to JSON text."""
    payload = {
        "subjects": [subject_to_dict(s) for s in snapshot.subjects],
        "photos": [photo_to_dict(p) for p in snapshot.photos],
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def decode_snapshot(text: str) -> AppSnapshot:
    """Parse JSON text into a snapshot.

    Raises:
        ValueError: If the text is not a valid snapshot document.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("snapshot root must be an object")
    subjects_raw = data.get("subjects", [])
    photos_raw = data.get("photos", [])
    if not isinstance(subjects_raw, list) or not isinstance(photos_raw, list):
        raise ValueError("snapshot subjects/photos must be lists")
    try:
        return AppSnapshot(
            subjects=[subject_from_dict(r) for r in subjects_raw],
            photos=[photo_from_dict(r) for r in photos_raw],
        )
    except (KeyError, TypeError, AttributeError) as ex:
        raise ValueError(f"malformed snapshot row: {ex}") from ex


class JsonSnapshotRepository:
    """Load and save `AppSnapshot` as a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppSnapshot | None:
        """Return the stored snapshot, or None when absent or unreadable."""
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            logger.info("No snapshot at {}, starting empty", self._path)
            return None
        except OSError as ex:
            logger.warning("Snapshot read failed for {}: {}", self._path, ex)
            return None
        try:
            # UnicodeDecodeError is a ValueError
            return decode_snapshot(raw.decode("utf-8"))
        except ValueError as ex:
            logger.warning("Snapshot at {} is not decodable ({}), starting empty", self._path, ex)
            return None

    def save(self, snapshot: AppSnapshot) -> None:
        """Atomically replace the snapshot file.

        Raises:
            PhotoIOError: If the file cannot be written.
        """
        text = encode_snapshot(snapshot)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            self._replace(tmp_path)
        except OSError as ex:
            logger.error("Snapshot write failed for {}: {}", self._path, ex)
            raise PhotoIOError(f"could not write snapshot: {ex}") from ex

    def _replace(self, tmp_path: Path) -> None:
        # Windows may briefly lock the destination (indexers, antivirus)
        for attempt in range(5):
            try:
                tmp_path.replace(self._path)
                return
            except PermissionError:
                if attempt == 4:
                    tmp_path.unlink(missing_ok=True)
                    raise
                time.sleep(0.05 * (attempt + 1))
