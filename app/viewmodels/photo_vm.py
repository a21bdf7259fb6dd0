"""Lightweight view model wrappers around `Photo` and `Subject`."""

from __future__ import annotations

from dataclasses import dataclass

from core.models import Photo, Subject


@dataclass
class PhotoVM:
    """Expose convenient properties for bindings/templates."""

    photo: Photo
    is_cover: bool = False

    @property
    def file_name(self) -> str:
        return self.photo.file_name

    @property
    def date_text(self) -> str:
        """Short date shown under thumbnails."""
        return self.photo.formatted_date

    @property
    def detail_text(self) -> str:
        return self.photo.detailed_date

    @property
    def note_text(self) -> str:
        """Note for display (empty string when none)."""
        return self.photo.note or ""

    @property
    def has_note(self) -> bool:
        return bool(self.photo.note)


@dataclass
class SubjectRowVM:
    """One row of the subject list: the subject, its cover and photo count."""

    subject: Subject
    cover: Photo | None
    photo_count: int

    @property
    def title(self) -> str:
        return self.subject.name

    @property
    def cover_file_name(self) -> str | None:
        return self.cover.file_name if self.cover else None

    @property
    def subtitle(self) -> str:
        if self.photo_count == 0:
            return "No photos yet"
        noun = "photo" if self.photo_count == 1 else "photos"
        return f"{self.photo_count} {noun}"
