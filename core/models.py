"""Core domain models for subjects, photos, and comparison transforms."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import uuid


@dataclass
class Subject:
    """A tracked thing the user photographs repeatedly."""

    name: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=datetime.now)
    # None means "use the latest photo"
    cover_photo_id: uuid.UUID | None = None


@dataclass
class Photo:
    """Metadata for one stored image; the pixels live in the file repository."""

    file_name: str
    subject_id: uuid.UUID | None = None
    taken_at: datetime = field(default_factory=datetime.now)
    note: str | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def formatted_date(self) -> str:
        """Short date such as ``2024/6/1`` used for compare labels."""
        t = self.taken_at
        return f"{t.year}/{t.month}/{t.day}"

    @property
    def detailed_date(self) -> str:
        """Medium date plus short time, e.g. ``Jun 1, 2024 at 9:05``."""
        t = self.taken_at
        return f"{t.strftime('%b')} {t.day}, {t.year} at {t.hour}:{t.minute:02d}"


@dataclass
class AppSnapshot:
    """The persisted aggregate of all subjects and photos."""

    subjects: list[Subject] = field(default_factory=list)
    photos: list[Photo] = field(default_factory=list)


@dataclass(frozen=True)
class TransformParams:
    """Zoom, rotation and pan applied to one side of a comparison.

    ``offset`` is expressed in the coordinate space of the cell it was
    recorded in (the on-screen cell for live edits).
    """

    scale: float = 1.0
    angle_degrees: float = 0.0
    offset: tuple[float, float] = (0.0, 0.0)

    @property
    def is_identity(self) -> bool:
        return (
            self.scale == 1.0
            and self.angle_degrees % 360 == 0
            and self.offset == (0.0, 0.0)
        )
