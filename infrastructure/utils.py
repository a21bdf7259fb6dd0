"""Date helpers for the snapshot format and EXIF capture dates.

Parsing here is best-effort: EXIF helpers never raise and return `None` when
the data is not available.
"""

from __future__ import annotations

from datetime import datetime
import io
from typing import Any
import uuid

from loguru import logger
from PIL import Image, UnidentifiedImageError

# EXIF tags: DateTimeOriginal lives in the Exif IFD, DateTime in IFD0
_EXIF_IFD = 0x8769
_TAG_DATETIME_ORIGINAL = 36867
_TAG_DATETIME = 306


def format_iso_datetime(dt: datetime) -> str:
    """Serialize a datetime for the snapshot file."""
    return dt.isoformat()


def parse_iso_datetime(value: Any) -> datetime:
    """Parse a snapshot timestamp; raises ValueError on bad input."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")
    return datetime.fromisoformat(value)


def parse_uuid(value: Any) -> uuid.UUID | None:
    """Parse an optional UUID string; None passes through."""
    if value is None:
        return None
    return uuid.UUID(str(value))


def _parse_exif_text(value: Any) -> datetime | None:
    val_str = str(value).strip("\x00 ")
    # Common EXIF format: "YYYY:MM:DD HH:MM:SS"
    if len(val_str) >= 19 and val_str[4] == ":" and val_str[7] == ":":
        return datetime.strptime(val_str[:19], "%Y:%m:%d %H:%M:%S")
    return datetime.fromisoformat(val_str.replace("/", "-"))


def get_exif_datetime_original(data: bytes) -> datetime | None:
    """Extract EXIF DateTimeOriginal (or DateTime) from encoded image bytes."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            exif = im.getexif()
            if not exif:
                return None
            val = exif.get_ifd(_EXIF_IFD).get(_TAG_DATETIME_ORIGINAL) or exif.get(
                _TAG_DATETIME
            )
            if not val:
                return None
            return _parse_exif_text(val)
    except (UnidentifiedImageError, OSError, ValueError, TypeError) as ex:
        logger.debug("EXIF read failed: {}", ex)
        return None
