"""Exception hierarchy shared by the core, infrastructure and app layers."""

from __future__ import annotations


class PhotoJournalError(Exception):
    """Base class for all photo journal failures."""

    #: Short human-readable text surfaced when the user initiated the action.
    user_message = "Something went wrong"


class InvalidTransformError(PhotoJournalError, ValueError):
    """Raised when a transform is requested with a non-positive scale."""

    user_message = "Invalid zoom value"


class DecodeFailureError(PhotoJournalError):
    """Raised when bytes cannot be decoded as an image."""

    user_message = "Unable to read the photo"


class PhotoIOError(PhotoJournalError, OSError):
    """Raised when a file read, write or delete fails."""

    user_message = "Saving failed"


class PhotoNotFoundError(PhotoJournalError, LookupError):
    """Raised when a referenced id or file does not exist."""

    user_message = "Photo not found"


class CompositionError(PhotoJournalError):
    """Raised when the comparison image cannot be produced."""

    user_message = "Failed to create the comparison image"


class PhotosUnavailableError(CompositionError):
    """Raised when a photo chosen for comparison cannot be loaded."""

    user_message = "Unable to load photos"


class PermissionDeniedError(PhotoJournalError):
    """Raised by a library exporter when write access was not granted."""

    user_message = "Permission to save to the photo library was not granted"


class ExportTimeoutError(PhotoJournalError, TimeoutError):
    """Raised when a save or export exceeds its time budget."""

    user_message = "The operation took too long and was cancelled"
