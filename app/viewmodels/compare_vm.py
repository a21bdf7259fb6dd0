"""ViewModel for the side-by-side comparison screen.

Holds the per-side photo, transform and label state that the live view edits,
and turns it into an exported comparison image.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field, replace
from enum import Enum

from loguru import logger
from PIL import Image

from core.errors import (
    CompositionError,
    ExportTimeoutError,
    PhotoJournalError,
    PhotosUnavailableError,
)
from core.models import Photo, TransformParams
from core.services.compositor import REFERENCE_CELL_WIDTH, CompareCompositor
from core.services.interfaces import ActionResult, IImageCache, ILibraryExporter

MIN_SCALE = 0.3
MAX_SCALE = 5.0
# Below this zoom a drag is a swap gesture, not a pan
PAN_SCALE_THRESHOLD = 1.05
EXPORT_TIMEOUT_SECONDS = 30.0

MSG_SAVED = "Saved to photo library"
MSG_LOAD_FAILED = PhotosUnavailableError.user_message


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass
class CompareSide:
    """Editable state of one comparison cell."""

    photo: Photo | None = None
    params: TransformParams = field(default_factory=TransformParams)
    label: str = ""


class CompareVM:
    """Comparison state plus export orchestration.

    Args:
        cache: Source of decoded full-size images.
        compositor: Renders the export image.
        exporter: Destination for saved comparisons.
        min_scale: Lower zoom bound.
        max_scale: Upper zoom bound.
        export_timeout: Seconds before a render is abandoned.
        screen_cell_width: Width of the on-screen cell offsets are recorded in.
    """

    def __init__(
        self,
        cache: IImageCache,
        compositor: CompareCompositor,
        exporter: ILibraryExporter | None = None,
        *,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE,
        export_timeout: float = EXPORT_TIMEOUT_SECONDS,
        screen_cell_width: float = REFERENCE_CELL_WIDTH,
    ) -> None:
        if not 0 < min_scale <= max_scale:
            raise ValueError(f"invalid zoom bounds: {min_scale}..{max_scale}")
        self._cache = cache
        self._compositor = compositor
        self._exporter = exporter
        self.min_scale = float(min_scale)
        self.max_scale = float(max_scale)
        self.export_timeout = float(export_timeout)
        self.screen_cell_width = float(screen_cell_width)
        self.left = CompareSide()
        self.right = CompareSide()
        self.selecting_for: Side | None = None
        self.show_labels = True
        self.preview_image: Image.Image | None = None
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="compare-render")

    def side(self, side: Side) -> CompareSide:
        return self.left if side == Side.LEFT else self.right

    # Selection
    def begin_selecting(self, side: Side | None) -> None:
        self.selecting_for = side

    def select_photo(self, photo: Photo) -> None:
        """Assign ``photo`` to the side being selected.

        With no side chosen the photo fills the left cell, then the right one;
        if both are occupied nothing changes. Choosing for a side resets its
        transform and sets its label to the photo's date.
        """
        if self.selecting_for is None:
            for slot in (self.left, self.right):
                if slot.photo is None:
                    slot.photo = photo
                    slot.label = photo.formatted_date
                    return
            return
        slot = self.side(self.selecting_for)
        slot.photo = photo
        slot.params = TransformParams()
        slot.label = photo.formatted_date
        self.selecting_for = None

    def swap(self) -> None:
        """Exchange photos, transforms and labels between the two sides."""
        self.left, self.right = self.right, self.left

    def set_label(self, side: Side, text: str) -> None:
        self.side(side).label = text

    # Gestures
    def clamp_scale(self, scale: float) -> float:
        return min(self.max_scale, max(self.min_scale, scale))

    def apply_zoom(self, side: Side, factor: float) -> float:
        """Multiply the side's scale by a pinch ``factor``; returns the clamped scale."""
        slot = self.side(side)
        scale = self.clamp_scale(slot.params.scale * factor)
        slot.params = replace(slot.params, scale=scale)
        return scale

    def apply_rotation(self, side: Side, delta_degrees: float) -> float:
        slot = self.side(side)
        angle = slot.params.angle_degrees + delta_degrees
        slot.params = replace(slot.params, angle_degrees=angle)
        return angle

    def apply_drag(self, side: Side, translation: tuple[float, float], cell_width: float) -> bool:
        """Finish a drag gesture on ``side``.

        When the photo is not zoomed in, a horizontal drag beyond half the cell
        swaps the two sides and the offset is discarded. Otherwise the drag
        pans the photo. Returns True when the sides were swapped.
        """
        slot = self.side(side)
        dx, dy = translation
        if slot.params.scale <= PAN_SCALE_THRESHOLD:
            if abs(dx) > cell_width * 0.5:
                self.swap()
                return True
            return False
        ox, oy = slot.params.offset
        slot.params = replace(slot.params, offset=(ox + dx, oy + dy))
        return False

    def reset(self, side: Side) -> None:
        self.side(side).params = TransformParams()

    # Export
    @property
    def can_export(self) -> bool:
        return self.left.photo is not None and self.right.photo is not None

    def _labels(self) -> tuple[str | None, str | None]:
        if not self.show_labels:
            return None, None
        return self.left.label or None, self.right.label or None

    def render(self, timeout: float | None = None) -> Image.Image:
        """Render the comparison for the current state.

        Raises:
            CompositionError: If a photo is missing.
            PhotosUnavailableError: If a chosen photo cannot be loaded.
            InvalidTransformError: If a side has a non-positive scale.
            ExportTimeoutError: If rendering exceeds ``timeout`` seconds.
        """
        if not self.can_export:
            raise CompositionError("Choose two photos to compare")
        assert self.left.photo is not None and self.right.photo is not None
        left_img = self._cache.get(self.left.photo.file_name)
        right_img = self._cache.get(self.right.photo.file_name)
        if left_img is None or right_img is None:
            raise PhotosUnavailableError("a chosen photo could not be loaded")

        left_label, right_label = self._labels()
        limit = self.export_timeout if timeout is None else timeout
        future = self._pool.submit(
            self._compositor.composite,
            left_img,
            right_img,
            self.left.params,
            self.right.params,
            left_label,
            right_label,
            self.screen_cell_width,
        )
        try:
            return future.result(timeout=limit)
        except FutureTimeout as ex:
            future.cancel()
            logger.warning("Comparison render exceeded {}s", limit)
            raise ExportTimeoutError(f"rendering took longer than {limit}s") from ex

    def generate_preview(self, timeout: float | None = None) -> ActionResult:
        """Render into `preview_image`; one message describes a failure."""
        try:
            self.preview_image = self.render(timeout)
        except PhotoJournalError as ex:
            self.preview_image = None
            logger.warning("Preview failed: {}", ex)
            return ActionResult(False, ex.user_message)
        return ActionResult(True, "")

    def save_preview_to_library(self) -> ActionResult:
        """Hand the rendered preview to the exporter and clear it."""
        image = self.preview_image
        if image is None:
            return ActionResult(False, CompositionError.user_message)
        if self._exporter is None:
            return ActionResult(False, "No photo library is available")
        try:
            self._exporter.save_image(image)
        except PhotoJournalError as ex:
            logger.error("Saving comparison failed: {}", ex)
            return ActionResult(False, ex.user_message)
        finally:
            self.preview_image = None
        return ActionResult(True, MSG_SAVED)

    def discard_preview(self) -> None:
        self.preview_image = None

    def close(self) -> None:
        self._pool.shutdown(wait=False)
