"""Side-by-side comparison image rendering.

Lays out two transformed photos in equal 3:4 cells with an optional label
strip. All geometry is derived from a fixed logical content width and a
reference on-screen cell width, so an export looks like a scaled-up copy of
the live comparison regardless of the device it came from.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger
from PIL import Image, ImageChops, ImageDraw, ImageFont

from core.errors import CompositionError
from core.models import TransformParams
from core.services.transform_service import fit_size, scale_offset, transform

# Logical layout (device independent units)
CONTENT_WIDTH: float = 1600
CELL_GAP: float = 2
EDGE_PADDING: float = 48
CELL_ASPECT: float = 3 / 4  # width / height

# On-screen reference values the export is proportioned against
REFERENCE_CELL_WIDTH: float = 200
REFERENCE_CORNER_RADIUS: float = 12
REFERENCE_LABEL_FONT_SIZE: float = 18
REFERENCE_LABEL_SPACING: float = 8
REFERENCE_LABEL_HEIGHT: float = 28

DEFAULT_RENDER_SCALE: float = 2


class FitMode(str, Enum):
    """How a transformed photo is placed into its cell."""

    #: Centre the transformed photo in the cell and clip what overflows.
    #: This is what the live comparison view shows.
    CLIP = "clip"
    #: Shrink the whole transformed photo to fit inside the cell, no cropping.
    FIT = "fit"

    @classmethod
    def parse(cls, value: object, default: FitMode | None = None) -> FitMode:
        """Parse a settings value, falling back to ``default`` (or CLIP)."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            fallback = default or cls.CLIP
            logger.warning("Unknown fit mode {!r}, using {}", value, fallback.value)
            return fallback


@dataclass(frozen=True)
class CompositorStyle:
    """Colours borrowed from the page theme."""

    background: tuple[int, int, int] = (250, 237, 216)
    label_color: tuple[int, int, int] = (142, 142, 147)
    font_path: str | None = None


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class CompareLayout:
    """Pixel geometry of one composite render."""

    canvas_size: tuple[int, int]
    left_cell: Rect
    right_cell: Rect
    corner_radius: int
    label_strip: Rect | None
    font_size: int
    #: Cell width in pixels divided by the reference on-screen cell width.
    screen_ratio: float


class CompareCompositor:
    """Render two photos with their transforms into a single comparison image.

    Args:
        fit_mode: Placement of the transformed photo in its cell.
        render_scale: Pixels per logical unit of the output.
        style: Background and label colours.
        edge_padding: Logical padding around the cell row.
    """

    def __init__(
        self,
        fit_mode: FitMode = FitMode.CLIP,
        render_scale: float = DEFAULT_RENDER_SCALE,
        style: CompositorStyle | None = None,
        edge_padding: float = EDGE_PADDING,
    ) -> None:
        if render_scale <= 0:
            raise ValueError(f"render_scale must be positive: {render_scale}")
        self.fit_mode = fit_mode
        self.render_scale = float(render_scale)
        self.style = style or CompositorStyle()
        self.edge_padding = float(edge_padding)
        self._fonts: dict[int, ImageFont.ImageFont | ImageFont.FreeTypeFont] = {}

    # Geometry
    def _px(self, units: float) -> int:
        return int(round(units * self.render_scale))

    def layout(self, has_labels: bool) -> CompareLayout:
        """Compute the pixel layout for a render with or without labels."""
        cell_units = (CONTENT_WIDTH - CELL_GAP) / 2
        unit_ratio = cell_units / REFERENCE_CELL_WIDTH

        pad = self._px(self.edge_padding)
        gap = self._px(CELL_GAP)
        cell_w = self._px(cell_units)
        cell_h = self._px(cell_units / CELL_ASPECT)
        content_w = cell_w * 2 + gap

        left = Rect(pad, pad, cell_w, cell_h)
        right = Rect(pad + cell_w + gap, pad, cell_w, cell_h)

        label_strip: Rect | None = None
        content_h = cell_h
        if has_labels:
            spacing = self._px(REFERENCE_LABEL_SPACING * unit_ratio)
            strip_h = self._px(REFERENCE_LABEL_HEIGHT * unit_ratio)
            label_strip = Rect(pad, pad + cell_h + spacing, content_w, strip_h)
            content_h += spacing + strip_h

        return CompareLayout(
            canvas_size=(content_w + pad * 2, content_h + pad * 2),
            left_cell=left,
            right_cell=right,
            corner_radius=self._px(cell_units * REFERENCE_CORNER_RADIUS / REFERENCE_CELL_WIDTH),
            label_strip=label_strip,
            font_size=max(1, self._px(REFERENCE_LABEL_FONT_SIZE * unit_ratio)),
            screen_ratio=cell_w / REFERENCE_CELL_WIDTH,
        )

    # Rendering
    def composite(
        self,
        left_image: Image.Image | None,
        right_image: Image.Image | None,
        left_params: TransformParams | None = None,
        right_params: TransformParams | None = None,
        left_label: str | None = None,
        right_label: str | None = None,
        screen_cell_width: float = REFERENCE_CELL_WIDTH,
    ) -> Image.Image:
        """Render the comparison image.

        Args:
            left_image: Decoded left photo.
            right_image: Decoded right photo.
            left_params: Transform for the left side (identity when None).
            right_params: Transform for the right side (identity when None).
            left_label: Text under the left cell; empty or None to omit.
            right_label: Text under the right cell; empty or None to omit.
            screen_cell_width: Width of the on-screen cell the offsets were
                recorded in.

        Raises:
            CompositionError: If either image is missing.
            InvalidTransformError: If a side's scale is not positive.
        """
        if left_image is None and right_image is None:
            raise CompositionError("Both comparison images are missing")
        if left_image is None or right_image is None:
            side = "left" if left_image is None else "right"
            raise CompositionError(f"The {side} comparison image is missing")

        has_labels = bool(left_label) or bool(right_label)
        geo = self.layout(has_labels)
        canvas = Image.new("RGB", geo.canvas_size, self.style.background)

        sides = (
            (left_image, left_params or TransformParams(), geo.left_cell),
            (right_image, right_params or TransformParams(), geo.right_cell),
        )
        for image, params, cell in sides:
            rendered = self.render_cell(image, params, cell.size, screen_cell_width)
            mask = self._cell_mask(rendered, cell.size, geo.corner_radius)
            canvas.paste(rendered.convert("RGB"), (cell.x, cell.y), mask)

        if geo.label_strip is not None:
            self._draw_labels(canvas, geo, left_label, right_label)

        logger.debug(
            "Composite rendered {}x{} (fit={}, labels={})",
            canvas.width,
            canvas.height,
            self.fit_mode.value,
            has_labels,
        )
        return canvas

    def render_cell(
        self,
        image: Image.Image,
        params: TransformParams,
        cell_size: tuple[int, int],
        screen_cell_width: float = REFERENCE_CELL_WIDTH,
    ) -> Image.Image:
        """Render one side into a transparent RGBA image of ``cell_size``.

        The photo is first aspect-fitted into the cell, then transformed with
        its offset rescaled from the on-screen cell to this cell, then placed
        according to `fit_mode`.
        """
        cell_w, cell_h = cell_size
        base_size = fit_size(image.width, image.height, cell_w, cell_h)
        base = image if image.mode == "RGBA" else image.convert("RGBA")
        if base.size != base_size:
            base = base.resize(base_size, Image.Resampling.LANCZOS)

        offset = scale_offset(params.offset, screen_cell_width, cell_w)
        moved = transform(base, params.scale, params.angle_degrees, offset)

        if self.fit_mode is FitMode.FIT and (moved.width > cell_w or moved.height > cell_h):
            moved = moved.resize(
                fit_size(moved.width, moved.height, cell_w, cell_h), Image.Resampling.LANCZOS
            )

        cell = Image.new("RGBA", cell_size, (0, 0, 0, 0))
        # Centred paste; negative coordinates clip the overflow
        cell.paste(moved, ((cell_w - moved.width) // 2, (cell_h - moved.height) // 2))
        return cell

    def _cell_mask(
        self, rendered: Image.Image, size: tuple[int, int], radius: int
    ) -> Image.Image:
        rounded = Image.new("L", size, 0)
        ImageDraw.Draw(rounded).rounded_rectangle(
            (0, 0, size[0] - 1, size[1] - 1), radius=radius, fill=255
        )
        return ImageChops.multiply(rendered.getchannel("A"), rounded)

    def _font(self, size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
        font = self._fonts.get(size)
        if font is not None:
            return font
        if self.style.font_path:
            try:
                font = ImageFont.truetype(self.style.font_path, size)
            except OSError as ex:
                logger.warning("Font {} unavailable ({}), using default", self.style.font_path, ex)
        if font is None:
            font = ImageFont.load_default(size=size)
        self._fonts[size] = font
        return font

    def _draw_labels(
        self,
        canvas: Image.Image,
        geo: CompareLayout,
        left_label: str | None,
        right_label: str | None,
    ) -> None:
        assert geo.label_strip is not None
        draw = ImageDraw.Draw(canvas)
        font = self._font(geo.font_size)
        strip = geo.label_strip
        for text, cell in ((left_label, geo.left_cell), (right_label, geo.right_cell)):
            if not text:
                continue
            left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
            x = cell.x + (cell.width - (right - left)) / 2 - left
            y = strip.y + (strip.height - (bottom - top)) / 2 - top
            draw.text((x, y), text, fill=self.style.label_color, font=font)
