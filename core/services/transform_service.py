"""Scale, rotation and translation of images for comparison editing.

The functions here are pure: they never mutate their input and always return
a freshly allocated image. The identity transform keeps the source mode; any
other transform yields RGBA. Behaviour depends only on the scale, angle and
offset values, so the same call renders the live preview and the export; the
caller converts offsets between coordinate spaces with `scale_offset`.
"""

from __future__ import annotations

import math

from PIL import Image

from core.errors import InvalidTransformError
from core.models import TransformParams

_RESAMPLE = Image.Resampling.LANCZOS
_ROTATE_RESAMPLE = Image.Resampling.BICUBIC


def rotated_bounds(width: float, height: float, angle_degrees: float) -> tuple[int, int]:
    """Axis-aligned bounding box of a ``width`` x ``height`` rect after rotation."""
    radians = math.radians(angle_degrees % 360)
    c = abs(math.cos(radians))
    s = abs(math.sin(radians))
    new_w = width * c + height * s
    new_h = width * s + height * c
    return max(1, int(round(new_w))), max(1, int(round(new_h)))


def scale_offset(
    offset: tuple[float, float], from_width: float, to_width: float
) -> tuple[float, float]:
    """Convert an offset recorded in a cell of ``from_width`` to a cell of ``to_width``."""
    if from_width <= 0:
        raise ValueError(f"from_width must be positive: {from_width}")
    ratio = to_width / from_width
    return offset[0] * ratio, offset[1] * ratio


def _check_scale(scale: float) -> None:
    if not isinstance(scale, (int, float)) or math.isnan(scale) or math.isinf(scale):
        raise InvalidTransformError(f"scale must be a finite number, got {scale!r}")
    if scale <= 0:
        raise InvalidTransformError(f"scale must be positive, got {scale}")


def transform(
    image: Image.Image,
    scale: float,
    angle_degrees: float = 0.0,
    offset: tuple[float, float] = (0.0, 0.0),
) -> Image.Image:
    """Apply scale, then rotation, then translation to ``image``.

    Args:
        image: Source image; left untouched.
        scale: Resample factor, must be > 0.
        angle_degrees: Clockwise rotation in screen convention. Multiples of
            360 skip the rotation step.
        offset: ``(dx, dy)`` translation in output pixels. Content moved past
            the canvas edge is clipped; the canvas never grows.

    Raises:
        InvalidTransformError: If ``scale`` is not a positive finite number.
    """
    _check_scale(scale)

    angle = float(angle_degrees) % 360
    dx, dy = offset
    if scale == 1 and angle == 0 and dx == 0 and dy == 0:
        return image.copy()

    work = image if image.mode == "RGBA" else image.convert("RGBA")

    # 1) scale
    if scale == 1:
        scaled = work.copy()
    else:
        w = max(1, int(round(work.width * scale)))
        h = max(1, int(round(work.height * scale)))
        scaled = work.resize((w, h), _RESAMPLE)

    # 2) rotate about the centre of the bounding canvas
    if angle == 0:
        rotated = scaled
    else:
        bounds = rotated_bounds(scaled.width, scaled.height, angle)
        # Pillow rotates counter-clockwise; screen rotation is clockwise
        turned = scaled.rotate(-angle, resample=_ROTATE_RESAMPLE, expand=True)
        rotated = Image.new("RGBA", bounds, (0, 0, 0, 0))
        rotated.paste(
            turned,
            ((bounds[0] - turned.width) // 2, (bounds[1] - turned.height) // 2),
        )

    # 3) translate within a same-size canvas
    if dx == 0 and dy == 0:
        return rotated
    shifted = Image.new("RGBA", rotated.size, (0, 0, 0, 0))
    shifted.paste(rotated, (int(round(dx)), int(round(dy))))
    return shifted


def apply_params(image: Image.Image, params: TransformParams) -> Image.Image:
    """Shorthand for `transform` driven by a `TransformParams` value."""
    return transform(image, params.scale, params.angle_degrees, params.offset)


def fit_size(
    width: float, height: float, box_width: float, box_height: float
) -> tuple[int, int]:
    """Size of a ``width`` x ``height`` image aspect-fitted into the box."""
    if width <= 0 or height <= 0:
        return max(1, int(round(box_width))), max(1, int(round(box_height)))
    ratio = min(box_width / width, box_height / height)
    return max(1, int(round(width * ratio))), max(1, int(round(height * ratio)))


def downscale_to_fit(image: Image.Image, max_side: int) -> Image.Image:
    """Return a copy no larger than ``max_side`` on its longest edge, preserving aspect."""
    longest = max(image.width, image.height)
    if longest <= max_side:
        return image.copy()
    size = fit_size(image.width, image.height, max_side, max_side)
    return image.resize(size, _RESAMPLE)
