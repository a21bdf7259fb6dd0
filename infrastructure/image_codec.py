"""Pillow-based decode/encode helpers.

Decoding normalizes every image to an upright RGB/RGBA buffer by applying
the EXIF orientation once, so the rest of the app never deals with
orientation metadata. HEIC/HEIF input is handled through pillow-heif.
"""

from __future__ import annotations

import io

from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from core.errors import DecodeFailureError

register_heif_opener()


def decode_image(data: bytes) -> Image.Image:
    """Decode ``data`` into an upright, fully loaded RGB or RGBA image.

    Raises:
        DecodeFailureError: If the bytes are not a readable image.
    """
    if not data:
        raise DecodeFailureError("empty image payload")
    try:
        with Image.open(io.BytesIO(data)) as im:
            upright = ImageOps.exif_transpose(im)
            if upright is None:  # pragma: no cover - only for in_place=True
                upright = im
            mode = "RGBA" if "A" in upright.getbands() else "RGB"
            out = upright.convert(mode) if upright.mode != mode else upright.copy()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as ex:
        logger.debug("Decode failed ({} bytes): {}", len(data), ex)
        raise DecodeFailureError(f"not a valid image: {ex}") from ex
    out.info.pop("exif", None)
    return out


def encode_jpeg(image: Image.Image, quality: int = 80) -> bytes:
    """Encode ``image`` as a baseline JPEG without orientation metadata."""
    rgb = image if image.mode == "RGB" else _flatten(image)
    buf = io.BytesIO()
    rgb.save(buf, "JPEG", quality=int(quality), optimize=True)
    return buf.getvalue()


def encode_png(image: Image.Image) -> bytes:
    """Encode ``image`` losslessly, keeping alpha."""
    buf = io.BytesIO()
    image.save(buf, "PNG")
    return buf.getvalue()


def _flatten(image: Image.Image) -> Image.Image:
    """Drop alpha onto white, the way a JPEG export would show it."""
    if "A" not in image.getbands():
        return image.convert("RGB")
    rgba = image.convert("RGBA")
    bg = Image.new("RGB", rgba.size, (255, 255, 255))
    bg.paste(rgba, mask=rgba.getchannel("A"))
    return bg
