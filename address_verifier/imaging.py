"""
Evidence image compression.

Phone cameras produce multi-megabyte photos; records embed images directly,
so every upload is shrunk to a small JPEG data URI (~50-80 KB) before it
joins the draft:

  1. Decode (Pillow), honour the EXIF orientation
  2. Downscale uniformly so width <= max_width (never upscale)
  3. Re-encode as lossy JPEG at the requested quality
  4. Wrap as a self-contained data URI
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import BinaryIO

from PIL import Image, ImageOps, UnidentifiedImageError

from .exceptions import ImageDecodeError

logger = logging.getLogger(__name__)

MAX_WIDTH = 800
QUALITY = 0.6
OUTPUT_MIME = "image/jpeg"


def compress_image(
    raw: bytes | BinaryIO, max_width: int = MAX_WIDTH, quality: float = QUALITY
) -> str:
    """Compress an image into a JPEG data URI.

    Args:
        raw: Encoded image bytes (or a binary file object) in any Pillow format.
        max_width: Upper bound for the output width in pixels.
        quality: Lossy quality in the 0.0-1.0 range.

    Raises:
        ValueError: max_width is not positive or quality is outside (0, 1].
        ImageDecodeError: If the input is not a decodable image, or is too
            large to decode safely.
    """
    if max_width <= 0:
        raise ValueError(f"max_width must be positive, got {max_width}")
    if not 0 < quality <= 1:
        raise ValueError(f"quality must be in (0, 1], got {quality}")

    stream = io.BytesIO(raw) if isinstance(raw, (bytes, bytearray)) else raw

    try:
        img = Image.open(stream)
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Image processing failed: {e}") from e

    img = ImageOps.exif_transpose(img).convert("RGB")

    w, h = img.size
    if w > max_width:
        scale = max_width / float(w)
        img = img.resize((max_width, max(1, int(h * scale))), Image.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=_pillow_quality(quality), optimize=True)
    data = buf.getvalue()
    logger.debug("Compressed %dx%d image to %d bytes", w, h, len(data))

    return to_data_uri(data, OUTPUT_MIME)


def to_data_uri(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """Split a base64 data URI into (mime, bytes).

    Raises:
        ImageDecodeError: If the value is not a base64 data URI.
    """
    if not uri.startswith("data:") or ";base64," not in uri:
        raise ImageDecodeError("Not a base64 data URI")
    header, _, payload = uri.partition(";base64,")
    try:
        return header[len("data:"):], base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Corrupt data URI payload: {e}") from e


def _pillow_quality(quality: float) -> int:
    # Pillow wants 1-95; anything above 95 disables useful JPEG compression
    return max(1, min(95, int(round(quality * 100))))
