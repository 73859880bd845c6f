"""Local image transforms: source resolution, sizing policy, size-budget recompression.

Image references come in four shapes and are dispatched on their prefix only:

    http:// or https://   fetched over the network
    file://               local file, scheme stripped
    data:...;base64,...   decoded inline
    anything else         treated as a local path
"""
import base64
import io
import logging
import math
from collections.abc import Callable
from pathlib import Path

import httpx
from PIL import Image

logger = logging.getLogger(__name__)

_START_QUALITY = 90
_QUALITY_STEP = 10
_MIN_QUALITY = 10  # loop stops once quality would reach this

_FORMAT_MIME = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}

_MIB = 1024 * 1024


async def fetch_image_bytes(reference: str, client: httpx.AsyncClient) -> bytes:
    """Return the raw bytes behind an image reference."""
    if reference.startswith(("http://", "https://")):
        response = await client.get(reference, follow_redirects=True)
        response.raise_for_status()
        return response.content
    if reference.startswith("file://"):
        return Path(reference.removeprefix("file://")).read_bytes()
    if reference.startswith("data:"):
        _, _, payload = reference.partition(",")
        return base64.b64decode(payload)
    return Path(reference).read_bytes()


def is_remote_reference(reference: str) -> bool:
    """True for references a remote model can read without an upload."""
    return reference.startswith(("http://", "https://", "data:"))


def read_dimensions(image_bytes: bytes) -> tuple[int, int, str]:
    """Return (width, height, MIME type) from the encoded image header."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        width, height = img.size
        mime = _FORMAT_MIME.get(img.format or "", "image/jpeg")
    return width, height, mime


def to_data_uri(image_bytes: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(image_bytes).decode()}"


def upscale_factor(width: int, height: int, target_size: int) -> int:
    """Integer factor that brings the longest side to at least ``target_size``.

    A result of 1 or less means the image is already large enough.
    """
    return math.ceil(target_size / max(width, height))


def reencode_jpeg(image_bytes: bytes, quality: int) -> bytes:
    with Image.open(io.BytesIO(image_bytes)) as img:
        rgb = img.convert("RGB") if img.mode != "RGB" else img.copy()
    buf = io.BytesIO()
    rgb.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def compress_to_budget(
    image_bytes: bytes,
    max_bytes: int,
    encode: Callable[[bytes, int], bytes] = reencode_jpeg,
) -> tuple[bytes, int]:
    """Re-encode at falling JPEG quality until the payload fits ``max_bytes``.

    Quality starts at 90 and drops by 10 per pass; the loop ends when the
    payload fits or the next quality would be 10 or lower (at most 8 passes).
    Each pass encodes the previous pass's output. The budget is soft: an
    oversized result is returned with a warning.

    Returns (payload, number of encode passes).
    """
    data = image_bytes
    quality = _START_QUALITY
    passes = 0
    while len(data) > max_bytes and quality > _MIN_QUALITY:
        data = encode(data, quality)
        passes += 1
        logger.debug("Re-encoded at quality %d: %.2f MB", quality, len(data) / _MIB)
        quality -= _QUALITY_STEP

    if len(data) > max_bytes:
        logger.warning(
            "Could not compress below %.2f MB; continuing with %.2f MB",
            max_bytes / _MIB, len(data) / _MIB,
        )
    return data, passes
