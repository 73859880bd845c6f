"""Stage 2: Upscale — bring every photo's longest side up to the target size.

Photos already at or above the target are passed through untouched (their
local path becomes the "upscaled" reference) and the upscaler is not called.

Reads:  data/input-menu/<file>
Writes: data/tmp/upscaled/<file>.json  ({"url": ...})
"""
import logging

import httpx

from models.artifacts import ImageItem, UpscaledImage
from pipeline.capabilities import Upscaler
from pipeline.images import fetch_image_bytes, read_dimensions, to_data_uri, upscale_factor
from pipeline.runner import StageRunner
from settings import Settings

logger = logging.getLogger(__name__)

STAGE = "upscaled"


async def run(
    settings: Settings,
    items: list[ImageItem],
    runner: StageRunner,
    upscaler: Upscaler,
    http: httpx.AsyncClient,
) -> list[UpscaledImage]:
    async def _upscale(item: ImageItem, index: int) -> UpscaledImage:
        return await upscale_image(item.reference, settings.target_upscale_size, upscaler, http)

    results = await runner.map(STAGE, items, _upscale, UpscaledImage)
    logger.info("Stage 2 complete — %d photos upscaled", len(results))
    return results


async def upscale_image(
    reference: str,
    target_size: int,
    upscaler: Upscaler,
    http: httpx.AsyncClient,
) -> UpscaledImage:
    image_bytes = await fetch_image_bytes(reference, http)
    width, height, mime = read_dimensions(image_bytes)
    scale = upscale_factor(width, height, target_size)
    logger.debug("%s: %dx%d, scale factor %d", reference, width, height, scale)

    if scale <= 1:
        logger.info("  %s already at %dpx or more — upscaling skipped", reference, target_size)
        return UpscaledImage(url=reference)

    url = await upscaler.upscale(to_data_uri(image_bytes, mime), scale)
    return UpscaledImage(url=url)
