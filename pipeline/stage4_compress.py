"""Stage 4: Compress — shrink every upscaled photo under the upload budget.

Independent of Stage 3: both read the Stage 2 references.

Reads:  Stage 2 references
Writes: data/tmp/compressed/<file>.json  ({"base64": ...})
"""
import base64
import logging

import httpx

from models.artifacts import CompressedImage, ImageItem, UpscaledImage
from pipeline.images import compress_to_budget, fetch_image_bytes
from pipeline.runner import StageRunner
from settings import Settings

logger = logging.getLogger(__name__)

STAGE = "compressed"


async def run(
    settings: Settings,
    items: list[ImageItem],
    upscaled: list[UpscaledImage],
    runner: StageRunner,
    http: httpx.AsyncClient,
) -> list[CompressedImage]:
    async def _compress(item: ImageItem, index: int) -> CompressedImage:
        image_bytes = await fetch_image_bytes(upscaled[index].url, http)
        payload, passes = compress_to_budget(image_bytes, settings.max_compressed_size)
        logger.debug(
            "  %s: %d → %d bytes in %d passes",
            item.filename, len(image_bytes), len(payload), passes,
        )
        return CompressedImage(base64=base64.b64encode(payload).decode())

    results = await runner.map(STAGE, items, _compress, CompressedImage)
    logger.info("Stage 4 complete — %d photos compressed", len(results))
    return results
