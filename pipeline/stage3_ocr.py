"""Stage 3: OCR — recognize the text on every upscaled photo.

Local references (photos whose upscaling was skipped) are sent inline as a
data URI because the OCR model cannot read the local disk.

Reads:  Stage 2 references
Writes: data/tmp/ocr/<file>.json  ({"text": ...})
"""
import logging

import httpx

from models.artifacts import ImageItem, RecognizedText, UpscaledImage
from pipeline.capabilities import Recognizer
from pipeline.images import fetch_image_bytes, is_remote_reference, read_dimensions, to_data_uri
from pipeline.runner import StageRunner

logger = logging.getLogger(__name__)

STAGE = "ocr"


async def run(
    items: list[ImageItem],
    upscaled: list[UpscaledImage],
    runner: StageRunner,
    recognizer: Recognizer,
    http: httpx.AsyncClient,
) -> list[RecognizedText]:
    async def _recognize(item: ImageItem, index: int) -> RecognizedText:
        reference = await _remote_reference(upscaled[index].url, http)
        text = await recognizer.recognize(reference)
        logger.debug("  %s: %d characters recognized", item.filename, len(text))
        return RecognizedText(text=text)

    results = await runner.map(STAGE, items, _recognize, RecognizedText)
    logger.info(
        "Stage 3 complete — %d photos, %d characters",
        len(results), sum(len(r.text) for r in results),
    )
    return results


async def _remote_reference(reference: str, http: httpx.AsyncClient) -> str:
    if is_remote_reference(reference):
        return reference
    image_bytes = await fetch_image_bytes(reference, http)
    _, _, mime = read_dimensions(image_bytes)
    return to_data_uri(image_bytes, mime)
