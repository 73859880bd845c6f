"""Runs the five stages in order and writes the final menu.

    Ingest → Upscale → OCR → Compress → Extract → persist output/menu.json

Stages never overlap: each per-photo stage finishes for every photo before the
next starts, and Extract needs all of them at once. Any error aborts the run
before the output file is touched.
"""
import logging
from pathlib import Path

from models.artifacts import ImageItem
from models.menu import MenuDocument
from pipeline import stage1_ingest, stage2_upscale, stage3_ocr, stage4_compress, stage5_extract
from pipeline.cache import ContentCache
from pipeline.capabilities import RemoteCapabilities, open_capabilities
from pipeline.runner import StageRunner
from settings import Settings

logger = logging.getLogger(__name__)


async def run(settings: Settings, capabilities: RemoteCapabilities | None = None) -> Path:
    """Process every photo in the input directory; return the output path.

    ``capabilities`` defaults to the real remote models built from ``settings``.
    """
    logger.info("=== Stage 1: Ingest ===")
    items = stage1_ingest.run(settings)

    if capabilities is None:
        async with open_capabilities(settings) as remote:
            menu = await _run_stages(settings, items, remote)
    else:
        menu = await _run_stages(settings, items, capabilities)

    path = write_menu(settings, menu)
    logger.info(
        "%d photos → %d categories, %d dishes",
        len(items), len(menu.categories), menu.dish_count,
    )
    return path


async def _run_stages(
    settings: Settings,
    items: list[ImageItem],
    remote: RemoteCapabilities,
) -> MenuDocument:
    runner = StageRunner(
        ContentCache(settings.cache_dir),
        max_concurrency=settings.max_concurrency,
        timeout=settings.remote_timeout_seconds,
    )

    logger.info("=== Stage 2: Upscale ===")
    upscaled = await stage2_upscale.run(settings, items, runner, remote.upscaler, remote.http)

    logger.info("=== Stage 3: OCR ===")
    texts = await stage3_ocr.run(items, upscaled, runner, remote.recognizer, remote.http)

    logger.info("=== Stage 4: Compress ===")
    images = await stage4_compress.run(settings, items, upscaled, runner, remote.http)

    logger.info("=== Stage 5: Extract ===")
    return await stage5_extract.run(settings, items, texts, images, runner, remote.extractor)


def write_menu(settings: Settings, menu: MenuDocument) -> Path:
    """Write the menu to ``output/menu.json``, replacing any previous file."""
    path = settings.output_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(menu.to_json(), encoding="utf-8")
    logger.info("Menu written → %s", path)
    return path
