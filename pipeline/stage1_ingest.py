"""Stage 1: Ingest — list the menu photos to process.

Reads:  data/input-menu/*.jpg|*.jpeg|*.png  (case-insensitive)
Writes: nothing; creates the cache and output directories.
"""
import logging

from models.artifacts import ImageItem
from pipeline.exceptions import InputError
from settings import Settings

logger = logging.getLogger(__name__)

_PHOTO_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


def run(settings: Settings) -> list[ImageItem]:
    """Return one ImageItem per menu photo, sorted by file name.

    Raises InputError when the input directory is missing or holds no photos.
    """
    if not settings.input_dir.is_dir():
        raise InputError(f"Input directory not found: {settings.input_dir}")

    items = [
        ImageItem(filename=f.name, path=f)
        for f in sorted(settings.input_dir.iterdir())
        if f.is_file() and f.suffix.lower() in _PHOTO_EXTENSIONS
    ]
    if not items:
        raise InputError(f"No menu photos (.jpg, .jpeg, .png) in {settings.input_dir}")

    _ensure_dirs(settings)

    logger.info("Stage 1 complete — %d photos in %s", len(items), settings.input_dir)
    for item in items:
        logger.debug("  %s", item.filename)
    return items


def _ensure_dirs(settings: Settings) -> None:
    settings.cache_dir.mkdir(parents=True, exist_ok=True)
    settings.output_dir.mkdir(parents=True, exist_ok=True)
