"""Per-image pipeline artifacts.

``ImageItem`` is created once by Stage 1 and never changes during a run.
The three stage artifacts are the exact payloads stored in the cache:

    tmp/upscaled/<file>.json    {"url": ...}
    tmp/ocr/<file>.json         {"text": ...}
    tmp/compressed/<file>.json  {"base64": ...}
"""
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ImageItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str  # identity within a run; also the per-image cache key
    path: Path

    @property
    def reference(self) -> str:
        return str(self.path)


class UpscaledImage(BaseModel):
    url: str  # remote URL, or the original local path when upscaling was skipped


class RecognizedText(BaseModel):
    text: str


class CompressedImage(BaseModel):
    base64: str
