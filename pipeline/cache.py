"""Flat-file artifact cache shared by all stages.

Layout:
    <cache_dir>/<namespace>/<key>.json

Each namespace is one stage (upscaled / ocr / compressed / menu), so the same
key in two stages never collides. Reads never raise: a missing, unreadable or
corrupt entry is a miss. Writes are best effort: a failure is logged and the
run continues with the in-memory value.
"""
import hashlib
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Longest key stored verbatim; keeps file names well under the usual 255-byte limit.
_MAX_KEY_LENGTH = 200


class ContentCache:
    def __init__(self, root: Path) -> None:
        self.root = root

    def path_for(self, namespace: str, key: str) -> Path:
        return self.root / namespace / f"{key}.json"

    def get(self, namespace: str, key: str) -> dict | None:
        path = self.path_for(namespace, key)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.debug("Ignoring unreadable cache entry %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.debug("Ignoring cache entry %s: not a JSON object", path)
            return None
        return data

    def put(self, namespace: str, key: str, payload: dict) -> None:
        path = self.path_for(namespace, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Could not write cache entry %s: %s", path, exc)


def batch_key(filenames: list[str]) -> str:
    """Composite key for the whole-batch stage, sensitive to the ordered file list.

    Long batches are shortened to a prefix plus a SHA-256 digest of the full key.
    """
    key = "all_" + "_".join(filenames)
    if len(key) <= _MAX_KEY_LENGTH:
        return key
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{key[:_MAX_KEY_LENGTH - len(digest) - 1]}_{digest}"
