"""Fan-out executor shared by the per-image stages.

``StageRunner.map`` launches one task per image, consults the cache for each,
and returns the artifacts in input order no matter which task finishes first.
A failing image fails the whole stage with an error naming that image; its
still-running siblings are cancelled. Images finished before the failure stay
cached for the next run.

Concurrency is bounded by a semaphore (``max_concurrency``) and every uncached
operation runs under a deadline (``timeout``). Cache hits bypass both.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from models.artifacts import ImageItem
from pipeline.cache import ContentCache
from pipeline.exceptions import RemoteTimeoutError, StageItemError, StageTimeoutError

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=BaseModel)


class StageRunner:
    def __init__(self, cache: ContentCache, max_concurrency: int, timeout: float) -> None:
        self.cache = cache
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def map(
        self,
        stage: str,
        items: list[ImageItem],
        operation: Callable[[ImageItem, int], Awaitable[A]],
        artifact_type: type[A],
    ) -> list[A]:
        """Run ``operation`` for every item concurrently; results keep input order."""
        tasks = [
            asyncio.create_task(self._run_item(stage, items, index, operation, artifact_type))
            for index in range(len(items))
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def run_once(
        self,
        stage: str,
        key: str,
        operation: Callable[[], Awaitable[A]],
        artifact_type: type[A],
    ) -> A:
        """Run a single whole-batch operation under ``key``, cached like any item."""
        cached = self._load(stage, key, artifact_type)
        if cached is not None:
            logger.info("  %s — from cache (%s)", stage, key)
            return cached

        try:
            artifact = await asyncio.wait_for(operation(), self.timeout)
        except asyncio.TimeoutError:
            raise RemoteTimeoutError(stage, self.timeout) from None
        self.cache.put(stage, key, artifact.model_dump(mode="json", by_alias=True))
        return artifact

    async def _run_item(
        self,
        stage: str,
        items: list[ImageItem],
        index: int,
        operation: Callable[[ImageItem, int], Awaitable[A]],
        artifact_type: type[A],
    ) -> A:
        item = items[index]
        position = f"[{index + 1}/{len(items)}]"

        cached = self._load(stage, item.filename, artifact_type)
        if cached is not None:
            logger.info("  %s %s — %s from cache", position, item.filename, stage)
            return cached

        async with self._semaphore:
            logger.info("  %s %s — %s started", position, item.filename, stage)
            try:
                artifact = await asyncio.wait_for(operation(item, index), self.timeout)
            except asyncio.TimeoutError:
                logger.error("  %s %s — %s timed out", position, item.filename, stage)
                raise StageTimeoutError(stage, index, item.filename, self.timeout) from None
            except Exception as exc:
                logger.error("  %s %s — %s failed: %s", position, item.filename, stage, exc)
                raise StageItemError(stage, index, item.filename, exc) from exc

        self.cache.put(stage, item.filename, artifact.model_dump(mode="json", by_alias=True))
        logger.info("  %s %s — %s done", position, item.filename, stage)
        return artifact

    def _load(self, stage: str, key: str, artifact_type: type[A]) -> A | None:
        data = self.cache.get(stage, key)
        if data is None:
            return None
        try:
            return artifact_type.model_validate(data)
        except ValidationError as exc:
            logger.debug("Cache entry %s/%s does not match %s: %s",
                         stage, key, artifact_type.__name__, exc)
            return None
