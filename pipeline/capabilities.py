"""Adapters for the three remote models the pipeline depends on.

    Upscaler    Replicate  image data URI + integer scale  → output image URL
    Recognizer  Replicate  image URL / data URI            → markdown text
    Extractor   OpenRouter prompt + base64 JPEG images     → raw response text

Each adapter only shapes requests and responses; prompts, caching and
parsing live in the stage modules.
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import openai

from pipeline.exceptions import RemoteCapabilityError
from settings import Settings
from utils.openai_utils import json_schema_response_format
from utils.replicate_client import ReplicateClient

logger = logging.getLogger(__name__)

_OCR_TASK_TYPE = "Convert to Markdown"
_OCR_RESOLUTION = "Gundam (Recommended)"


class Upscaler:
    def __init__(self, replicate: ReplicateClient, model: str) -> None:
        self._replicate = replicate
        self._model = model

    async def upscale(self, image_data_uri: str, scale_factor: int) -> str:
        output = await self._replicate.run(
            self._model, {"image": image_data_uri, "scale_factor": scale_factor}
        )
        if isinstance(output, list):
            output = output[0] if output else None
        if not isinstance(output, str) or not output:
            raise RemoteCapabilityError(f"{self._model}: upscaler returned no image")
        return output


class Recognizer:
    def __init__(self, replicate: ReplicateClient, model: str) -> None:
        self._replicate = replicate
        self._model = model

    async def recognize(self, image_reference: str) -> str:
        output = await self._replicate.run(
            self._model,
            {
                "image": image_reference,
                "task_type": _OCR_TASK_TYPE,
                "resolution_size": _OCR_RESOLUTION,
            },
        )
        # Streaming-capable models return the text as a list of chunks.
        if isinstance(output, list):
            output = "".join(str(chunk) for chunk in output)
        if output is None:
            return ""
        if not isinstance(output, str):
            raise RemoteCapabilityError(
                f"{self._model}: unexpected OCR output type {type(output).__name__}"
            )
        return output


class Extractor:
    def __init__(self, client: openai.AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    async def extract(
        self,
        prompt: str,
        images_base64: list[str],
        json_schema: dict | None = None,
    ) -> str:
        """Send one multi-part request; return the model's text answer.

        With ``json_schema`` the request uses schema-constrained output.
        """
        content = [{"type": "text", "text": prompt}] + [
            {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{b64}"}}
            for b64 in images_base64
        ]
        kwargs = {}
        if json_schema is not None:
            kwargs["response_format"] = json_schema_response_format("menu", json_schema)

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                stream=False,
                messages=[{"role": "user", "content": content}],
                **kwargs,
            )
        except openai.APIError as exc:
            raise RemoteCapabilityError(f"{self._model}: extraction request failed: {exc}") from exc

        if not response.choices:
            raise RemoteCapabilityError(f"{self._model}: extraction returned no choices")
        text = response.choices[0].message.content
        if not text:
            raise RemoteCapabilityError(f"{self._model}: extraction returned an empty response")
        return text


@dataclass
class RemoteCapabilities:
    http: httpx.AsyncClient
    upscaler: Upscaler
    recognizer: Recognizer
    extractor: Extractor


@asynccontextmanager
async def open_capabilities(settings: Settings) -> AsyncIterator[RemoteCapabilities]:
    """Build the remote adapters on shared clients and close them afterwards.

    Provider-side retries are disabled: a failed call fails the run.
    """
    async with httpx.AsyncClient(timeout=settings.remote_timeout_seconds) as http:
        replicate = ReplicateClient(
            http,
            settings.replicate_api_token,
            base_url=settings.replicate_base_url,
            poll_interval=settings.replicate_poll_interval,
        )
        llm = openai.AsyncOpenAI(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=settings.remote_timeout_seconds,
            max_retries=0,
        )
        try:
            yield RemoteCapabilities(
                http=http,
                upscaler=Upscaler(replicate, settings.upscaler_model),
                recognizer=Recognizer(replicate, settings.ocr_model),
                extractor=Extractor(llm, settings.extraction_model),
            )
        finally:
            await llm.close()
