"""Minimal async client for the Replicate predictions HTTP API.

A model reference is either ``owner/name`` (runs the model's latest version via
``POST /models/{owner}/{name}/predictions``) or ``owner/name:version``
(``POST /predictions`` with an explicit version). The request asks the server to
hold the connection until the prediction finishes (``Prefer: wait``); anything
still running after that is polled via ``urls.get``.
"""
import asyncio
import logging
from typing import Any

import httpx

from pipeline.exceptions import RemoteCapabilityError

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


class ReplicateClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_token: str,
        base_url: str = "https://api.replicate.com/v1",
        poll_interval: float = 1.0,
    ) -> None:
        self._http = http
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Prefer": "wait",
        }
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval

    async def run(self, model: str, model_input: dict[str, Any]) -> Any:
        """Create a prediction, wait for it to finish, return its ``output``."""
        url, body = self._prediction_request(model, model_input)
        prediction = await self._send("POST", url, json=body)

        while prediction.get("status") not in _TERMINAL_STATUSES:
            poll_url = (prediction.get("urls") or {}).get("get")
            if not poll_url:
                raise RemoteCapabilityError(f"{model}: prediction has no poll URL")
            await asyncio.sleep(self._poll_interval)
            prediction = await self._send("GET", poll_url)

        status = prediction["status"]
        if status != "succeeded":
            error = prediction.get("error") or "no error message"
            raise RemoteCapabilityError(f"{model}: prediction {status}: {error}")
        logger.debug("%s: prediction %s succeeded", model, prediction.get("id"))
        return prediction.get("output")

    def _prediction_request(self, model: str, model_input: dict[str, Any]) -> tuple[str, dict]:
        name, _, version = model.partition(":")
        if version:
            return f"{self._base_url}/predictions", {"version": version, "input": model_input}
        return f"{self._base_url}/models/{name}/predictions", {"input": model_input}

    async def _send(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = await self._http.request(method, url, headers=self._headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteCapabilityError(
                f"Replicate API error {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteCapabilityError(f"Replicate network error: {exc}") from exc
        return response.json()
