"""Ollama implementation of AIResponder."""

from __future__ import annotations

import logging

import httpx

from ideabot.llm.base import DEFAULT_MODEL, AIError, AIResponder

_LOGGER = logging.getLogger(__name__)


class OllamaResponder(AIResponder):
    """Calls Ollama's ``/api/generate`` endpoint with streaming disabled.

    One attempt per call. Callers own the fallback when it fails.
    """

    def __init__(self, base_url: str, timeout_seconds: float) -> None:
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds

    async def respond(self, prompt: str, model: str) -> str:
        payload = {
            "model": model or DEFAULT_MODEL,
            "prompt": prompt,
            "stream": False,
        }

        timeout = httpx.Timeout(self._timeout_seconds)
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=timeout) as client:
                response = await client.post("/api/generate", json=payload)
        except httpx.TimeoutException as exc:
            raise AIError(f"ollama request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise AIError(f"ollama request failed: {exc}") from exc

        body = response.text
        try:
            data = response.json()
        except ValueError as exc:
            raise AIError(f"ollama response: {body}", body=body) from exc

        reply = data.get("response") if isinstance(data, dict) else None
        if not isinstance(reply, str):
            raise AIError(f"ollama response: {body}", body=body)

        _LOGGER.info(
            "AI response: model=%r status=%s content=%r",
            payload["model"],
            response.status_code,
            reply[:200],
        )
        return reply.strip()
