"""Tests for OllamaResponder and prompt construction."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ideabot.llm.base import DEFAULT_MODEL, DEFAULT_PROMPT, AIError, build_prompt
from ideabot.llm.ollama import OllamaResponder


def _mock_response(data: object = None, text: str = "", status_code: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    if isinstance(data, Exception):
        resp.json.side_effect = data
    else:
        resp.json.return_value = data
    return resp


def _mock_client(post: AsyncMock) -> AsyncMock:
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.post = post
    return client


@pytest.mark.asyncio
async def test_respond_posts_generate_request_and_returns_text():
    post = AsyncMock(return_value=_mock_response({"response": "  Hi there!  \n"}))
    with patch("ideabot.llm.ollama.httpx.AsyncClient", return_value=_mock_client(post)) as client_cls:
        reply = await OllamaResponder("http://ollama:11434", timeout_seconds=5).respond("hello", "mistral")

    assert reply == "Hi there!"
    post.assert_awaited_once_with(
        "/api/generate",
        json={"model": "mistral", "prompt": "hello", "stream": False},
    )
    assert client_cls.call_args.kwargs["base_url"] == "http://ollama:11434"


@pytest.mark.asyncio
async def test_empty_model_uses_default():
    post = AsyncMock(return_value=_mock_response({"response": "ok"}))
    with patch("ideabot.llm.ollama.httpx.AsyncClient", return_value=_mock_client(post)):
        await OllamaResponder("http://ollama", timeout_seconds=5).respond("hello", "")

    assert post.call_args.kwargs["json"]["model"] == DEFAULT_MODEL


@pytest.mark.asyncio
async def test_body_without_response_field_raises_with_body():
    body = '{"error":"model \\"nope\\" not found"}'
    post = AsyncMock(return_value=_mock_response({"error": 'model "nope" not found'}, text=body, status_code=404))
    with patch("ideabot.llm.ollama.httpx.AsyncClient", return_value=_mock_client(post)):
        with pytest.raises(AIError) as excinfo:
            await OllamaResponder("http://ollama", timeout_seconds=5).respond("hello", "nope")

    assert excinfo.value.body == body
    assert "not found" in str(excinfo.value)


@pytest.mark.asyncio
async def test_non_json_body_raises():
    post = AsyncMock(return_value=_mock_response(ValueError("bad json"), text="<html>502</html>", status_code=502))
    with patch("ideabot.llm.ollama.httpx.AsyncClient", return_value=_mock_client(post)):
        with pytest.raises(AIError) as excinfo:
            await OllamaResponder("http://ollama", timeout_seconds=5).respond("hello", "llama3")

    assert excinfo.value.body == "<html>502</html>"


@pytest.mark.asyncio
async def test_connection_failure_is_single_attempt():
    post = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
    with patch("ideabot.llm.ollama.httpx.AsyncClient", return_value=_mock_client(post)):
        with pytest.raises(AIError, match="connection refused"):
            await OllamaResponder("http://ollama", timeout_seconds=5).respond("hello", "llama3")

    assert post.await_count == 1


@pytest.mark.asyncio
async def test_timeout_raises_ai_error():
    post = AsyncMock(side_effect=httpx.ReadTimeout("read timed out"))
    with patch("ideabot.llm.ollama.httpx.AsyncClient", return_value=_mock_client(post)):
        with pytest.raises(AIError, match="timed out"):
            await OllamaResponder("http://ollama", timeout_seconds=5).respond("hello", "llama3")


class TestBuildPrompt:
    def test_uses_configured_prompt(self):
        assert build_prompt("Be terse.", "hi") == "Be terse.\n\nUser message: hi"

    def test_empty_prompt_uses_default(self):
        assert build_prompt("  ", "hi") == f"{DEFAULT_PROMPT}\n\nUser message: hi"

    def test_category_is_included(self):
        prompt = build_prompt("", "it crashes", category="issue")
        assert prompt.startswith(DEFAULT_PROMPT)
        assert "Message type: issue." in prompt
        assert prompt.endswith("User message: it crashes")
