"""
Tests for the Ollama HTTP client against a stubbed transport.
"""

import json

import httpx
import pytest

from causal_nba_agent.models.llm_client import LLMClient, Message


def make_client(handler, max_retries: int = 0) -> LLMClient:
    return LLMClient(
        model="test-model",
        endpoint="http://ollama.test",
        max_retries=max_retries,
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_chat_posts_generate_request() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        assert request.url.path == "/api/generate"
        return httpx.Response(
            200,
            json={
                "model": "test-model",
                "response": '  {"ok": true}  ',
                "done_reason": "stop",
                "prompt_eval_count": 12,
                "eval_count": 4,
            },
        )

    client = make_client(handler)
    response = await client.chat(
        [Message(role="system", content="Be terse"), Message(role="user", content="Hello")],
        temperature=0.2,
        max_tokens=6000,
    )
    await client.close()

    assert response.content == '{"ok": true}'
    assert response.finish_reason == "stop"
    assert response.usage == {"prompt_tokens": 12, "completion_tokens": 4}

    body = seen[0]
    assert body["model"] == "test-model"
    assert body["stream"] is False
    assert body["options"] == {"temperature": 0.2, "num_predict": 6000}
    assert "[SYSTEM]\nBe terse" in body["prompt"]
    assert "[USER]\nHello" in body["prompt"]
    assert body["prompt"].rstrip().endswith("[ASSISTANT]")


@pytest.mark.asyncio
async def test_server_error_is_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            return httpx.Response(503, text="loading model")
        return httpx.Response(200, json={"response": "{}"})

    client = make_client(handler, max_retries=1)
    response = await client.complete("hi")
    await client.close()

    assert attempts == 2
    assert response.finish_reason == "stop"


@pytest.mark.asyncio
async def test_client_error_is_not_retried_and_reported() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(404, text="model not found")

    client = make_client(handler, max_retries=3)
    response = await client.complete("hi")
    await client.close()

    assert attempts == 1
    assert response.finish_reason == "error"
    assert response.content == ""
    assert "404" in response.raw_response["error"]


@pytest.mark.asyncio
async def test_unreachable_server_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    response = await client.complete("hi")
    await client.close()

    assert response.finish_reason == "error"
    assert "unreachable" in response.raw_response["error"]
