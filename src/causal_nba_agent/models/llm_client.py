"""
LLM client abstraction.

Provides a unified interface for the inference service. The default
implementation talks to an Ollama server over its HTTP API.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, Field

from causal_nba_agent.config import get_settings

logger = logging.getLogger(__name__)


class Message(BaseModel):
    """One turn of a chat exchange."""

    role: str = Field(..., description="system, user or assistant")
    content: str = Field(..., description="Turn text")


class LLMResponse(BaseModel):
    """What the inference server returned for one request."""

    content: str = Field(..., description="Completion text, stripped")
    finish_reason: str = Field(default="stop", description="stop, length or error")
    usage: dict[str, int] = Field(
        default_factory=dict,
        description="prompt_tokens and completion_tokens",
    )
    model: str = Field(default="", description="Model that served the request")
    raw_response: dict[str, Any] = Field(
        default_factory=dict,
        description="Decoded server body, or {\"error\": ...} on failure",
    )


class OllamaError(Exception):
    """Exception raised when the Ollama server cannot produce a completion."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMClientBase(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Conversation history.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.
            **kwargs: Additional model-specific parameters.

        Returns:
            Generated response. Transport failures are reported with
            ``finish_reason == "error"`` and empty content.
        """
        ...

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a text completion.

        Args:
            prompt: Input prompt.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.
            **kwargs: Additional model-specific parameters.

        Returns:
            Generated response.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""


class LLMClient(LLMClientBase):
    """
    Ollama-based LLM client.

    Sends non-streaming requests to ``POST /api/generate`` and maps the
    output token budget onto the ``num_predict`` option.
    """

    def __init__(
        self,
        model: str | None = None,
        endpoint: str | None = None,
        max_retries: int | None = None,
        timeout: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Ollama LLM client.

        Args:
            model: Model name (uses config if not provided).
            endpoint: Ollama base URL (uses config if not provided).
            max_retries: Transport retries on connection errors or 5xx responses.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used to stub the server).
        """
        settings = get_settings()
        self._model = model or settings.llm_model_name
        self._endpoint = endpoint or settings.llm_endpoint
        self._max_retries = settings.llm_max_retries if max_retries is None else max_retries
        self._timeout = timeout or settings.llm_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized Ollama LLM client with model: {self._model}")

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._endpoint,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_prompt_from_messages(self, messages: list[Message]) -> str:
        """Render messages as ``[ROLE]`` blocks ending with an open assistant turn."""
        blocks = [f"[{m.role.upper()}]\n{m.content.strip()}\n" for m in messages]
        blocks.append("[ASSISTANT]\n")
        return "\n".join(blocks)

    async def _generate(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        """
        Call the generate endpoint with retry on transport failures.

        Raises:
            OllamaError: If the server fails after all retries.
        """
        options: dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens

        payload = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }

        client = await self._get_client()
        last_error: OllamaError | None = None
        attempts = 0

        while attempts <= self._max_retries:
            attempts += 1
            try:
                logger.debug(f"POST /api/generate (attempt {attempts}, num_predict={max_tokens})")
                response = await client.post("/api/generate", json=payload)
            except httpx.TimeoutException:
                logger.warning(f"Ollama timed out after {self._timeout}s (attempt {attempts})")
                last_error = OllamaError(f"Ollama timed out after {self._timeout} seconds")
                continue
            except httpx.TransportError as e:
                logger.warning(f"Ollama transport error (attempt {attempts}): {e}")
                last_error = OllamaError(f"Ollama unreachable at {self._endpoint}: {e}")
                continue

            if response.status_code >= 500:
                logger.warning(f"Ollama returned {response.status_code} (attempt {attempts})")
                last_error = OllamaError(
                    f"Ollama returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    body=response.text,
                )
                continue

            if response.status_code >= 400:
                # Client errors (unknown model, bad options) will not improve on retry
                raise OllamaError(
                    f"Ollama rejected the request with HTTP {response.status_code}",
                    status_code=response.status_code,
                    body=response.text,
                )

            try:
                return response.json()
            except json.JSONDecodeError as e:
                raise OllamaError(f"Ollama returned a non-JSON body: {e}", body=response.text) from e

        raise last_error or OllamaError("Ollama failed after all retries")

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Send one prompt to /api/generate.

        Args:
            prompt: Input prompt.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.

        Returns:
            Generated response.
        """
        try:
            data = await self._generate(prompt, temperature, max_tokens)
        except OllamaError as e:
            logger.error(f"Ollama completion failed: {e}")
            return LLMResponse(
                content="",
                finish_reason="error",
                usage={},
                model=self._model,
                raw_response={"error": str(e)},
            )

        usage = {
            "prompt_tokens": int(data.get("prompt_eval_count") or 0),
            "completion_tokens": int(data.get("eval_count") or 0),
        }
        content = (data.get("response") or "").strip()
        logger.debug(f"Ollama response length: {len(content)} chars")

        return LLMResponse(
            content=content,
            finish_reason=data.get("done_reason") or "stop",
            usage=usage,
            model=data.get("model") or self._model,
            raw_response=data,
        )

    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Flatten the conversation into a role-tagged prompt and complete it.

        Args:
            messages: Conversation history.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.

        Returns:
            Generated response.
        """
        prompt = self._build_prompt_from_messages(messages)
        return await self.complete(prompt, temperature=temperature, max_tokens=max_tokens, **kwargs)
