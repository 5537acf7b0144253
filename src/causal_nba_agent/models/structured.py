"""
Structured generation over the LLM client.

A single call per request: the model is asked for JSON matching a
pydantic schema, the text is entity-decoded, the JSON payload is
located and loosely repaired, then validated. Nothing is retried.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from causal_nba_agent.config import get_settings
from causal_nba_agent.errors import InsightAgentError
from causal_nba_agent.models.json_repair import extract_json_payload
from causal_nba_agent.models.llm_client import LLMClientBase, Message

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# &amp; goes last so "&amp;lt;" decodes to "&lt;" and not "<"
_HTML_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)


class GenerationError(InsightAgentError):
    """Base class for structured generation failures."""


class EmptyResponse(GenerationError):
    """The inference service returned no usable text."""


class SchemaViolation(GenerationError):
    """The model output could not be parsed or did not match the schema."""

    def __init__(self, message: str, raw_text: str = "", errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text
        self.errors = errors or []


def decode_html_entities(text: str) -> str:
    """Decode the HTML entities models sometimes emit inside JSON."""
    for entity, char in _HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


class StructuredGenerator:
    """Produces schema-conforming objects from prompts."""

    def __init__(
        self,
        llm_client: LLMClientBase,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        """
        Initialize the generator.

        Args:
            llm_client: Client used for the single inference call.
            max_tokens: Default output token budget (uses config if not provided).
            temperature: Sampling temperature (uses config if not provided).
        """
        settings = get_settings()
        self._llm_client = llm_client
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = settings.llm_temperature if temperature is None else temperature

    @property
    def llm_client(self) -> LLMClientBase:
        """Get the underlying LLM client."""
        return self._llm_client

    async def generate(
        self,
        prompt: str,
        schema: type[T],
        max_tokens: int | None = None,
        label: str = "",
    ) -> T:
        """
        Generate one instance of ``schema`` from ``prompt``.

        Args:
            prompt: Fully rendered prompt.
            schema: Pydantic model the output must validate against.
            max_tokens: Output token budget for this call.
            label: Short name used in log lines.

        Returns:
            Validated schema instance.

        Raises:
            EmptyResponse: Transport failure or blank output.
            SchemaViolation: Output is not JSON or fails validation.
        """
        label = label or schema.__name__
        schema_instruction = Message(
            role="system",
            content=(
                "You must respond with valid JSON only. No additional text or explanation. "
                f"Your response must match this JSON schema: {json.dumps(schema.model_json_schema())}"
            ),
        )

        response = await self._llm_client.chat(
            [schema_instruction, Message(role="user", content=prompt)],
            temperature=self._temperature,
            max_tokens=max_tokens or self._max_tokens,
        )

        if response.finish_reason == "error":
            error = response.raw_response.get("error", "unknown error")
            raise EmptyResponse(f"{label}: inference service failed: {error}")

        raw_text = response.content or ""
        if not raw_text.strip():
            raise EmptyResponse(f"{label}: inference service returned empty output")

        logger.debug(f"{label} raw output: {raw_text[:500]}")

        decoded = decode_html_entities(raw_text)
        payload = extract_json_payload(decoded)
        if not isinstance(payload, dict):
            raise SchemaViolation(f"{label}: no JSON object found in model output", raw_text=raw_text)

        try:
            return schema.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"{label}: output failed validation with {e.error_count()} error(s)")
            raise SchemaViolation(
                f"{label}: output does not match {schema.__name__}",
                raw_text=raw_text,
                errors=e.errors(include_url=False),
            ) from e
