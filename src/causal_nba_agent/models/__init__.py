"""
Models module for the inference client and structured generation.

Provides a unified interface for interacting with a local Ollama server.
"""

from causal_nba_agent.models.json_repair import extract_json_payload, parse_json_loose
from causal_nba_agent.models.llm_client import (
    LLMClient,
    LLMClientBase,
    LLMResponse,
    Message,
    OllamaError,
)
from causal_nba_agent.models.structured import (
    EmptyResponse,
    GenerationError,
    SchemaViolation,
    StructuredGenerator,
    decode_html_entities,
)

__all__ = [
    "LLMClient",
    "LLMClientBase",
    "LLMResponse",
    "Message",
    "OllamaError",
    "extract_json_payload",
    "parse_json_loose",
    "EmptyResponse",
    "GenerationError",
    "SchemaViolation",
    "StructuredGenerator",
    "decode_html_entities",
]
