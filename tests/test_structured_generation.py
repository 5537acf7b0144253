"""
Tests for schema-validated generation and JSON repair.
"""

from typing import Any

import pytest
from pydantic import BaseModel

from causal_nba_agent.agents import ReflectionResult, SynthesisResult
from causal_nba_agent.agents.base import coerce_percent
from causal_nba_agent.models import (
    EmptyResponse,
    LLMClientBase,
    LLMResponse,
    Message,
    SchemaViolation,
    StructuredGenerator,
    decode_html_entities,
    extract_json_payload,
    parse_json_loose,
)
from causal_nba_agent.reasoning import EvidenceItem


class Answer(BaseModel):
    title: str
    score: float


class FakeLLM(LLMClientBase):
    """Returns one fixed response and remembers what it was asked."""

    def __init__(self, content: str, finish_reason: str = "stop", raw_response: dict[str, Any] | None = None):
        self.content = content
        self.finish_reason = finish_reason
        self.raw_response = raw_response or {}
        self.messages: list[Message] = []
        self.max_tokens: int | None = None

    async def complete(self, prompt: str, temperature: float = 0.7, max_tokens=None, **kwargs) -> LLMResponse:
        return LLMResponse(content=self.content, finish_reason=self.finish_reason, raw_response=self.raw_response)

    async def chat(self, messages: list[Message], temperature: float = 0.7, max_tokens=None, **kwargs) -> LLMResponse:
        self.messages = messages
        self.max_tokens = max_tokens
        return await self.complete(messages[-1].content)


class TestStructuredGenerator:
    """Tests for StructuredGenerator."""

    @pytest.mark.asyncio
    async def test_valid_json_in_prose_is_extracted(self) -> None:
        llm = FakeLLM('Here you go:\n```json\n{"title": "a {b}", "score": 3}\n```\nThanks')
        generator = StructuredGenerator(llm, max_tokens=500)

        answer = await generator.generate("Give me an answer", Answer)

        assert answer == Answer(title="a {b}", score=3)
        assert llm.messages[0].role == "system"
        assert '"title"' in llm.messages[0].content
        assert llm.messages[-1].content == "Give me an answer"
        assert llm.max_tokens == 500

    @pytest.mark.asyncio
    async def test_html_entities_are_decoded_before_parsing(self) -> None:
        llm = FakeLLM("{&quot;title&quot;: &quot;A &amp;lt; B&quot;, &quot;score&quot;: 1}")

        answer = await StructuredGenerator(llm).generate("q", Answer)

        assert answer.title == "A &lt; B"

    @pytest.mark.asyncio
    async def test_per_call_token_budget(self) -> None:
        llm = FakeLLM('{"title": "x", "score": 1}')

        await StructuredGenerator(llm, max_tokens=500).generate("q", Answer, max_tokens=8000)

        assert llm.max_tokens == 8000

    @pytest.mark.asyncio
    async def test_transport_error_is_empty_response(self) -> None:
        llm = FakeLLM("", finish_reason="error", raw_response={"error": "connection refused"})

        with pytest.raises(EmptyResponse, match="connection refused"):
            await StructuredGenerator(llm).generate("q", Answer)

    @pytest.mark.asyncio
    async def test_blank_output_is_empty_response(self) -> None:
        with pytest.raises(EmptyResponse):
            await StructuredGenerator(FakeLLM("   \n")).generate("q", Answer)

    @pytest.mark.asyncio
    async def test_non_json_is_schema_violation(self) -> None:
        with pytest.raises(SchemaViolation) as exc_info:
            await StructuredGenerator(FakeLLM("I cannot help with that")).generate("q", Answer)

        assert exc_info.value.raw_text == "I cannot help with that"

    @pytest.mark.asyncio
    async def test_schema_mismatch_carries_field_errors(self) -> None:
        with pytest.raises(SchemaViolation) as exc_info:
            await StructuredGenerator(FakeLLM('{"title": "x"}')).generate("q", Answer)

        assert [e["loc"] for e in exc_info.value.errors] == [("score",)]


class TestResultNormalization:
    """Agent output models accept the shapes models commonly produce."""

    def test_synthesis_aliases_and_percent(self) -> None:
        result = SynthesisResult.model_validate(
            {
                "thought": "why",
                "action": "Call Dr. Chen",
                "actionType": "CALL",
                "priority": "low",
                "aiInsight": ["one", "two"],
                "confidenceScore": 0.65,
            }
        )

        assert result.rationale == "why"
        assert result.category == "call"
        assert result.priority == "Low"
        assert result.insight == "one; two"
        assert result.confidence == pytest.approx(65.0)

    def test_reflection_accepts_critique_alias(self) -> None:
        result = ReflectionResult.model_validate({"critique": "too vague", "confidence": "70 / 100"})

        assert result.rationale == "too vague"
        assert result.confidence == 70.0

    def test_explicit_percent_is_not_rescaled(self) -> None:
        assert coerce_percent("0.5%") == 0.5
        assert coerce_percent("0.5 / 100") == 0.5
        assert coerce_percent(0.5) == 50.0
        assert coerce_percent("0.5") == 50.0
        assert coerce_percent(1) == 1.0
        assert coerce_percent("high") == "high"

    def test_evidence_item_source_kind(self) -> None:
        item = EvidenceItem.model_validate(
            {
                "source": "NEJM",
                "finding": "x",
                "supportsHypothesis": True,
                "strength": "STRONG",
                "sourceKind": "External",
            }
        )

        assert item.supports is True
        assert item.synthetic is True
        assert EvidenceItem(source="Rx history", finding="y", supports=False).synthetic is False


class TestJsonRepair:
    """Tests for the loose JSON helpers."""

    def test_single_quotes_and_trailing_commas(self) -> None:
        assert parse_json_loose("{'a': 1, 'b': 'x',}") == {"a": 1, "b": "x"}

    def test_unquoted_keys_and_python_literals(self) -> None:
        assert parse_json_loose("{a: 1, b: True, c: None,}") == {"a": 1, "b": True, "c": None}

    def test_braces_inside_strings_do_not_end_payload(self) -> None:
        assert extract_json_payload('prefix {"a": "}{", "b": [1, 2]} suffix {"c": 3}') == {"a": "}{", "b": [1, 2]}

    def test_nothing_parseable(self) -> None:
        assert extract_json_payload("no json here") is None

    def test_entity_decoding_order(self) -> None:
        assert decode_html_entities("&amp;lt; &lt; &#39;") == "&lt; < '"
