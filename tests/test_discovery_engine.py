"""
Tests for hypothesis generation, evidence fan-out and ranking.
"""

import pytest

from causal_nba_agent.agents import EvidenceGatherer, HypothesisGenerator
from causal_nba_agent.agents.hypothesis_generator import assign_hypothesis_ids
from causal_nba_agent.data.provider import InMemoryDataProvider
from causal_nba_agent.db.store import InMemorySessionStore
from causal_nba_agent.models.structured import StructuredGenerator
from causal_nba_agent.orchestrator.schemas import ActionType, AgentType, GoalType
from causal_nba_agent.reasoning import (
    EvidenceScore,
    Hypothesis,
    Verdict,
    rank_hypotheses,
)
from causal_nba_agent.reasoning.discovery_engine import CausalDiscoveryEngine, EvidenceUnavailable

from conftest import SCENARIO_C, ScriptedLLM


def build_engine(llm: ScriptedLLM, data: InMemoryDataProvider) -> CausalDiscoveryEngine:
    generator = StructuredGenerator(llm)
    return CausalDiscoveryEngine(HypothesisGenerator(generator, data), EvidenceGatherer(generator, data))


def scored(hypothesis_id: str, confidence: float, verdict: Verdict) -> tuple[Hypothesis, EvidenceScore]:
    return (
        Hypothesis(id=hypothesis_id, title=f"Hypothesis {hypothesis_id}"),
        EvidenceScore(hypothesis_id=hypothesis_id, evidence=(), final_confidence=confidence, verdict=verdict),
    )


class TestRanking:
    """Tests for rank_hypotheses."""

    def test_partitions_by_confidence_and_verdict(self) -> None:
        result = rank_hypotheses(
            [
                scored("H3", 55, Verdict.POSSIBLE),
                scored("H1", 85, Verdict.PROVEN),
                scored("H5", 20, Verdict.DISPROVEN),
                scored("H2", 72, Verdict.LIKELY),
                scored("H4", 38, Verdict.UNLIKELY),
            ]
        )

        assert [r.confidence for r in result.ranked] == [85, 72, 55, 38, 20]
        assert [r.hypothesis.id for r in result.proven] == ["H1", "H2"]
        assert [r.hypothesis.id for r in result.under_review] == ["H3"]
        assert [r.hypothesis.id for r in result.ruled_out] == ["H4", "H5"]
        assert result.headline.hypothesis.id == "H1"

    def test_high_confidence_needs_supporting_verdict(self) -> None:
        result = rank_hypotheses([scored("H1", 90, Verdict.POSSIBLE)])

        assert result.proven == []
        assert [r.hypothesis.id for r in result.under_review] == ["H1"]
        assert result.headline is None

    def test_threshold_boundaries(self) -> None:
        result = rank_hypotheses(
            [
                scored("H1", 70, Verdict.LIKELY),
                scored("H2", 40, Verdict.UNLIKELY),
                scored("H3", 39.9, Verdict.UNLIKELY),
            ]
        )

        assert [r.hypothesis.id for r in result.proven] == ["H1"]
        assert [r.hypothesis.id for r in result.under_review] == ["H2"]
        assert [r.hypothesis.id for r in result.ruled_out] == ["H3"]

    def test_ties_keep_input_order(self) -> None:
        result = rank_hypotheses(
            [
                scored("H2", 60, Verdict.POSSIBLE),
                scored("H1", 60, Verdict.POSSIBLE),
                scored("H3", 80, Verdict.PROVEN),
            ]
        )

        assert [r.hypothesis.id for r in result.ranked] == ["H3", "H2", "H1"]


class TestHypothesisIds:
    """Tests for assign_hypothesis_ids."""

    def test_blank_and_duplicate_ids_are_replaced(self) -> None:
        hypotheses = [
            Hypothesis(id="H1", title="a"),
            Hypothesis(id="", title="b"),
            Hypothesis(id="H1", title="c"),
        ]

        result = assign_hypothesis_ids(hypotheses)

        assert [h.id for h in result] == ["H1", "H2", "H3"]
        assert [h.title for h in result] == ["a", "b", "c"]
        # Originals are frozen and left untouched
        assert hypotheses[1].id == ""


class TestCausalDiscoveryEngine:
    """Tests for CausalDiscoveryEngine."""

    @pytest.mark.asyncio
    async def test_investigation_scores_every_hypothesis(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        llm = ScriptedLLM()
        recorder = await make_recorder(GoalType.CAUSAL_INVESTIGATION)
        engine = build_engine(llm, sample_data)

        investigation = await engine.investigate(recorder, 1)

        assert llm.calls.count("hypothesis_generator") == 1
        assert llm.calls.count("evidence_gatherer") == 5
        assert [r.confidence for r in investigation.ranked] == [85, 72, 55, 38, 20]
        assert investigation.proven_ids == ["H1", "H2"]
        assert investigation.under_review_ids == ["H3"]
        assert investigation.ruled_out_ids == ["H4", "H5"]
        assert investigation.unavailable == []
        assert investigation.headline.hypothesis.id == "H1"

        stored = await store.get_latest_investigation(1)
        assert stored is not None
        assert stored.session_id == recorder.session_id
        assert stored.proven_ids == ["H1", "H2"]

        thoughts = await store.list_thoughts(recorder.session_id)
        assert thoughts[-1].content.endswith("Awaiting human confirmation.")
        assert [t.sequence_number for t in thoughts] == list(range(1, len(thoughts) + 1))

    @pytest.mark.asyncio
    async def test_gatherer_records_provenance(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        llm = ScriptedLLM()
        recorder = await make_recorder(GoalType.CAUSAL_INVESTIGATION)

        await build_engine(llm, sample_data).investigate(recorder, 1)

        actions = await store.list_actions(recorder.session_id)
        gathered = [a for a in actions if a.action_type == ActionType.GATHER_EVIDENCE]
        assert sorted(a.params["hypothesis_id"] for a in gathered) == ["H1", "H2", "H3", "H4", "H5"]
        assert all(a.result["synthetic"] == 2 for a in gathered)
        assert all(a.success for a in gathered)

        gatherer_thoughts = [
            t for t in await store.list_thoughts(recorder.session_id)
            if t.agent_type == AgentType.EVIDENCE_GATHERER
        ]
        assert {t.metadata["hypothesis_id"] for t in gatherer_thoughts} == {"H1", "H2", "H3", "H4", "H5"}

    @pytest.mark.asyncio
    async def test_multi_cohort_prompt_requests_cohort_scoping(
        self,
        sample_data: InMemoryDataProvider,
        make_recorder,
    ) -> None:
        llm = ScriptedLLM()
        recorder = await make_recorder(GoalType.CAUSAL_INVESTIGATION)

        await build_engine(llm, sample_data).investigate(recorder, 1)

        generation_prompt = next(p for p in llm.prompts if p.startswith("You are a Hypothesis Generation Agent."))
        assert "several patient cohorts" in generation_prompt

    @pytest.mark.asyncio
    async def test_failed_gatherer_marks_hypothesis_unavailable(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        """One failing gatherer does not abort the investigation."""
        llm = ScriptedLLM(gatherer={**SCENARIO_C, "H3": None})
        recorder = await make_recorder(GoalType.CAUSAL_INVESTIGATION)

        investigation = await build_engine(llm, sample_data).investigate(recorder, 1)

        assert [r.hypothesis.id for r in investigation.ranked] == ["H1", "H2", "H4", "H5"]
        assert [u.hypothesis.id for u in investigation.unavailable] == ["H3"]
        assert "model unavailable" in investigation.unavailable[0].error
        assert investigation.under_review_ids == []

        failed = [a for a in await store.list_actions(recorder.session_id) if not a.success]
        assert len(failed) == 1
        assert failed[0].params == {"hypothesis_id": "H3"}

    @pytest.mark.asyncio
    async def test_all_gatherers_failing_raises(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        llm = ScriptedLLM(gatherer={})
        recorder = await make_recorder(GoalType.CAUSAL_INVESTIGATION)

        with pytest.raises(EvidenceUnavailable):
            await build_engine(llm, sample_data).investigate(recorder, 1)

        assert await store.get_latest_investigation(1) is None
