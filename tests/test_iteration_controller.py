"""
Tests for the Plan -> Evidence -> Synthesize -> Reflect loop.
"""

import pytest

from causal_nba_agent.agents import EvidenceAnalyst, Planner, Reflector, Synthesizer
from causal_nba_agent.data.provider import InMemoryDataProvider
from causal_nba_agent.db.store import InMemorySessionStore
from causal_nba_agent.models.structured import StructuredGenerator
from causal_nba_agent.orchestrator.iteration_controller import (
    ControllerState,
    IterationBoundExceeded,
    IterationController,
    SessionHalted,
)
from causal_nba_agent.orchestrator.schemas import AgentType, SessionStatus
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder

from conftest import EMPTY_FINDINGS, FINDINGS, ScriptedLLM, reflection


def build_controller(
    llm: ScriptedLLM,
    data: InMemoryDataProvider,
    recorder: SessionRecorder,
    **kwargs,
) -> IterationController:
    generator = StructuredGenerator(llm)
    return IterationController(
        recorder,
        1,
        planner=Planner(generator, data),
        analyst=EvidenceAnalyst(generator, data),
        synthesizer=Synthesizer(generator, data),
        reflector=Reflector(generator, data),
        **kwargs,
    )


class TestIterationController:
    """Tests for IterationController."""

    @pytest.mark.asyncio
    async def test_actionable_evidence_completes_in_one_iteration(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        """Findings plus a hypothesis on iteration 1 and confidence 80 finish after one pass."""
        llm = ScriptedLLM(evidence=[FINDINGS], reflections=[reflection(80)])
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder)

        outcome = await controller.run()

        assert outcome.iterations == 1
        assert controller.state == ControllerState.DONE_SUCCESS
        assert llm.calls == ["planner", "analyst", "synthesizer", "reflector"]

        recommendations = await store.list_recommendations(1)
        assert len(recommendations) == 1
        assert recommendations[0].category == "meeting"
        assert recommendations[0].priority == "High"
        assert recommendations[0].confidence == 82.0
        assert recommendations[0].based_on == "none"

        session = await store.get_session(recorder.session_id)
        assert session.status == SessionStatus.COMPLETED
        assert session.confidence == 80.0
        assert session.final_outcome == (
            "Generated NBA: Schedule an efficacy data review with Dr. Chen (Confidence: 80% after 1 iterations)"
        )
        assert session.completed_at is not None

    @pytest.mark.asyncio
    async def test_synthesis_waits_until_findings_arrive(
        self,
        sample_data: InMemoryDataProvider,
        make_recorder,
    ) -> None:
        """Empty findings on iterations 1-2 defer synthesis to iteration 3."""
        llm = ScriptedLLM(evidence=[EMPTY_FINDINGS, EMPTY_FINDINGS, FINDINGS], reflections=[reflection(30)])
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder, max_iterations=4)

        outcome = await controller.run()

        first_synthesis = llm.calls.index("synthesizer")
        assert llm.calls[:first_synthesis].count("planner") == 3
        # Confidence 30 is below threshold but iteration 3 reaches max_iterations - 1
        assert outcome.iterations == 3

    @pytest.mark.asyncio
    async def test_readiness_is_forced_at_iteration_three(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        """Synthesis runs at iteration 3 even when findings stay empty."""
        llm = ScriptedLLM(evidence=[EMPTY_FINDINGS], reflections=[reflection(90)])
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder)

        outcome = await controller.run()

        assert outcome.iterations == 3
        assert llm.calls.count("synthesizer") == 1

        thoughts = await store.list_thoughts(recorder.session_id)
        skipped = [
            t for t in thoughts
            if t.content == "Insufficient evidence gathered. Continuing to next iteration for more data."
        ]
        assert len(skipped) == 2

    @pytest.mark.asyncio
    async def test_low_confidence_loops_with_prior_critique(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        """Confidence below threshold re-plans with the critique until max_iterations - 1."""
        llm = ScriptedLLM(evidence=[FINDINGS], reflections=[reflection(50)])
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder)

        outcome = await controller.run()

        assert outcome.iterations == 9
        assert llm.calls.count("planner") == 9
        assert llm.calls.count("synthesizer") == 9

        planner_prompts = [p for p in llm.prompts if p.startswith("You are a Strategic Planning Agent.")]
        assert "None (first pass)" in planner_prompts[0]
        assert "Address cardiac safety questions" in planner_prompts[1]

        thoughts = await store.list_thoughts(recorder.session_id)
        assert sum(1 for t in thoughts if t.content == "Confidence 50% below threshold. Need another iteration.") == 8
        assert thoughts[-1].content == "Goal achieved with confidence 50%. Terminating loop."
        assert len(await store.list_feedback(recorder.session_id)) == 9

    @pytest.mark.asyncio
    async def test_planner_never_exceeds_iteration_bound(
        self,
        sample_data: InMemoryDataProvider,
        make_recorder,
    ) -> None:
        """Planner runs at most max_iterations times."""
        llm = ScriptedLLM(evidence=[FINDINGS], reflections=[reflection(10)])
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder, max_iterations=10)

        await controller.run()

        assert llm.calls.count("planner") <= 10

    @pytest.mark.asyncio
    async def test_no_synthesis_within_bound_raises(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        """Without readiness inside the bound the loop fails and stores nothing."""
        llm = ScriptedLLM(evidence=[EMPTY_FINDINGS])
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder, max_iterations=2)

        with pytest.raises(IterationBoundExceeded):
            await controller.run()

        assert controller.state == ControllerState.DONE_FAILURE
        assert "synthesizer" not in llm.calls
        assert await store.list_recommendations(1) == []
        session = await store.get_session(recorder.session_id)
        assert session.status != SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_sequence_numbers_strictly_increase_from_one(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        llm = ScriptedLLM(evidence=[EMPTY_FINDINGS, FINDINGS], reflections=[reflection(60), reflection(85)])
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder)

        await controller.run()

        thoughts = await store.list_thoughts(recorder.session_id)
        assert [t.sequence_number for t in thoughts] == list(range(1, len(thoughts) + 1))
        assert thoughts[0].agent_type == AgentType.ORCHESTRATOR
        assert thoughts[0].content == "Iteration 1/10: Evaluating next step towards goal"

    @pytest.mark.asyncio
    async def test_externally_failed_session_halts_loop(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        """A session failed from outside stops before the next iteration."""
        llm = ScriptedLLM()
        recorder = await make_recorder()
        await store.update_session(recorder.session_id, status=SessionStatus.FAILED, final_outcome="Error: stopped")
        controller = build_controller(llm, sample_data, recorder)

        with pytest.raises(SessionHalted):
            await controller.run()

        assert llm.calls == []
        session = await store.get_session(recorder.session_id)
        assert session.final_outcome == "Error: stopped"

    @pytest.mark.asyncio
    async def test_causal_basis_is_passed_to_synthesis(
        self,
        sample_data: InMemoryDataProvider,
        store: InMemorySessionStore,
        make_recorder,
    ) -> None:
        from causal_nba_agent.reasoning.hypotheses import EvidenceScore, Hypothesis, RankedHypothesis, Verdict

        basis = [
            RankedHypothesis(
                hypothesis=Hypothesis(id="H1", title="Competitor trial data", affected_cohort="young_rcc"),
                score=EvidenceScore(hypothesis_id="H1", evidence=(), final_confidence=85, verdict=Verdict.PROVEN),
            )
        ]
        llm = ScriptedLLM()
        recorder = await make_recorder()
        controller = build_controller(llm, sample_data, recorder, causal_basis=basis, based_on="confirmed")

        await controller.run()

        synthesis_prompt = next(p for p in llm.prompts if p.startswith("You are an Action Synthesis Agent."))
        assert "H1: Competitor trial data [cohort: young_rcc]" in synthesis_prompt
        assert "confirmed by a human reviewer" in synthesis_prompt

        recommendations = await store.list_recommendations(1)
        assert recommendations[0].based_on == "confirmed"
