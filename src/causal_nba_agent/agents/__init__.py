"""
Agents module containing the reasoning-phase and causal discovery agents.

Each agent handles one step of a session and makes one model call.
"""

from causal_nba_agent.agents.evidence_analyst import EvidenceAnalyst, EvidenceResult
from causal_nba_agent.agents.evidence_gatherer import EvidenceGatherer
from causal_nba_agent.agents.hypothesis_generator import HypothesisGenerator
from causal_nba_agent.agents.planner import Planner, PlanResult
from causal_nba_agent.agents.reflector import ReflectionResult, Reflector
from causal_nba_agent.agents.synthesizer import SynthesisResult, Synthesizer

__all__ = [
    "EvidenceAnalyst",
    "EvidenceResult",
    "EvidenceGatherer",
    "HypothesisGenerator",
    "Planner",
    "PlanResult",
    "ReflectionResult",
    "Reflector",
    "SynthesisResult",
    "Synthesizer",
]
