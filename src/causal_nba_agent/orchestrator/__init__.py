"""
Orchestrator module for session records, the iteration controller and
the public service.

Only the record schemas are re-exported here; import the controller and
service from their modules.
"""

from causal_nba_agent.orchestrator.schemas import (
    ActionRecord,
    ActionType,
    AgentType,
    FeedbackRecord,
    GoalType,
    RecommendationRecord,
    SessionDetails,
    SessionRecord,
    SessionStatus,
    ThoughtKind,
    ThoughtRecord,
)

__all__ = [
    "ActionRecord",
    "ActionType",
    "AgentType",
    "FeedbackRecord",
    "GoalType",
    "RecommendationRecord",
    "SessionDetails",
    "SessionRecord",
    "SessionStatus",
    "ThoughtKind",
    "ThoughtRecord",
]
