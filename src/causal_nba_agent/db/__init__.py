"""
Database module for persistence.

Provides the session store interface, an in-memory store, SQLAlchemy
models and the repository-backed SQL store.
"""

from causal_nba_agent.db.models import (
    ActionModel,
    Base,
    ConfirmationModel,
    FeedbackModel,
    InvestigationModel,
    RecommendationModel,
    SessionModel,
    ThoughtModel,
)
from causal_nba_agent.db.repository import SqlSessionStore
from causal_nba_agent.db.store import InMemorySessionStore, SessionNotFound, SessionStore

__all__ = [
    "ActionModel",
    "Base",
    "ConfirmationModel",
    "FeedbackModel",
    "InvestigationModel",
    "RecommendationModel",
    "SessionModel",
    "ThoughtModel",
    "SqlSessionStore",
    "InMemorySessionStore",
    "SessionNotFound",
    "SessionStore",
]
