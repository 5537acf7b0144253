"""
Base exception for the insight agent.

Concrete errors live next to the code that raises them.
"""


class InsightAgentError(Exception):
    """Base class for all errors raised by the insight agent."""
