from .base import AgentService
from .fallback import CONNECTIVITY_ERRORS, FallbackAgentService
from .offline import DEFAULT_REPLY, DEFAULT_RULES, PatternAgentService, PatternRule

__all__ = [
    "AgentService",
    "CONNECTIVITY_ERRORS",
    "FallbackAgentService",
    "DEFAULT_REPLY",
    "DEFAULT_RULES",
    "PatternAgentService",
    "PatternRule",
]
