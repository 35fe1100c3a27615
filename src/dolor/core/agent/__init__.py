"""Agent-related core abstractions."""

from .factory import (
    GREETING_PROMPT,
    AgentFactory,
    build_intervals_instruction,
    create_agent_runtime,
    load_factory,
)

__all__ = [
    "AgentFactory",
    "GREETING_PROMPT",
    "build_intervals_instruction",
    "create_agent_runtime",
    "load_factory",
]
