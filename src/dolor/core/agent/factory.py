"""
Agent runtime 工厂

The LLM agent itself lives outside this package. Deployments point
``dolor.runtime.factory`` at a ``module:callable`` that builds an
``AgentRuntime``; the callable receives the ``dolor`` config section.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Callable, Dict, Optional

from ..runtime.ports import AgentRuntime

logger = logging.getLogger(__name__)

GREETING_PROMPT = (
    "Start the session with a concise, encouraging greeting and invite the athlete "
    "to share what they need help with today."
)


def build_intervals_instruction(subject_id: Optional[Any] = None) -> str:
    """System instruction tying the conversation to a linked Intervals.icu athlete."""
    if subject_id:
        return (
            f"You can query Intervals.icu for athlete {subject_id}. When calling "
            f'list_intervals_activities always pass athleteId "{subject_id}" along with '
            "explicit oldest/newest dates provided by the athlete."
        )
    return (
        "Ask the athlete for their Intervals.icu athlete ID and desired oldest/newest "
        "dates before calling list_intervals_activities."
    )


def load_factory(path: str) -> Callable[..., Any]:
    """Import ``package.module:callable``."""
    module_name, sep, attr = (path or "").partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Runtime factory must look like 'module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part)
    if not callable(target):
        raise TypeError(f"Runtime factory {path!r} is not callable")
    return target


class AgentFactory:
    """
    Agent runtime 工厂

    Resolves the configured runtime factory once and caches the runtime.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._runtime: Optional[AgentRuntime] = None

    @property
    def section(self) -> Dict[str, Any]:
        return self.config.get("dolor", {}) or {}

    @property
    def factory_path(self) -> str:
        return str((self.section.get("runtime", {}) or {}).get("factory") or "")

    def create_runtime(self) -> AgentRuntime:
        if self._runtime is not None:
            return self._runtime
        path = self.factory_path
        if not path:
            raise ValueError("No agent runtime configured (dolor.runtime.factory)")
        factory = load_factory(path)
        runtime = factory(self.section)
        if not isinstance(runtime, AgentRuntime):
            raise TypeError(f"{path} returned {type(runtime).__name__}, which has no run() method")
        logger.info("Agent runtime created from %s", path)
        self._runtime = runtime
        return runtime


def create_agent_runtime(config: Optional[Dict[str, Any]] = None) -> AgentRuntime:
    """Convenience wrapper around ``AgentFactory(config).create_runtime()``."""
    return AgentFactory(config).create_runtime()
