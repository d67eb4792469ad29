"""The assistant agent and its prompt providers."""

from meow.agent.agent import NO_MODEL_ERROR, Agent, RunContext, RunStats
from meow.agent.flush import estimate_tokens, run_memory_flush, should_flush
from meow.agent.skills import Skill, SkillLoader
from meow.agent.soul import SoulLoader
from meow.agent.system_prompt import build_system_prompt

__all__ = [
    "NO_MODEL_ERROR",
    "Agent",
    "RunContext",
    "RunStats",
    "Skill",
    "SkillLoader",
    "SoulLoader",
    "build_system_prompt",
    "estimate_tokens",
    "run_memory_flush",
    "should_flush",
]
