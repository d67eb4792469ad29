"""System prompt assembly."""

from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from jinja2 import Template

_PROMPTS_DIR = Path(__file__).parent / "prompts"


@lru_cache(maxsize=None)
def load_template(name: str) -> Template:
    """Load a prompt template shipped in the prompts/ directory."""
    with open(_PROMPTS_DIR / name, "r", encoding="utf-8") as file:
        return Template(file.read(), trim_blocks=True, lstrip_blocks=True)


def build_system_prompt(
    memory_context: str = "",
    soul_context: str = "",
    onboarding: str = "",
    skills_context: str = "",
    assistant_name: str = "Meow",
    user_id: str = "default",
    tools: Optional[Iterable] = None,
) -> str:
    """
    Render the system prompt: base behaviour followed by the soul,
    onboarding, memory and skills sections, each separated by `---` and
    omitted when empty.

    Args:
        memory_context: Output of MemoryStore.build_prompt_context()
        soul_context: Output of SoulLoader.build_context()
        onboarding: Onboarding instructions (first run only)
        skills_context: Output of SkillLoader.build_context()
        assistant_name: Name the assistant introduces itself with
        user_id: Memory identity, used in the memory file paths
        tools: Tools offered to the model, listed in the prompt

    Returns:
        The complete system prompt
    """
    sections = []
    if soul_context:
        sections.append(soul_context)
    if onboarding:
        sections.append(f"# ONBOARDING MODE\n\n{onboarding}")
    if memory_context:
        sections.append(f"# Your Memory\n\n{memory_context}")
    if skills_context:
        sections.append(f"# Active Skills\n\n{skills_context}")

    tools = list(tools or [])
    return load_template("system_prompt.md").render(
        assistant_name=assistant_name,
        user_id=user_id,
        tools=tools,
        scheduling=any(tool.name == "schedule_task" for tool in tools),
        sections=sections,
    ).strip()
