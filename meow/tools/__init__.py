"""Tools offered to the model."""

from pathlib import Path
from typing import Optional, Union

from meow.memory.store import MemoryStore
from meow.tools.files import create_file_tools
from meow.tools.memory import create_memory_tools
from meow.tools.registry import Tool, ToolRegistry
from meow.tools.schedule import Job, Scheduler, create_schedule_tools, parse_to_cron


def build_tools(
    memory: MemoryStore,
    data_dir: Union[str, Path],
    scheduler: Optional[Scheduler] = None,
    user_id: str = "default",
) -> ToolRegistry:
    """Assemble the registry: file and memory tools, plus scheduling when a scheduler is attached."""
    registry = ToolRegistry(create_file_tools(Path(data_dir), memory))
    for tool in create_memory_tools(memory):
        registry.register(tool)
    if scheduler is not None:
        for tool in create_schedule_tools(scheduler, user_id=user_id):
            registry.register(tool)
    return registry


__all__ = [
    "Job",
    "Scheduler",
    "Tool",
    "ToolRegistry",
    "build_tools",
    "parse_to_cron",
]
