"""
The Agent: one always-on assistant bound to a memory store, a personality,
a set of skills and the model registry.

A run is: optional memory flush -> system prompt assembly -> bounded
tool-calling generation -> daily log summary -> reply text. run() always
returns a string; failures come back as "Error: <message>".
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from meow.agent.flush import run_memory_flush, should_flush
from meow.agent.skills import SkillLoader
from meow.agent.soul import SoulLoader
from meow.agent.system_prompt import build_system_prompt
from meow.config import Config, load_config
from meow.llm.models import ApiKeys, ModelRegistry, detect_api_keys
from meow.llm.provider import StepResult
from meow.memory.logging import configure_logging
from meow.memory.store import MemoryStore
from meow.tools import build_tools
from meow.tools.registry import ToolRegistry
from meow.tools.schedule import Job, Scheduler
from meow.utils.logging import log_error, log_info

NO_MODEL_ERROR = "Error: No model available. Set an API key."

DAILY_SUMMARY_CHARS = 500

SCHEDULED_TASK_PREFIX = (
    "[Scheduled task] This task was scheduled earlier and is firing now. "
    "Execute it directly; do not schedule it again.\n\n"
)

ToolEventCallback = Callable[[str], None]
Message = Dict[str, Any]


@dataclass
class RunStats:
    """Usage and timing of one agent run."""
    model: str
    input_tokens: int
    output_tokens: int
    duration_ms: int


@dataclass
class RunContext:
    """Per-call state threaded through a single run.

    Concurrent runs on one Agent each get their own context, so tool
    events and stats never cross between callers.
    """
    on_tool_use: Optional[ToolEventCallback] = None
    started: float = field(default_factory=time.monotonic)
    stats: Optional[RunStats] = None

    def on_step_finish(self, step: StepResult) -> None:
        if self.on_tool_use is None:
            return
        for name in step.tool_calls:
            self.on_tool_use(name)


def last_user_message(messages: List[Message]) -> str:
    """Text of the most recent user turn, for the daily log summary."""
    for message in reversed(messages):
        if message.get("role") != "user":
            continue
        content = message.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and part.get("type") == "text":
                    return str(part.get("text", ""))
            for part in content:
                if isinstance(part, dict) and part.get("type") in ("image", "image_url"):
                    return "[image]"
        return "[unknown]"
    return "[unknown]"


class Agent:
    """
    Always-on personal assistant.

    Args:
        config: Configuration (defaults to load_config())
        registry: Model catalogue (defaults to the built-in one)
        keys: Provider credentials (defaults to detect_api_keys())
        memory: Memory store (defaults to one under config.data_dir for config.user_id)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[ModelRegistry] = None,
        keys: Optional[ApiKeys] = None,
        memory: Optional[MemoryStore] = None,
    ):
        self.config = config or load_config()
        self.data_dir = Path(self.config.data_dir)
        self.registry = registry or ModelRegistry()
        self.keys = keys if keys is not None else detect_api_keys()
        self.memory = memory or MemoryStore(
            self.data_dir, self.config.user_id, self.config.get_memory_config()
        )
        self.skills = SkillLoader(self.data_dir)
        self.soul = SoulLoader(self.data_dir, self.config.assistant_name, self.config.user_id)
        self.scheduler: Optional[Scheduler] = None
        self.tools: ToolRegistry = build_tools(self.memory, self.data_dir, user_id=self.config.user_id)

        self.current_model_id: Optional[str] = None
        self.is_first_run = False

        # Last-writer-wins views kept for single-caller use; see run_with_stats()
        self.last_run_stats: Optional[RunStats] = None
        self.on_tool_use: Optional[ToolEventCallback] = None
        self._stats_lock = threading.Lock()

    def attach_scheduler(self, scheduler: Scheduler) -> None:
        """Attach a scheduler so the model gets the scheduling tools."""
        self.scheduler = scheduler
        self.tools = build_tools(self.memory, self.data_dir, scheduler, user_id=self.config.user_id)

    def init(self) -> None:
        """Index memory, create the default soul on first run and resolve the model."""
        configure_logging(self.config.memory_log_level)
        self.memory.init()

        self.is_first_run = not self.soul.exists()
        if self.is_first_run:
            self.soul.create_default()

        if self.config.model_name:
            found = self.registry.find(self.config.model_name)
            self.current_model_id = found.id if found else self.config.model_name
        else:
            best = self.registry.pick_best(self.config.model_preset, self.keys)
            self.current_model_id = best.id if best else None

        log_info(f"agent_initialized model={self.current_model_id} first_run={self.is_first_run}")

    @property
    def needs_onboarding(self) -> bool:
        return self.is_first_run

    def complete_onboarding(self) -> None:
        self.is_first_run = False

    @property
    def memory_store(self) -> MemoryStore:
        return self.memory

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run(self, messages: List[Message], on_tool_use: Optional[ToolEventCallback] = None) -> str:
        """Answer a conversation. Never raises."""
        text, _ = self.run_with_stats(messages, on_tool_use)
        return text

    def run_with_stats(
        self,
        messages: List[Message],
        on_tool_use: Optional[ToolEventCallback] = None,
    ) -> Tuple[str, Optional[RunStats]]:
        """
        Answer a conversation and return the stats of this call.

        Args:
            messages: Conversation in chat completion format
            on_tool_use: Receives each tool name as steps complete; falls
                back to the on_tool_use attribute

        Returns:
            Tuple of (reply text or "Error: ..." string, RunStats or None on failure)
        """
        with self._stats_lock:
            self.last_run_stats = None

        model_id = self.current_model_id
        if not model_id:
            return NO_MODEL_ERROR, None

        ctx = RunContext(on_tool_use=on_tool_use or self.on_tool_use)
        try:
            model = self.registry.create_model(model_id, self.keys)

            if should_flush(messages, self.config.context_window, self.config.flush_threshold):
                run_memory_flush(model, self.tools, messages, self.config.user_id, self.memory.today())

            result = model.generate(
                system=self._build_system_prompt(),
                messages=messages,
                tools=self.tools,
                max_steps=self.config.max_steps,
                on_step_finish=ctx.on_step_finish,
            )

            entry = self.registry.find(model_id)
            ctx.stats = RunStats(
                model=entry.label if entry else model_id,
                input_tokens=result.usage.input_tokens,
                output_tokens=result.usage.output_tokens,
                duration_ms=int((time.monotonic() - ctx.started) * 1000),
            )
            with self._stats_lock:
                self.last_run_stats = ctx.stats

            self.memory.append_to_daily(
                f"**User**: {last_user_message(messages)}\n"
                f"**{self.config.assistant_name}**: {result.text[:DAILY_SUMMARY_CHARS]}"
            )
            return result.text, ctx.stats

        except Exception as e:
            log_error("Agent run failed", e)
            return f"Error: {e}", None

    def run_scheduled_job(self, job: Job, on_tool_use: Optional[ToolEventCallback] = None) -> str:
        """Execute a fired job as an ordinary run."""
        return self.run(
            [{"role": "user", "content": SCHEDULED_TASK_PREFIX + job.task}],
            on_tool_use=on_tool_use,
        )

    def _build_system_prompt(self) -> str:
        skills = self.skills.load_all()
        return build_system_prompt(
            memory_context=self.memory.build_prompt_context(),
            soul_context=self.soul.build_context(self.soul.read()),
            onboarding=self.soul.build_onboarding_prompt() if self.is_first_run else "",
            skills_context=self.skills.build_context(skills),
            assistant_name=self.config.assistant_name,
            user_id=self.config.user_id,
            tools=self.tools,
        )

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    def set_model(self, name_or_id: str) -> str:
        found = self.registry.find(name_or_id)
        if found:
            self.current_model_id = found.id
            tools = "yes" if found.tool_use else "no"
            return f"Switched to {found.label} (tools: {tools})"
        self.current_model_id = name_or_id
        return f"Switched to {name_or_id} (custom)"

    def get_model_info(self) -> str:
        entry = self.registry.find(self.current_model_id) if self.current_model_id else None
        if entry:
            tools = "yes" if entry.tool_use else "no"
            return f"{entry.label} [{entry.preset}] (tools: {tools})"
        return self.current_model_id or "none"

    def supports_vision(self) -> bool:
        entry = self.registry.find(self.current_model_id) if self.current_model_id else None
        return entry.vision if entry else False

    def list_models(self) -> str:
        return self.registry.format_list(self.keys, self.current_model_id)
