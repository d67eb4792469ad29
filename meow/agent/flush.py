"""
Pre-compaction memory flush.

When a conversation approaches the model's context window, a silent
tool-enabled sub-turn asks the model to persist anything important before
the visible turn runs. Its reply is discarded; only its file writes remain.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from meow.agent.system_prompt import load_template
from meow.utils.logging import log_info

# Rough heuristic: 4 characters per token
CHARS_PER_TOKEN = 4

FLUSH_MAX_STEPS = 5

NO_REPLY = "NO_REPLY"

FLUSH_PROMPT = f"""Review the conversation above. Save any important facts,
decisions, preferences, or context to the appropriate memory files using file_write.
If nothing new to save, respond with {NO_REPLY}."""


def estimate_tokens(messages: List[Dict[str, Any]]) -> int:
    """Estimate token count of a conversation from its text content."""
    chars = 0
    for message in messages:
        content = message.get("content")
        if isinstance(content, str):
            chars += len(content)
        elif isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and "text" in part:
                    chars += len(str(part["text"]))
    return math.ceil(chars / CHARS_PER_TOKEN)


def should_flush(messages: List[Dict[str, Any]], context_window: int, threshold: float = 0.75) -> bool:
    return estimate_tokens(messages) >= context_window * threshold


def build_flush_system(user_id: str = "default", today: Optional[str] = None) -> str:
    """Flush system prompt naming the real memory file paths for user_id."""
    if today is None:
        today = datetime.now(timezone.utc).date().isoformat()
    return load_template("flush_system.md").render(
        user_id=user_id, today=today, no_reply=NO_REPLY
    ).strip()


def run_memory_flush(
    model,
    tools,
    messages: List[Dict[str, Any]],
    user_id: str = "default",
    today: Optional[str] = None,
) -> bool:
    """
    Run the silent flush turn.

    Args:
        model: ChatModel to run the turn with
        tools: ToolRegistry (file_write is what the model is expected to call)
        messages: The conversation about to be answered
        user_id: Memory identity whose files the model should write
        today: Date of the daily log (UTC ISO date; defaults to now)

    Returns:
        True if the model saved something, False if it replied NO_REPLY
    """
    flush_messages = list(messages) + [{"role": "user", "content": FLUSH_PROMPT}]
    result = model.generate(
        system=build_flush_system(user_id, today),
        messages=flush_messages,
        tools=tools,
        max_steps=FLUSH_MAX_STEPS,
    )
    saved = NO_REPLY not in result.text
    log_info(f"memory_flush saved={saved} steps={len(result.steps)}")
    return saved
