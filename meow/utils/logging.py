"""Trace logging for verbose mode.

Silent until enabled. When enabled it logs:
- All model prompts with metadata
- All model responses with token usage
- Memory flushes, tool calls and swallowed failures

Logs are written to: {trace_dir}/meow_trace.log
"""

import logging
from pathlib import Path
from typing import Optional
from datetime import datetime
from rich.console import Console
from rich.syntax import Syntax
from rich.panel import Panel


# Global state for trace logging
_TRACE_ENABLED = False
_TRACE_LOGGER: Optional[logging.Logger] = None
_TRACE_FILE_PATH: Optional[Path] = None
_ECHO_PROMPTS = False
_console = Console(stderr=True)


def enable_trace_logging(trace_dir: Path, echo_prompts: bool = False) -> None:
    """Enable trace logging to file.

    Args:
        trace_dir: Directory for the trace log file
        echo_prompts: Also render prompts and responses on the console
    """
    global _TRACE_ENABLED, _TRACE_LOGGER, _TRACE_FILE_PATH, _ECHO_PROMPTS

    trace_dir.mkdir(parents=True, exist_ok=True)
    _TRACE_ENABLED = True
    _ECHO_PROMPTS = echo_prompts
    _TRACE_FILE_PATH = trace_dir / "meow_trace.log"

    _TRACE_LOGGER = logging.getLogger("meow.trace")
    _TRACE_LOGGER.setLevel(logging.DEBUG)
    _TRACE_LOGGER.handlers.clear()

    file_handler = logging.FileHandler(_TRACE_FILE_PATH, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    # Format: timestamp | level | message
    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(formatter)
    _TRACE_LOGGER.addHandler(file_handler)

    _TRACE_LOGGER.info("=" * 80)
    _TRACE_LOGGER.info("Trace logging initialized")
    _TRACE_LOGGER.info(f"Trace directory: {trace_dir}")
    _TRACE_LOGGER.info("=" * 80)


def disable_trace_logging() -> None:
    """Disable trace logging."""
    global _TRACE_ENABLED, _TRACE_LOGGER, _TRACE_FILE_PATH, _ECHO_PROMPTS

    if _TRACE_LOGGER:
        _TRACE_LOGGER.info("Trace logging disabled")
        for handler in _TRACE_LOGGER.handlers:
            handler.close()
        _TRACE_LOGGER.handlers.clear()

    _TRACE_ENABLED = False
    _TRACE_LOGGER = None
    _TRACE_FILE_PATH = None
    _ECHO_PROMPTS = False


def is_trace_enabled() -> bool:
    """Check if trace logging is enabled."""
    return _TRACE_ENABLED


def get_trace_file_path() -> Optional[Path]:
    """Get the trace log file path, or None if not enabled."""
    return _TRACE_FILE_PATH


def log_prompt(
    model: str,
    system_prompt: str,
    message_count: int,
    prompt_tokens: Optional[int] = None
) -> None:
    """Log a system prompt sent to the model.

    Args:
        model: Model id being called
        system_prompt: The assembled system prompt
        message_count: Number of conversation messages sent with it
        prompt_tokens: Estimated token count (optional)
    """
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    timestamp = datetime.now().isoformat()

    _TRACE_LOGGER.info("-" * 80)
    _TRACE_LOGGER.info(f"MODEL PROMPT | Model: {model} | Messages: {message_count}")
    if prompt_tokens:
        _TRACE_LOGGER.info(f"Estimated tokens: {prompt_tokens}")
    _TRACE_LOGGER.info("-" * 80)
    _TRACE_LOGGER.info(system_prompt)
    _TRACE_LOGGER.info("-" * 80)

    if not _ECHO_PROMPTS:
        return
    _console.print(f"\n[bold magenta]📝 System prompt ({model})[/bold magenta]")
    _console.print(f"[dim]Time: {timestamp} | Messages: {message_count}[/dim]")
    syntax = Syntax(system_prompt, "markdown", theme="monokai", line_numbers=False)
    _console.print(Panel(syntax, border_style="magenta"))


def log_prompt_response(
    model: str,
    response: str,
    input_tokens: Optional[int] = None,
    output_tokens: Optional[int] = None
) -> None:
    """Log a model response with token usage.

    Args:
        model: Model id that answered
        response: The response text
        input_tokens: Prompt token count (optional)
        output_tokens: Completion token count (optional)
    """
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    _TRACE_LOGGER.info("-" * 80)
    _TRACE_LOGGER.info(f"MODEL RESPONSE | Model: {model}")
    if input_tokens:
        _TRACE_LOGGER.info(f"Input tokens: {input_tokens}")
    if output_tokens:
        _TRACE_LOGGER.info(f"Output tokens: {output_tokens}")
    _TRACE_LOGGER.info("-" * 80)
    _TRACE_LOGGER.info(response)
    _TRACE_LOGGER.info("-" * 80)

    if not _ECHO_PROMPTS:
        return
    _console.print(f"\n[bold green]✅ Response ({model})[/bold green]")
    if len(response) > 500:
        _console.print(f"{response[:500]}[dim]... (truncated, see trace log for full response)[/dim]\n")
    else:
        _console.print(f"{response}\n")


def log_debug(message: str) -> None:
    """Log a debug message."""
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    _TRACE_LOGGER.debug(message)


def log_info(message: str) -> None:
    """Log an informational message."""
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    _TRACE_LOGGER.info(message)


def log_warning(message: str) -> None:
    """Log a warning message."""
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    _TRACE_LOGGER.warning(message)


def log_error(message: str, exception: Optional[Exception] = None) -> None:
    """Log an error message.

    Args:
        message: Error message
        exception: Exception object (optional)
    """
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    _TRACE_LOGGER.error(message)
    if exception:
        _TRACE_LOGGER.exception(exception)
