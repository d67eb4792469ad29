"""
Utility functions and helpers.

Trace logging, retry logic and frontmatter parsing shared across Meow.
"""

from meow.utils.logging import (
    enable_trace_logging,
    disable_trace_logging,
    is_trace_enabled,
    get_trace_file_path,
    log_prompt,
    log_prompt_response,
)

__all__ = [
    "enable_trace_logging",
    "disable_trace_logging",
    "is_trace_enabled",
    "get_trace_file_path",
    "log_prompt",
    "log_prompt_response",
]
