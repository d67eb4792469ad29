"""Model selection and chat model access."""

from meow.llm.models import (
    DEFAULT_MODELS,
    PROVIDER_BASE_URLS,
    ApiKeys,
    ModelEntry,
    ModelRegistry,
    detect_api_keys,
)
from meow.llm.provider import (
    ChatModel,
    GenerateResult,
    LLMAuthenticationError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    StepResult,
    Usage,
)

__all__ = [
    "DEFAULT_MODELS",
    "PROVIDER_BASE_URLS",
    "ApiKeys",
    "ChatModel",
    "GenerateResult",
    "LLMAuthenticationError",
    "LLMError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "ModelEntry",
    "ModelRegistry",
    "StepResult",
    "Usage",
    "detect_api_keys",
]
