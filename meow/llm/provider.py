"""
Chat model handle over OpenAI-compatible chat completion endpoints.

Every provider in the model registry (OpenAI, OpenRouter, Anthropic,
Moonshot, Together, MiniMax, Z.ai) is reached through the same `openai`
client pointed at the provider's base URL. ChatModel drives a bounded
tool-calling loop: each step sends the conversation plus the tool schemas,
executes any requested tool calls through the tool registry, appends the
results as `tool` messages, and stops when the model answers without
calling a tool or the step cap is reached.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from meow.utils.logging import log_debug, log_prompt, log_prompt_response, log_warning


class LLMError(Exception):
    """Base exception for LLM provider errors."""
    pass


class LLMRateLimitError(LLMError):
    """Raised when rate limit is exceeded."""
    pass


class LLMAuthenticationError(LLMError):
    """Raised when authentication fails."""
    pass


class LLMTimeoutError(LLMError):
    """Raised when request times out."""
    pass


@dataclass
class Usage:
    """Token usage accumulated over every step of a generation."""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class StepResult:
    """One model round-trip inside a generation.

    Attributes:
        text: Text content the model produced in this step
        tool_calls: Names of the tools the model called in this step
        finish_reason: Provider finish reason (stop, tool_calls, length...)
    """
    text: str
    tool_calls: List[str] = field(default_factory=list)
    finish_reason: Optional[str] = None


@dataclass
class GenerateResult:
    """Final outcome of a generation.

    Attributes:
        text: Text of the last step
        usage: Token usage summed across steps
        steps: Every step in order
    """
    text: str
    usage: Usage = field(default_factory=Usage)
    steps: List[StepResult] = field(default_factory=list)


StepCallback = Callable[[StepResult], None]


class ChatModel:
    """A chat model reachable through an OpenAI-compatible endpoint.

    Attributes:
        model: Provider model id
        api_key: Provider API key
        base_url: Endpoint base URL (None for api.openai.com)
        provider: Provider name, for logging
        extra_body: Additional request body fields sent with every call
    """

    # Default timeout in seconds
    DEFAULT_TIMEOUT = 60

    # Max retries for rate limit errors
    MAX_RETRIES = 3

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        provider: str = "openai",
        extra_body: Optional[Dict[str, Any]] = None,
        timeout: int = DEFAULT_TIMEOUT,
        client: Any = None,
    ):
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.provider = provider
        self.extra_body = extra_body
        self.default_timeout = timeout
        self._client = client

    @property
    def client(self):
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise LLMAuthenticationError(
                    f"No API key for provider '{self.provider}' (model {self.model})."
                )

            from openai import OpenAI

            kwargs = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = OpenAI(**kwargs)

        return self._client

    def generate(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tools=None,
        max_steps: int = 10,
        on_step_finish: Optional[StepCallback] = None,
    ) -> GenerateResult:
        """Run a bounded tool-calling generation.

        Args:
            system: System prompt
            messages: Conversation in chat completion format (role/content dicts)
            tools: ToolRegistry offered to the model (optional)
            max_steps: Maximum number of model round-trips
            on_step_finish: Called after every step with its StepResult

        Returns:
            GenerateResult with the last step's text, summed usage and all steps

        Raises:
            LLMError: When the provider call fails
        """
        conversation: List[Dict[str, Any]] = [{"role": "system", "content": system}]
        conversation.extend(dict(m) for m in messages)

        tool_schemas = tools.to_openai() if tools is not None and len(tools) > 0 else None

        log_prompt(self.model, system, len(messages))

        usage = Usage()
        steps: List[StepResult] = []
        text = ""

        for step_index in range(max_steps):
            request_params: Dict[str, Any] = {
                "model": self.model,
                "messages": conversation,
                "timeout": self.default_timeout,
            }
            if tool_schemas:
                request_params["tools"] = tool_schemas
            if self.extra_body:
                request_params["extra_body"] = self.extra_body

            response = self._complete(request_params)
            choice = response.choices[0]
            message = choice.message

            if response.usage is not None:
                usage.input_tokens += response.usage.prompt_tokens or 0
                usage.output_tokens += response.usage.completion_tokens or 0

            tool_calls = list(message.tool_calls or []) if tool_schemas else []
            text = message.content or ""
            step = StepResult(
                text=text,
                tool_calls=[call.function.name for call in tool_calls],
                finish_reason=choice.finish_reason,
            )
            steps.append(step)
            log_debug(f"model_step model={self.model} step={step_index + 1} tool_calls={step.tool_calls}")

            if on_step_finish is not None:
                on_step_finish(step)

            if not tool_calls:
                break

            conversation.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in tool_calls
                ],
            })
            for call in tool_calls:
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": tools.execute(call.function.name, call.function.arguments),
                })

        log_prompt_response(self.model, text, usage.input_tokens, usage.output_tokens)
        return GenerateResult(text=text, usage=usage, steps=steps)

    def _complete(self, request_params: Dict[str, Any]):
        """Single chat completion call with rate-limit retries and error mapping."""
        last_error = None
        for attempt in range(self.MAX_RETRIES):
            try:
                return self.client.chat.completions.create(**request_params)

            except LLMError:
                raise

            except Exception as e:
                last_error = e
                error_msg = str(e).lower()

                if "rate_limit" in error_msg or "rate limit" in error_msg or "429" in error_msg:
                    if attempt < self.MAX_RETRIES - 1:
                        # Exponential backoff: 1s, 2s, 4s
                        wait_time = 2 ** attempt
                        log_warning(f"rate_limited model={self.model} retry_in={wait_time}s")
                        time.sleep(wait_time)
                        continue
                    raise LLMRateLimitError(f"Rate limit exceeded after {self.MAX_RETRIES} retries: {e}")

                elif "authentication" in error_msg or "api_key" in error_msg or "unauthorized" in error_msg:
                    raise LLMAuthenticationError(f"Authentication failed: {e}")

                elif "timeout" in error_msg or "timed out" in error_msg:
                    raise LLMTimeoutError(f"Request timed out: {e}")

                else:
                    raise LLMError(f"{self.provider} API error: {e}")

        raise LLMError(f"Failed after {self.MAX_RETRIES} retries: {last_error}")
