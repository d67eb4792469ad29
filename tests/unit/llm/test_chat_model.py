"""
Unit tests for the chat model handle.

Tests cover:
- Plain completions
- The bounded tool-calling loop
- Usage accounting and step callbacks
- Error mapping and rate-limit retries
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from meow.llm.provider import (
    ChatModel,
    LLMAuthenticationError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from meow.tools.registry import Tool, ToolRegistry


def completion(content="", tool_calls=None, prompt_tokens=10, completion_tokens=5, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def tool_call(call_id, name, arguments):
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
    )


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def model(client):
    return ChatModel(model="gpt-4o-mini", api_key="sk-test", client=client)


@pytest.fixture
def echo_tools():
    calls = []

    def echo(text):
        calls.append(text)
        return {"echo": text}

    registry = ToolRegistry([
        Tool(
            name="echo",
            description="Echo text back",
            parameters={"type": "object", "properties": {"text": {"type": "string"}}},
            execute=echo,
        )
    ])
    registry.calls = calls
    return registry


# ============================================================================
# Generation
# ============================================================================

class TestGenerate:
    """Test generation with and without tools."""

    def test_plain_completion(self, model, client):
        client.chat.completions.create.return_value = completion("Hello!")

        result = model.generate(system="Be nice", messages=[{"role": "user", "content": "Hi"}])

        assert result.text == "Hello!"
        assert len(result.steps) == 1
        sent = client.chat.completions.create.call_args.kwargs
        assert sent["model"] == "gpt-4o-mini"
        assert sent["messages"][0] == {"role": "system", "content": "Be nice"}
        assert sent["messages"][1] == {"role": "user", "content": "Hi"}
        assert "tools" not in sent

    def test_tool_loop(self, model, client, echo_tools):
        """Test a tool call is executed and its result sent back before the final answer."""
        client.chat.completions.create.side_effect = [
            completion(tool_calls=[tool_call("call_1", "echo", {"text": "ping"})], finish_reason="tool_calls"),
            completion("Done: ping"),
        ]
        steps = []

        result = model.generate(
            system="s",
            messages=[{"role": "user", "content": "echo ping"}],
            tools=echo_tools,
            on_step_finish=steps.append,
        )

        assert result.text == "Done: ping"
        assert echo_tools.calls == ["ping"]
        assert [s.tool_calls for s in steps] == [["echo"], []]

        second_request = client.chat.completions.create.call_args_list[1].kwargs["messages"]
        assert second_request[-2]["role"] == "assistant"
        assert second_request[-2]["tool_calls"][0]["function"]["name"] == "echo"
        assert second_request[-1] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": json.dumps({"echo": "ping"}),
        }
        assert client.chat.completions.create.call_args_list[0].kwargs["tools"][0]["function"]["name"] == "echo"

    def test_usage_is_summed(self, model, client, echo_tools):
        client.chat.completions.create.side_effect = [
            completion(tool_calls=[tool_call("c1", "echo", {"text": "a"})], prompt_tokens=100, completion_tokens=7),
            completion("ok", prompt_tokens=150, completion_tokens=20),
        ]

        result = model.generate(system="s", messages=[], tools=echo_tools)

        assert result.usage.input_tokens == 250
        assert result.usage.output_tokens == 27

    def test_step_cap(self, model, client, echo_tools):
        """Test a model that keeps calling tools stops at max_steps."""
        client.chat.completions.create.return_value = completion(
            tool_calls=[tool_call("c", "echo", {"text": "again"})]
        )

        result = model.generate(system="s", messages=[], tools=echo_tools, max_steps=3)

        assert len(result.steps) == 3
        assert client.chat.completions.create.call_count == 3

    def test_tool_error_is_returned_to_model(self, model, client, echo_tools):
        client.chat.completions.create.side_effect = [
            completion(tool_calls=[tool_call("c1", "missing_tool", {})]),
            completion("recovered"),
        ]

        result = model.generate(system="s", messages=[], tools=echo_tools)

        tool_message = client.chat.completions.create.call_args_list[1].kwargs["messages"][-1]
        assert json.loads(tool_message["content"])["success"] is False
        assert result.text == "recovered"

    def test_extra_body_is_sent(self, client):
        model = ChatModel(
            model="kimi-k2.5",
            api_key="k",
            client=client,
            extra_body={"thinking": {"type": "disabled"}},
        )
        client.chat.completions.create.return_value = completion("hi")

        model.generate(system="s", messages=[])

        assert client.chat.completions.create.call_args.kwargs["extra_body"] == {"thinking": {"type": "disabled"}}

    def test_missing_usage(self, model, client):
        response = completion("hi")
        response.usage = None
        client.chat.completions.create.return_value = response

        assert model.generate(system="s", messages=[]).usage.input_tokens == 0


# ============================================================================
# Errors
# ============================================================================

class TestErrors:
    """Test error mapping and retries."""

    def test_missing_api_key(self):
        model = ChatModel(model="gpt-4o", api_key=None, provider="openai")

        with pytest.raises(LLMAuthenticationError, match="No API key"):
            model.generate(system="s", messages=[])

    @patch("meow.llm.provider.time.sleep")
    def test_rate_limit_retried(self, mock_sleep, model, client):
        client.chat.completions.create.side_effect = [Exception("rate_limit_exceeded"), completion("ok")]

        assert model.generate(system="s", messages=[]).text == "ok"
        mock_sleep.assert_called_once_with(1)

    @patch("meow.llm.provider.time.sleep")
    def test_rate_limit_exhausted(self, mock_sleep, model, client):
        client.chat.completions.create.side_effect = Exception("Error code: 429 rate limit")

        with pytest.raises(LLMRateLimitError):
            model.generate(system="s", messages=[])
        assert client.chat.completions.create.call_count == ChatModel.MAX_RETRIES

    @pytest.mark.parametrize(
        "message,error_type",
        [
            ("Incorrect API key provided: unauthorized", LLMAuthenticationError),
            ("Request timed out", LLMTimeoutError),
            ("Internal server error", LLMError),
        ],
    )
    def test_error_mapping(self, model, client, message, error_type):
        client.chat.completions.create.side_effect = Exception(message)

        with pytest.raises(error_type):
            model.generate(system="s", messages=[])
