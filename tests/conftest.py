"""Shared fixtures: deterministic stand-ins for the embedding and chat model services."""

import json
import re
import threading
from datetime import datetime, timezone

import pytest

from meow.llm.models import ModelRegistry
from meow.llm.provider import GenerateResult, StepResult, Usage


class FakeEmbedder:
    """Bag-of-words embedder: texts sharing words get close vectors.

    Each new word gets the next free dimension, so small test corpora are
    collision-free.
    """

    def __init__(self, dimensions=64):
        self.dimensions = dimensions
        self.model_name = "fake-embedding"
        self.calls = []
        self._vocabulary = {}
        self._lock = threading.Lock()

    def embed(self, text):
        vector = [0.01] * self.dimensions
        with self._lock:
            self.calls.append(text)
            for word in re.findall(r"\w+", text.lower()):
                index = self._vocabulary.setdefault(word, len(self._vocabulary) % self.dimensions)
                vector[index] += 1.0
        return vector


class FakeChatModel:
    """Scripted chat model.

    Each generate() call pops the next reply. tool_calls maps a call index
    to the (name, arguments) pairs executed through the tool registry
    before that call answers.
    """

    def __init__(self, replies=None, tool_calls=None, error=None):
        self.replies = list(replies or ["ok"])
        self.tool_calls = tool_calls or {}
        self.error = error
        self.calls = []

    def generate(self, system, messages, tools=None, max_steps=10, on_step_finish=None):
        index = len(self.calls)
        self.calls.append(
            {"system": system, "messages": list(messages), "tools": tools, "max_steps": max_steps}
        )
        if self.error is not None:
            raise self.error

        steps = []
        for name, arguments in self.tool_calls.get(index, []):
            tools.execute(name, json.dumps(arguments))
            step = StepResult(text="", tool_calls=[name], finish_reason="tool_calls")
            steps.append(step)
            if on_step_finish:
                on_step_finish(step)

        text = self.replies.pop(0) if self.replies else "ok"
        final = StepResult(text=text, finish_reason="stop")
        steps.append(final)
        if on_step_finish:
            on_step_finish(final)
        return GenerateResult(text=text, usage=Usage(input_tokens=120, output_tokens=30), steps=steps)


class StubRegistry(ModelRegistry):
    """Model registry whose create_model always returns the given model."""

    def __init__(self, model, entries=None):
        super().__init__(entries)
        self.model = model
        self.created = []

    def create_model(self, model_id, keys):
        self.created.append(model_id)
        return self.model


FIXED_NOW = datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_model_factory():
    return FakeChatModel


@pytest.fixture
def stub_registry_factory():
    return StubRegistry


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
