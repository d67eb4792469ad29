"""
Unit tests for the Agent.

Tests cover:
- Initialization and model resolution
- The run contract (always a string, "Error: ..." on failure)
- Daily log summaries and run statistics
- Per-call tool event callbacks
- Flush before long conversations
- Scheduled jobs and model switching
"""

import threading
from unittest.mock import patch

import pytest

from meow.agent.agent import NO_MODEL_ERROR, SCHEDULED_TASK_PREFIX, Agent, last_user_message
from meow.agent.flush import build_flush_system
from meow.config import Config
from meow.llm.models import ApiKeys
from meow.memory.store import MemoryStore
from meow.tools.schedule import Job

TODAY = "2025-03-10"


@pytest.fixture
def config(tmp_path):
    return Config(data_dir=str(tmp_path), user_id="default", model_name=None, model_preset="smart")


@pytest.fixture
def memory(tmp_path, fixed_clock):
    store = MemoryStore(tmp_path, "default", clock=fixed_clock)
    yield store
    store.close()


@pytest.fixture
def make_agent(config, memory, stub_registry_factory, fake_model_factory):
    def factory(model=None, keys=ApiKeys(openai="sk-test"), cfg=None):
        model = model or fake_model_factory(replies=["Hello Alek!"])
        agent = Agent(
            config=cfg or config,
            registry=stub_registry_factory(model),
            keys=keys,
            memory=memory,
        )
        agent.init()
        return agent
    return factory


def daily_log(memory):
    return (memory.root / "daily" / f"{TODAY}.md").read_text(encoding="utf-8")


# ============================================================================
# Initialization
# ============================================================================

class TestInit:
    """Test startup."""

    def test_first_run_creates_soul(self, make_agent, tmp_path):
        agent = make_agent()

        assert agent.needs_onboarding is True
        assert (tmp_path / "soul" / "SOUL.md").exists()

        agent.complete_onboarding()
        assert agent.needs_onboarding is False

    def test_existing_soul_is_not_first_run(self, make_agent, tmp_path):
        (tmp_path / "soul").mkdir()
        (tmp_path / "soul" / "SOUL.md").write_text("# Soul\nsassy")

        assert make_agent().needs_onboarding is False

    def test_model_picked_from_preset(self, make_agent):
        assert make_agent().current_model_id == "gpt-4o-mini"

    def test_explicit_model_name(self, make_agent, tmp_path):
        cfg = Config(data_dir=str(tmp_path), model_name="GPT-4o")

        assert make_agent(cfg=cfg).current_model_id == "gpt-4o"

    def test_custom_model_name_kept(self, make_agent, tmp_path):
        cfg = Config(data_dir=str(tmp_path), model_name="vendor/experimental-1")

        assert make_agent(cfg=cfg).current_model_id == "vendor/experimental-1"

    def test_no_keys_no_model(self, make_agent):
        assert make_agent(keys=ApiKeys()).current_model_id is None

    def test_configures_memory_logging(self, make_agent, tmp_path):
        cfg = Config(data_dir=str(tmp_path), memory_log_level="DEBUG")

        with patch("meow.agent.agent.configure_logging") as mock_configure:
            make_agent(cfg=cfg)

        mock_configure.assert_called_once_with("DEBUG")


# ============================================================================
# Run contract
# ============================================================================

class TestRun:
    """Test agent runs."""

    def test_no_model_returns_error_string(self, make_agent):
        agent = make_agent(keys=ApiKeys())

        assert agent.run([{"role": "user", "content": "hi"}]) == "Error: No model available. Set an API key."
        assert NO_MODEL_ERROR == "Error: No model available. Set an API key."
        assert agent.last_run_stats is None

    def test_reply_and_daily_summary(self, make_agent, memory):
        agent = make_agent()

        reply = agent.run([{"role": "user", "content": "I'm Alek"}])

        assert reply == "Hello Alek!"
        assert "**User**: I'm Alek\n**Meow**: Hello Alek!" in daily_log(memory)

    def test_summary_truncated_to_500_chars(self, make_agent, memory, fake_model_factory):
        agent = make_agent(model=fake_model_factory(replies=["y" * 900]))

        reply = agent.run([{"role": "user", "content": "long please"}])

        assert len(reply) == 900
        assert daily_log(memory).endswith("**Meow**: " + "y" * 500)

    def test_model_exception_becomes_error_string(self, make_agent, memory, fake_model_factory):
        agent = make_agent(model=fake_model_factory(error=RuntimeError("provider exploded")))

        assert agent.run([{"role": "user", "content": "hi"}]) == "Error: provider exploded"
        assert not (memory.root / "daily" / f"{TODAY}.md").exists()

    def test_system_prompt_contains_memory_and_soul(self, make_agent, memory, fake_model_factory):
        model = fake_model_factory()
        agent = make_agent(model=model)
        (memory.root / "MEMORY.md").write_text("## User Profile\nName: Alek")

        agent.run([{"role": "user", "content": "who am I?"}])

        system = model.calls[0]["system"]
        assert "# Your Soul" in system
        assert "# ONBOARDING MODE" in system
        assert "## Long-term Memory\n## User Profile\nName: Alek" in system
        assert model.calls[0]["max_steps"] == 10

    def test_stats(self, make_agent):
        agent = make_agent()

        text, stats = agent.run_with_stats([{"role": "user", "content": "hi"}])

        assert text == "Hello Alek!"
        assert stats.model == "GPT-4o Mini"
        assert stats.input_tokens == 120
        assert stats.output_tokens == 30
        assert stats.duration_ms >= 0
        assert agent.last_run_stats == stats

    def test_failed_run_clears_previous_stats(self, make_agent, fake_model_factory):
        model = fake_model_factory(replies=["first", "second"])
        agent = make_agent(model=model)
        agent.run([{"role": "user", "content": "hi"}])
        assert agent.last_run_stats is not None

        model.error = RuntimeError("boom")

        assert agent.run([{"role": "user", "content": "again"}]) == "Error: boom"
        assert agent.last_run_stats is None

    def test_tool_write_reaches_memory(self, make_agent, memory, fake_model_factory):
        """Test a file_write issued by the model is searchable in the same process."""
        model = fake_model_factory(
            replies=["Saved!"],
            tool_calls={0: [("file_write", {"path": "memory/default/MEMORY.md", "content": "## Work\nPM at Acme"})]},
        )
        agent = make_agent(model=model)

        agent.run([{"role": "user", "content": "I work at Acme"}])

        assert [h.path for h in memory.search("Acme")][0] == "MEMORY.md"


class TestLastUserMessage:
    """Test daily summary user text extraction."""

    def test_string(self):
        assert last_user_message([{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]) == "a"

    def test_text_part(self):
        content = [{"type": "image", "image": "..."}, {"type": "text", "text": "look"}]
        assert last_user_message([{"role": "user", "content": content}]) == "look"

    def test_image_only(self):
        assert last_user_message([{"role": "user", "content": [{"type": "image_url", "image_url": {}}]}]) == "[image]"

    def test_no_user(self):
        assert last_user_message([{"role": "assistant", "content": "hi"}]) == "[unknown]"


# ============================================================================
# Tool events
# ============================================================================

class TestToolEvents:
    """Test tool-use callbacks."""

    def test_per_call_callback(self, make_agent, fake_model_factory):
        model = fake_model_factory(tool_calls={0: [("memory_search", {"query": "x"}), ("file_read", {"path": "a.md"})]})
        agent = make_agent(model=model)
        seen = []

        agent.run([{"role": "user", "content": "hi"}], on_tool_use=seen.append)

        assert seen == ["memory_search", "file_read"]

    def test_instance_callback_is_default(self, make_agent, fake_model_factory):
        agent = make_agent(model=fake_model_factory(tool_calls={0: [("memory_search", {"query": "x"})]}))
        seen = []
        agent.on_tool_use = seen.append

        agent.run([{"role": "user", "content": "hi"}])

        assert seen == ["memory_search"]

    def test_concurrent_runs_do_not_share_callbacks(self, make_agent, fake_model_factory):
        """Test each caller only sees the tool events of its own run."""
        class PerThreadModel:
            def generate(self, system, messages, tools=None, max_steps=10, on_step_finish=None):
                name = messages[-1]["content"]
                inner = fake_model_factory(tool_calls={0: [(name, {"query": name})]})
                return inner.generate(system, messages, tools, max_steps, on_step_finish)

        agent = make_agent(model=PerThreadModel())
        seen = {"memory_search": [], "memory_get": []}

        def worker(name):
            for _ in range(5):
                agent.run([{"role": "user", "content": name}], on_tool_use=seen[name].append)

        threads = [threading.Thread(target=worker, args=(n,)) for n in seen]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert seen["memory_search"] == ["memory_search"] * 5
        assert seen["memory_get"] == ["memory_get"] * 5


# ============================================================================
# Flush
# ============================================================================

class TestFlushDuringRun:
    """Test the flush sub-turn inside run()."""

    def test_long_conversation_flushes_first(self, make_agent, tmp_path, fake_model_factory):
        cfg = Config(data_dir=str(tmp_path), context_window=1024)
        model = fake_model_factory(replies=["NO_REPLY", "Final answer"])
        agent = make_agent(model=model, cfg=cfg)
        messages = [{"role": "user", "content": "x" * 4000}]

        reply = agent.run(messages)

        assert reply == "Final answer"
        assert model.calls[0]["system"] == build_flush_system("default", TODAY)
        assert model.calls[1]["system"] != model.calls[0]["system"]
        assert len(model.calls[1]["messages"]) == 1

    def test_flush_write_lands_in_memory_store(self, make_agent, memory, tmp_path, fake_model_factory):
        """Test the paths named by the flush prompt resolve inside the user's memory directory."""
        cfg = Config(data_dir=str(tmp_path), context_window=1024)
        model = fake_model_factory(
            replies=["Saved.", "Final answer"],
            tool_calls={0: [("file_write", {"path": "memory/default/MEMORY.md", "content": "## User Profile\nName: Alek"})]},
        )
        agent = make_agent(model=model, cfg=cfg)

        agent.run([{"role": "user", "content": "I'm Alek. " + "x" * 4000}])

        assert "memory/default/MEMORY.md" in model.calls[0]["system"]
        assert "Name: Alek" in memory.build_prompt_context()
        assert [h.path for h in memory.search("Name: Alek")] == ["MEMORY.md"]
        assert not (tmp_path / "MEMORY.md").exists()

    def test_short_conversation_skips_flush(self, make_agent, fake_model_factory):
        model = fake_model_factory()
        agent = make_agent(model=model)

        agent.run([{"role": "user", "content": "hi"}])

        assert len(model.calls) == 1


# ============================================================================
# Scheduling and model management
# ============================================================================

class TestScheduledJobs:
    """Test scheduler integration."""

    def test_attach_scheduler_adds_tools(self, make_agent):
        agent = make_agent()
        assert "schedule_task" not in agent.tools

        agent.attach_scheduler(object())

        assert {"schedule_task", "list_tasks", "cancel_task"} <= set(agent.tools.names())

    def test_run_scheduled_job(self, make_agent, fake_model_factory):
        model = fake_model_factory(replies=["Time to call Marco!"])
        agent = make_agent(model=model)
        job = Job(id="job-1", name="call", cron="0 18 * * *", task="Remind user to call Marco")

        assert agent.run_scheduled_job(job) == "Time to call Marco!"
        assert model.calls[0]["messages"] == [
            {"role": "user", "content": SCHEDULED_TASK_PREFIX + "Remind user to call Marco"}
        ]


class TestModelManagement:
    """Test model switching and info."""

    def test_set_known_model(self, make_agent):
        agent = make_agent()

        assert agent.set_model("kimi-k2-0905-preview") == "Switched to Kimi K2 (tools: no)"
        assert agent.get_model_info() == "Kimi K2 [fast] (tools: no)"
        assert agent.supports_vision() is False

    def test_set_custom_model(self, make_agent):
        agent = make_agent()

        assert agent.set_model("vendor/experimental-1") == "Switched to vendor/experimental-1 (custom)"
        assert agent.get_model_info() == "vendor/experimental-1"
        assert agent.supports_vision() is False

    def test_vision(self, make_agent):
        agent = make_agent()
        agent.set_model("gpt-4o")

        assert agent.supports_vision() is True
        assert agent.get_model_info() == "GPT-4o [pro] (tools: yes)"

    def test_no_model_info(self, make_agent):
        assert make_agent(keys=ApiKeys()).get_model_info() == "none"

    def test_list_models_marks_current(self, make_agent):
        assert "GPT-4o Mini (gpt-4o-mini) [✓tools] ← current" in make_agent().list_models()

    def test_memory_store(self, make_agent, memory):
        assert make_agent().memory_store is memory
