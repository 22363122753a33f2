"""Tests for the comparison session (dispatch call site)."""

import asyncio
import copy
from pathlib import Path
from types import SimpleNamespace

import pytest
import yaml

from promptcompare import llm_client
from promptcompare.config import Settings
from promptcompare.dispatcher import Dispatcher
from promptcompare.llm_client import AuthenticationError, LLMClient
from promptcompare.session import ComparisonSession
from promptcompare.storage import InMemoryKeyValueStore

from conftest import SAMPLE_CONFIG, FailingKeyValueStore, StubClient


@pytest.fixture
def session(config, memory_store, dispatcher):
    return ComparisonSession(config, memory_store, dispatcher)


class TestVariables:
    """Variable editing and default resolution."""

    def test_variables_are_aggregated(self, session):
        assert [variable.name for variable in session.variables()] == ["article", "audience", "count"]

    def test_scenario_values_fall_back_to_defaults(self, session):
        session.set_variable("article", 0, "text")
        assert session.scenario_values(0) == {"article": "text", "audience": "engineers", "count": "3"}
        assert session.scenario_values(1) == {"audience": "engineers", "count": "3"}

    def test_out_of_range_scenario(self, session):
        with pytest.raises(ValueError):
            session.set_variable("article", 3, "x")

    def test_values_persist_across_sessions(self, config, memory_store, dispatcher):
        ComparisonSession(config, memory_store, dispatcher).set_variable("article", 2, "kept")
        reopened = ComparisonSession(config, memory_store, dispatcher)
        assert reopened.scenario_values(2)["article"] == "kept"


class TestTrigger:
    """Running prompts from the session."""

    @pytest.mark.asyncio
    async def test_success_stores_result(self, session, ok_client):
        session.set_variable("article", 1, "Body")
        result = await session.trigger("summary", 1, "sk-test")

        assert result.output == "ok"
        assert session.results.get("summary", 1) is result
        assert ok_client.calls[0]["prompt_text"] == "Summarize for engineers: Body"
        assert session.is_running("summary", 1) is False

    @pytest.mark.asyncio
    async def test_flag_is_set_while_running(self, config, memory_store):
        client = StubClient([{"tokens": 1, "content": "x", "delay": 0.02}], real_sleep=True)
        session = ComparisonSession(config, memory_store, Dispatcher(client))

        task = asyncio.ensure_future(session.trigger("summary", 0))
        await asyncio.sleep(0)
        assert session.is_running("summary", 0) is True
        await task
        assert session.is_running("summary", 0) is False

    @pytest.mark.asyncio
    async def test_execution_error_is_recorded_and_flag_cleared(self, config, memory_store, clock):
        client = StubClient([{"error": AuthenticationError("bad key")}], clock=clock)
        session = ComparisonSession(config, memory_store, Dispatcher(client, clock=clock))

        assert await session.trigger("summary", 0, "wrong") is None
        assert session.errors == ["bad key"]
        assert session.is_running("summary", 0) is False
        assert len(session.results) == 0

    @pytest.mark.asyncio
    async def test_unknown_prompt_is_recorded(self, session):
        assert await session.trigger("nope", 0) is None
        assert "nope" in session.errors[0]
        assert session.is_running("nope", 0) is False
        assert len(session.results) == 0

    @pytest.mark.asyncio
    async def test_out_of_range_scenario_is_recorded(self, session, ok_client):
        assert await session.trigger("summary", 7) is None
        assert session.errors
        assert ok_client.calls == []
        assert session.is_running("summary", 7) is False

    @pytest.mark.asyncio
    async def test_trigger_scenario_runs_every_prompt(self, session, ok_client):
        results = await session.trigger_scenario(0)
        assert [result.prompt_id for result in results] == ["summary", "bullets"]
        assert len(ok_client.calls) == 2
        assert len(session.results) == 2

    @pytest.mark.asyncio
    async def test_double_trigger_keeps_last_completion(self, config, memory_store):
        client = StubClient(
            [
                {"tokens": 1, "content": "slow", "delay": 0.05},
                {"tokens": 1, "content": "fast", "delay": 0.01},
            ],
            real_sleep=True,
        )
        session = ComparisonSession(config, memory_store, Dispatcher(client))
        await asyncio.gather(session.trigger("summary", 0), session.trigger("summary", 0))

        assert len(session.results) == 1
        assert session.results.get("summary", 0).output == "slow"

    @pytest.mark.asyncio
    async def test_storage_error_is_recorded_and_flag_cleared(self, config, dispatcher):
        session = ComparisonSession(config, FailingKeyValueStore(), dispatcher)

        assert await session.trigger("summary", 0) is None
        assert session.errors == ["disk full writing promptResults"]
        assert session.is_running("summary", 0) is False
        assert len(session.results) == 0

    @pytest.mark.asyncio
    async def test_storage_error_does_not_abort_scenario(self, config, dispatcher):
        session = ComparisonSession(config, FailingKeyValueStore(), dispatcher)
        assert await session.trigger_scenario(0) == [None, None]
        assert len(session.errors) == 2

    @pytest.mark.asyncio
    async def test_credentials_are_not_persisted(self, session, memory_store):
        await session.trigger("summary", 0, "sk-secret-value")
        assert all("sk-secret-value" not in value for value in memory_store._data.values())


class TestErrors:
    """Dismissible error messages."""

    def test_dismiss(self, session):
        session.errors.extend(["one", "two"])
        session.dismiss_error(0)
        assert session.errors == ["two"]
        session.dismiss_error(5)
        assert session.errors == ["two"]


class TestLifecycle:
    """Opening and reloading configuration."""

    def test_open_from_settings(self, tmp_path: Path):
        config_path = tmp_path / "prompts.yaml"
        payload = copy.deepcopy(SAMPLE_CONFIG)
        payload["prompts"][1]["modelConfig"] = "missing"
        config_path.write_text(yaml.safe_dump(payload), encoding="utf-8")

        settings = Settings(config_path=config_path, db_path=tmp_path / "cache.db")
        session = ComparisonSession.open(settings, client=StubClient([{"tokens": 1}]))

        assert session.config.prompt_ids == ["summary"]
        assert "bullets" in session.config.rejected
        assert session.dispatcher.cost_per_token == settings.cost_per_token

    def test_reload_replaces_configuration(self, session):
        payload = copy.deepcopy(SAMPLE_CONFIG)
        payload["prompts"] = payload["prompts"][:1]
        payload["scenarios"] = 5

        previous = session.config
        session.reload_config(payload)

        assert session.config is not previous
        assert session.config.prompt_ids == ["summary"]
        assert list(session.scenarios) == [0, 1, 2, 3, 4]

    def test_reload_keeps_cached_state(self, config, dispatcher):
        storage = InMemoryKeyValueStore()
        session = ComparisonSession(config, storage, dispatcher)
        session.set_variable("article", 0, "kept")
        session.reload_config(SAMPLE_CONFIG)
        assert session.scenario_values(0)["article"] == "kept"


class TestRepeatedRuns:
    """The page runs each button press on a fresh event loop."""

    def test_bounded_client_across_button_presses(self, config, memory_store, monkeypatch):
        async def fake_acompletion(**kwargs):
            await asyncio.sleep(0)
            return SimpleNamespace(
                model=kwargs["model"],
                usage={"total_tokens": 7},
                choices=[SimpleNamespace(message=SimpleNamespace(content="done"), finish_reason="stop")],
            )

        monkeypatch.setattr(llm_client, "acompletion", fake_acompletion)
        session = ComparisonSession(config, memory_store, Dispatcher(LLMClient(1)))

        asyncio.run(session.trigger_scenario(0))
        asyncio.run(session.trigger_scenario(1))

        assert session.errors == []
        assert len(session.results) == 4
        assert session.results.get("bullets", 1).output == "done"
