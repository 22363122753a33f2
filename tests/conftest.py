"""Shared pytest fixtures for prompt compare tests."""

import asyncio
from typing import List, Optional

import pytest

from promptcompare.config import load_config
from promptcompare.dispatcher import Dispatcher
from promptcompare.llm_client import LLMResponse
from promptcompare.storage import InMemoryKeyValueStore, StorageError


SAMPLE_CONFIG = {
    "models": {
        "fast": {"provider": "openai", "model": "gpt-4o-mini", "temperature": 0.7, "max_tokens": 500},
        "precise": {"provider": "openai", "model": "gpt-4o", "temperature": 0.2, "max_tokens": 800},
    },
    "prompts": [
        {
            "id": "summary",
            "name": "Summary",
            "description": "Short summary",
            "template": "Summarize for {audience}: {article}",
            "modelConfig": "fast",
            "variables": [
                {"name": "article", "description": "Article text", "type": "string", "isMain": True},
                {"name": "audience", "description": "Target reader", "type": "string",
                 "isMain": False, "default": "engineers"},
            ],
        },
        {
            "id": "bullets",
            "name": "Bullets",
            "description": "Bullet list",
            "template": ["List {count} points for {audience}.", "", "{article}"],
            "modelConfig": "precise",
            "variables": [
                {"name": "count", "description": "Number of points", "type": "number",
                 "isMain": False, "default": 3},
                {"name": "article", "description": "Source text", "type": "string", "isMain": False},
                {"name": "audience", "description": "Target reader", "type": "string", "isMain": False},
            ],
        },
    ],
}


class FailingKeyValueStore(InMemoryKeyValueStore):
    """Reads normally; every write fails."""

    def set(self, key, value):
        raise StorageError(f"disk full writing {key}")


class FakeClock:
    """Monotonic clock advanced explicitly by the stub client."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class StubClient:
    """
    Completion boundary stand-in.

    Each call consumes the next scripted reply (the last one repeats). A reply
    is a dict with optional ``tokens``, ``content``, ``delay`` (seconds) and
    ``error`` keys.
    """

    def __init__(self, replies: List[dict], clock: Optional[FakeClock] = None, real_sleep: bool = False):
        self.replies = list(replies)
        self.clock = clock
        self.real_sleep = real_sleep
        self.calls = []

    async def complete_async(self, prompt_text, model, api_key=None):
        reply = self.replies[min(len(self.calls), len(self.replies) - 1)]
        self.calls.append({"prompt_text": prompt_text, "model": model, "api_key": api_key})

        delay = reply.get("delay", 0.0)
        if self.real_sleep:
            await asyncio.sleep(delay)
        else:
            await asyncio.sleep(0)
            if self.clock is not None:
                self.clock.now += delay

        if "error" in reply:
            raise reply["error"]

        usage = {"total_tokens": reply["tokens"]} if "tokens" in reply else None
        return LLMResponse(content=reply.get("content"), model=model.model, usage=usage)


@pytest.fixture
def config():
    return load_config(SAMPLE_CONFIG)


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ok_client(clock):
    return StubClient([{"tokens": 100, "content": "ok", "delay": 0.5}], clock=clock)


@pytest.fixture
def dispatcher(ok_client, clock):
    return Dispatcher(ok_client, clock=clock)
