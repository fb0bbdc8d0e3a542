from __future__ import annotations

import json
import sqlite3
from types import SimpleNamespace
from typing import Any, List

import pytest

from deliverymaster.repo import HistoryStore


class DummyLLMClient:
    """Minimal stand-in for the OpenAI client used by the pricing and geocode calls."""

    def __init__(self, *replies: Any) -> None:
        self.replies: List[Any] = list(replies)
        self.calls: List[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if not self.replies:
            raise AssertionError("Unexpected LLM call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    @property
    def prompts(self) -> List[str]:
        return [call["messages"][0]["content"] for call in self.calls]


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingGeocoder:
    def __init__(self, results=None, error: Exception | None = None) -> None:
        self.results = results
        self.error = error
        self.calls: List[List[str]] = []

    def __call__(self, texts):
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        if callable(self.results):
            return self.results(texts)
        if self.results is None:
            return [None] * len(texts)
        return list(self.results)


@pytest.fixture()
def conn():
    connection = sqlite3.connect(":memory:")
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture()
def store(conn):
    return HistoryStore(conn)
