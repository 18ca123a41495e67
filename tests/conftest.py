"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from answer_machine.database import Base
from answer_machine.models import ChatMessage, ChatThread
from answer_machine.schemas.answer_machine import LlmConfig, LLMResult


@pytest.fixture(scope="function")
def test_db():
    """Create a test database for each test."""
    # Use in-memory SQLite for testing
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    yield db

    db.close()


class FakeLLMClient:
    """Stands in for LLMClient; answers keyword prompts with keywords and everything else with `content`."""

    def __init__(self, content="Generated answer", keywords='{"keywords": ["budget", "travel"]}', fail=False, error=None):
        self.content = content
        self.keywords = keywords
        self.fail = fail
        self.error = error
        self.calls = []

    def call(self, config, messages, temperature=0.7, max_tokens=1024, json_mode=False):
        self.calls.append(
            {
                "config": config,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
            }
        )
        if self.error is not None:
            raise self.error
        if self.fail:
            return LLMResult(success=False, error="LLM unavailable")

        system = messages[0]["content"] if messages else ""
        content = self.keywords if "keyword extraction" in system else self.content
        raw = {"usage": {"prompt_tokens": 100, "completion_tokens": 40, "total_tokens": 140}}
        return LLMResult(success=True, content=content, raw=raw)

    def answer_calls(self):
        return [c for c in self.calls if "keyword extraction" not in c["messages"][0]["content"]]


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def llm_config():
    return LlmConfig(
        provider="openrouter",
        api_key="test-key",
        endpoint="https://openrouter.ai/api/v1/chat/completions",
        model="test-model",
    )


@pytest.fixture
def make_thread(test_db):
    """Factory creating a thread with messages given as (content, is_ai) pairs."""

    def _make(
        username="alice",
        messages=(("What should I pack for my trip to Japan next month?", False),),
        min_iterations=None,
        max_iterations=None,
        system_prompt="",
    ):
        thread = ChatThread(
            username=username,
            title="Trip planning",
            system_prompt=system_prompt,
            answer_machine_min_iterations=min_iterations,
            answer_machine_max_iterations=max_iterations,
        )
        test_db.add(thread)
        test_db.flush()

        start = datetime.utcnow() - timedelta(minutes=len(messages) + 1)
        for i, (content, is_ai) in enumerate(messages):
            test_db.add(
                ChatMessage(
                    thread_id=thread.thread_id,
                    username=username,
                    content=content,
                    type="text",
                    is_ai=is_ai,
                    created_at=start + timedelta(minutes=i),
                )
            )
        test_db.commit()
        return thread

    return _make


@pytest.fixture
def llm_factory():
    """Build a FakeLLMClient with custom behaviour."""
    return FakeLLMClient
