"""Tests for LLM configuration, the LLM client and keyword extraction."""

import httpx
import pytest

from answer_machine.config import settings
from answer_machine.schemas.answer_machine import LlmConfig
from answer_machine.services.keywords import KeywordGenerator, extract_basic_keywords, parse_keywords
from answer_machine.services.llm_client import LLMClient
from answer_machine.services.llm_config import LlmConfigResolver


@pytest.fixture
def providers(monkeypatch):
    """Start with no provider configured."""
    for name in ("GROQ_API_KEY", "OPENROUTER_API_KEY", "OLLAMA_BASE_URL", "OPENAI_COMPATIBLE_BASE_URL",
                 "OPENAI_COMPATIBLE_API_KEY"):
        monkeypatch.setattr(settings, name, "")
    return monkeypatch


def test_resolver_priority(test_db, providers):
    resolver = LlmConfigResolver(test_db)
    assert resolver.resolve("alice") is None

    providers.setattr(settings, "OLLAMA_BASE_URL", "http://localhost:11434/")
    assert resolver.resolve("alice").provider == "ollama"
    assert resolver.resolve("alice").endpoint == "http://localhost:11434"

    providers.setattr(settings, "OPENROUTER_API_KEY", "or-key")
    config = resolver.resolve("alice")
    assert config.provider == "openrouter"
    assert config.endpoint == "https://openrouter.ai/api/v1/chat/completions"

    providers.setattr(settings, "GROQ_API_KEY", "groq-key")
    assert resolver.resolve("alice").provider == "groq"


def test_resolver_thread_override(test_db, providers, make_thread):
    providers.setattr(settings, "GROQ_API_KEY", "groq-key")
    providers.setattr(settings, "OPENROUTER_API_KEY", "or-key")
    thread = make_thread()
    thread.ai_model_provider = "openrouter"
    thread.ai_model_name = "anthropic/some-model"
    test_db.commit()

    config = LlmConfigResolver(test_db).resolve("alice", thread.thread_id)

    assert config.provider == "openrouter"
    assert config.model == "anthropic/some-model"

    # Override naming an unconfigured provider falls back to priority order
    thread.ai_model_provider = "ollama"
    test_db.commit()
    assert LlmConfigResolver(test_db).resolve("alice", thread.thread_id).provider == "groq"


def _config(provider="openrouter", endpoint="https://openrouter.ai/api/v1/chat/completions"):
    return LlmConfig(provider=provider, api_key="key", endpoint=endpoint, model="test-model")


def test_call_success(monkeypatch):
    sent = {}

    def fake_post(self, url, headers, payload):
        sent.update(url=url, headers=headers, payload=payload)
        return {
            "choices": [{"message": {"content": "Hello"}}],
            "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
        }

    monkeypatch.setattr(LLMClient, "_post", fake_post)

    result = LLMClient(max_attempts=1).call(
        _config(), [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hi"}], json_mode=True
    )

    assert result.success
    assert result.content == "Hello"
    assert result.raw["usage"]["total_tokens"] == 6
    assert sent["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert sent["headers"]["Authorization"] == "Bearer key"
    assert sent["payload"]["response_format"] == {"type": "json_object"}
    system = sent["payload"]["messages"][0]["content"]
    assert system.startswith("SECURITY WARNINGS:")
    assert system.endswith("Be brief.")


def test_call_does_not_mutate_messages(monkeypatch):
    monkeypatch.setattr(LLMClient, "_post", lambda self, url, headers, payload: {"choices": [{"message": {"content": "ok"}}]})
    messages = [{"role": "system", "content": "Original"}]

    LLMClient(max_attempts=1).call(_config(), messages)

    assert messages == [{"role": "system", "content": "Original"}]


def test_ollama_request_shape(monkeypatch):
    sent = {}

    def fake_post(self, url, headers, payload):
        sent.update(url=url, payload=payload)
        return {"message": {"content": "Local reply"}, "prompt_eval_count": 3, "eval_count": 2}

    monkeypatch.setattr(LLMClient, "_post", fake_post)

    result = LLMClient(max_attempts=1).call(
        _config("ollama", "http://localhost:11434"), [{"role": "user", "content": "Hi"}], max_tokens=64
    )

    assert result.content == "Local reply"
    assert sent["url"] == "http://localhost:11434/api/chat"
    assert sent["payload"]["stream"] is False
    assert sent["payload"]["options"]["num_predict"] == 64


def test_http_error_becomes_failed_result(monkeypatch):
    def fake_post(self, url, headers, payload):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(LLMClient, "_post", fake_post)

    result = LLMClient(max_attempts=1).call(_config(), [{"role": "user", "content": "Hi"}])

    assert not result.success
    assert "connection refused" in result.error


def test_empty_reply_is_failure(monkeypatch):
    monkeypatch.setattr(LLMClient, "_post", lambda self, url, headers, payload: {"choices": []})

    result = LLMClient(max_attempts=1).call(_config(), [{"role": "user", "content": "Hi"}])

    assert not result.success
    assert result.error == "Empty response from LLM"


def test_model_whitelist(monkeypatch):
    monkeypatch.setattr(settings, "LLM_ALLOWED_MODELS", ["other-model"])

    result = LLMClient(max_attempts=1).call(_config(), [{"role": "user", "content": "Hi"}])

    assert not result.success
    assert "not in allowed whitelist" in result.error


@pytest.mark.parametrize(
    "content,expected",
    [
        ('["rail pass", "budget"]', ["rail pass", "budget"]),
        ('{"keywords": ["kyoto", "hotels"]}', ["kyoto", "hotels"]),
        ("kyoto, hotels; 'rail pass'\nbudget", ["kyoto", "hotels", "rail pass", "budget"]),
    ],
)
def test_parse_keywords(content, expected):
    assert parse_keywords(content) == expected


def test_parse_keywords_limits():
    assert len(parse_keywords(", ".join(f"kw{i}" for i in range(15)))) == 10
    assert parse_keywords("x" * 51) == []


def test_extract_basic_keywords():
    keywords = extract_basic_keywords("What hotels should I book near Kyoto station, and which hotels are cheap?")

    assert keywords == ["hotels", "book", "near", "kyoto", "station", "cheap"]


def test_keyword_generator_falls_back(llm_factory, llm_config):
    generator = KeywordGenerator(llm_factory(fail=True))

    assert generator.generate("Which Kyoto temples open early?", "alice", llm_config) == [
        "kyoto", "temples", "open", "early"
    ]
    assert KeywordGenerator(llm_factory()).generate("Kyoto temples", "alice", None) == ["kyoto", "temples"]


def test_keyword_generator_uses_llm(fake_llm, llm_config):
    keywords = KeywordGenerator(fake_llm).generate("What is my budget?", "alice", llm_config)

    assert keywords == ["budget", "travel"]
    assert fake_llm.calls[0]["json_mode"] is True
    assert fake_llm.calls[0]["temperature"] == 0.3
    assert fake_llm.calls[0]["max_tokens"] == 200
