"""Application configuration using Pydantic Settings."""

from typing import Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # OpenRouter
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_DEFAULT_MODEL: str = "meta-llama/llama-3.1-8b-instruct"
    SITE_URL: str = ""
    SITE_NAME: str = "Answer Machine"

    # Groq
    GROQ_API_KEY: str = ""
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    GROQ_DEFAULT_MODEL: str = "llama3-8b-8192"

    # Ollama (no key, endpoint only)
    OLLAMA_BASE_URL: str = ""
    OLLAMA_DEFAULT_MODEL: str = "llama3.1"

    # Any other OpenAI-compatible endpoint
    OPENAI_COMPATIBLE_BASE_URL: str = ""
    OPENAI_COMPATIBLE_API_KEY: str = ""
    OPENAI_COMPATIBLE_DEFAULT_MODEL: str = "gpt-4o-mini"

    # LLM calls
    LLM_TIMEOUT_SECONDS: float = 120.0
    LLM_MAX_ATTEMPTS: int = 1  # One attempt per call; raise to enable backoff retries
    LLM_ALLOWED_MODELS: List[str] = []  # Empty list allows any model

    # Token cost table (USD per 1M tokens). Placeholder rates, override per deployment.
    TOKEN_RATES_PER_MILLION: Dict[str, float] = {
        "prompt": 0.5,
        "completion": 1.5,
        "reasoning": 0.3,
    }
    MODEL_TOKEN_RATES: Dict[str, Dict[str, float]] = {}  # "provider/model" or "model" -> rates

    # Conversation / retrieval windows
    CONVERSATION_WINDOW: int = 20
    SUB_QUESTION_CONTEXT_MESSAGES: int = 10
    CONTEXT_SEARCH_LIMIT: int = 50
    CONTEXT_TOP_K: int = 10

    # Worker
    WORKER_POLL_INTERVAL: int = 5
    MAX_JOB_RETRIES: int = 3

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
