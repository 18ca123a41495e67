"""Resolution of the provider, credentials and model used for a user's LLM calls."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from answer_machine.config import settings
from answer_machine.models import ChatThread
from answer_machine.schemas.answer_machine import LlmConfig

logger = logging.getLogger(__name__)

PROVIDER_PRIORITY = ("groq", "openrouter", "ollama", "openai-compatible")


def _chat_completions_url(base_url: str) -> str:
    base_url = base_url.strip()
    if base_url.endswith("/chat/completions"):
        return base_url
    return base_url.rstrip("/") + "/chat/completions"


class LlmConfigResolver:
    """Picks an LLM configuration for a user, honouring per-thread model overrides."""

    def __init__(self, db: Session):
        self.db = db

    def _provider_config(self, provider: str, model: Optional[str] = None) -> Optional[LlmConfig]:
        """Configuration for `provider` if its credentials are set, else None."""
        if provider == "groq" and settings.GROQ_API_KEY:
            return LlmConfig(
                provider="groq",
                api_key=settings.GROQ_API_KEY,
                endpoint=_chat_completions_url(settings.GROQ_BASE_URL),
                model=model or settings.GROQ_DEFAULT_MODEL,
            )
        if provider == "openrouter" and settings.OPENROUTER_API_KEY:
            return LlmConfig(
                provider="openrouter",
                api_key=settings.OPENROUTER_API_KEY,
                endpoint=_chat_completions_url(settings.OPENROUTER_BASE_URL),
                model=model or settings.OPENROUTER_DEFAULT_MODEL,
            )
        if provider == "ollama" and settings.OLLAMA_BASE_URL:
            return LlmConfig(
                provider="ollama",
                api_key="",
                endpoint=settings.OLLAMA_BASE_URL.rstrip("/"),
                model=model or settings.OLLAMA_DEFAULT_MODEL,
            )
        if (
            provider == "openai-compatible"
            and settings.OPENAI_COMPATIBLE_BASE_URL
            and settings.OPENAI_COMPATIBLE_API_KEY
        ):
            return LlmConfig(
                provider="openai-compatible",
                api_key=settings.OPENAI_COMPATIBLE_API_KEY,
                endpoint=_chat_completions_url(settings.OPENAI_COMPATIBLE_BASE_URL),
                model=model or settings.OPENAI_COMPATIBLE_DEFAULT_MODEL,
            )
        return None

    def resolve(self, username: str, thread_id: Optional[UUID] = None) -> Optional[LlmConfig]:
        """
        Resolve the LLM configuration for a user.

        A thread that names a provider and model uses them when that provider
        is configured. Otherwise the first configured provider in priority
        order (groq, openrouter, ollama, openai-compatible) is used with its
        default model. Returns None when nothing is configured.
        """
        try:
            if thread_id is not None:
                thread = (
                    self.db.query(ChatThread)
                    .filter(ChatThread.thread_id == thread_id, ChatThread.username == username)
                    .first()
                )
                if thread and thread.ai_model_provider and thread.ai_model_name:
                    config = self._provider_config(thread.ai_model_provider, thread.ai_model_name)
                    if config:
                        return config
                    logger.warning(
                        f"Thread {thread_id} requests provider {thread.ai_model_provider} "
                        f"but it is not configured, falling back to default"
                    )

            for provider in PROVIDER_PRIORITY:
                config = self._provider_config(provider)
                if config:
                    return config

            logger.warning(f"No LLM provider configured for user {username}")
            return None

        except Exception as e:
            logger.error(f"Error resolving LLM config for user {username}: {e}", exc_info=True)
            return None
