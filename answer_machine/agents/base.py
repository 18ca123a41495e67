"""Base agent shared by the Answer Machine strategies."""

import logging
from typing import Optional
from uuid import UUID

from answer_machine.schemas.answer_machine import LlmConfig, TokenUsage
from answer_machine.services.llm_client import LLMClient
from answer_machine.services.token_store import TokenStore
from answer_machine.services.tokens import extract_tokens, format_token_usage, with_cost

logger = logging.getLogger(__name__)


class BaseAgent:
    """Base class for LLM-consuming strategies: holds the LLM client, session and token store."""

    def __init__(self, llm_client: Optional[LLMClient], db_session):
        """Initialize base agent."""
        self.llm = llm_client
        self.db = db_session
        self.token_store = TokenStore(db_session)

    @staticmethod
    def placeholder_tokens(prompt_tokens: int, completion_tokens: int, reasoning_tokens: int = 0) -> TokenUsage:
        """Token usage for steps that do not call the LLM but are still accounted for."""
        tokens = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            reasoning_tokens=reasoning_tokens,
            total_tokens=prompt_tokens + completion_tokens + reasoning_tokens,
        )
        return with_cost(tokens)

    @staticmethod
    def tokens_from_raw(raw, config: LlmConfig) -> TokenUsage:
        return with_cost(extract_tokens(raw), config.model, config.provider)

    def track_tokens(
        self,
        run_id: UUID,
        thread_id: UUID,
        username: str,
        tokens: TokenUsage,
        query_type: str,
    ) -> None:
        logger.info(f"{self.__class__.__name__} [{query_type}] {format_token_usage(tokens)}")
        self.token_store.track(run_id, thread_id, username, tokens, query_type)
