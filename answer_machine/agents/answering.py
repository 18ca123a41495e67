"""Sub-question answering grounded in retrieved personal context."""

import logging
from typing import List, Optional
from uuid import UUID

from answer_machine.agents.base import BaseAgent
from answer_machine.config import settings
from answer_machine.schemas.answer_machine import SubQuestionAnswerResult
from answer_machine.services.content_retrieval import ContentRetrieval
from answer_machine.services.context_search import ContextSearch
from answer_machine.services.conversation import ConversationService
from answer_machine.services.keywords import KeywordGenerator
from answer_machine.services.llm_config import LlmConfigResolver
from answer_machine.services.sub_question_store import SubQuestionStore

logger = logging.getLogger(__name__)

ANSWER_SYSTEM_PROMPT = """You are a helpful AI assistant answering specific questions based on provided context.

Instructions:
- Answer the question directly and concisely
- Use the provided context to inform your answer
- If the context doesn't contain relevant information, say so clearly
- Be accurate and factual
- Keep answers focused on the specific question asked

Context provided:
{context}

{conversation}"""


def fallback_answer(question: str) -> str:
    return (
        f"Based on the available context, I can provide information related to: {question}. "
        f"However, a detailed analysis requires additional processing."
    )


class SubQuestionAnswerer(BaseAgent):
    """
    Answers pending sub-questions one at a time.

    Each answer retrieves context for the question's keywords and asks the
    LLM. When the LLM is unavailable or fails, a templated answer is stored
    instead, so an attempted sub-question never stays pending.
    """

    def __init__(
        self,
        llm_client,
        db_session,
        config_resolver: Optional[LlmConfigResolver] = None,
        keyword_generator: Optional[KeywordGenerator] = None,
        context_search: Optional[ContextSearch] = None,
        content_retrieval: Optional[ContentRetrieval] = None,
    ):
        super().__init__(llm_client, db_session)
        self.sub_questions = SubQuestionStore(db_session)
        self.conversation = ConversationService(db_session)
        self.config_resolver = config_resolver or LlmConfigResolver(db_session)
        self.keyword_generator = keyword_generator or KeywordGenerator(llm_client)
        self.context_search = context_search or ContextSearch(db_session)
        self.content_retrieval = content_retrieval or ContentRetrieval(db_session)

    def _conversation_context(self, thread_id: UUID, username: str) -> str:
        messages = self.conversation.get_messages(thread_id, username, limit=settings.SUB_QUESTION_CONTEXT_MESSAGES)
        messages = [m for m in messages if m.type == "text"]
        if not messages:
            return ""
        text = "\n\n".join(f"{'Assistant' if m.is_ai else 'User'}: {m.content or ''}" for m in messages)
        return f"Recent Conversation:\n{text}"

    def answer(self, sub_question_id: UUID, username: str) -> SubQuestionAnswerResult:
        sub_question = self.sub_questions.get(sub_question_id, username)
        if not sub_question or not (sub_question.question or "").strip():
            logger.warning(f"Sub-question not found or invalid: {sub_question_id}")
            return SubQuestionAnswerResult(success=False, error_reason="Sub-question not found or invalid")

        try:
            question = sub_question.question
            config = self.config_resolver.resolve(username, sub_question.thread_id)

            conversation_context = self._conversation_context(sub_question.thread_id, username)
            keywords = self.keyword_generator.generate(question, username, config)
            context_ids = self.context_search.search_context_ids(keywords, username)
            context_content = self.content_retrieval.get_context_content(context_ids, username)

            answer = None
            tokens = None
            if config is None:
                logger.warning(f"No LLM configuration available for user {username}")
            else:
                conversation_block = f"Additional Context:\n{conversation_context}" if conversation_context else ""
                messages = [
                    {
                        "role": "system",
                        "content": ANSWER_SYSTEM_PROMPT.format(
                            context=context_content, conversation=conversation_block
                        ),
                    },
                    {
                        "role": "user",
                        "content": f"Question: {question}\n\n"
                        f"Please provide a clear, direct answer based on the available context.",
                    },
                ]
                try:
                    result = self.llm.call(config, messages, temperature=0.3, max_tokens=1024)
                    if result.success and result.content.strip():
                        answer = result.content.strip()
                        tokens = self.tokens_from_raw(result.raw, config)
                    else:
                        logger.warning(f"LLM call failed for sub-question {sub_question_id}: {result.error}")
                except Exception as e:
                    logger.warning(f"LLM call raised for sub-question {sub_question_id}: {e}")

            used_fallback = answer is None
            if used_fallback:
                answer = fallback_answer(question)
                logger.info(f"Using fallback answer for sub-question {sub_question_id}")
            else:
                self.track_tokens(
                    sub_question.run_id, sub_question.thread_id, username, tokens, "sub_question_answer"
                )

            self.sub_questions.mark_answered(sub_question_id, answer, context_ids)

            return SubQuestionAnswerResult(
                success=True,
                answer=answer,
                context_ids=context_ids,
                tokens=tokens,
                used_fallback=used_fallback,
            )

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error answering sub-question {sub_question_id}: {e}", exc_info=True)
            try:
                self.sub_questions.mark_error(sub_question_id, str(e) or "Unknown error")
            except Exception as update_error:
                self.db.rollback()
                logger.error(f"Failed to record error for sub-question {sub_question_id}: {update_error}")
            return SubQuestionAnswerResult(success=False, error_reason=str(e) or "Unknown error")

    def answer_pending(self, run_id: UUID, username: str) -> List[SubQuestionAnswerResult]:
        """Answer every pending sub-question of the run, sequentially."""
        pending = self.sub_questions.find_pending(run_id)
        if not pending:
            return []

        logger.info(f"Processing {len(pending)} pending sub-questions for run {run_id}")
        ids = [sq.sub_question_id for sq in pending]

        results = []
        for sub_question_id in ids:
            result = self.answer(sub_question_id, username)
            if not result.success:
                logger.error(f"Failed to answer sub-question {sub_question_id}: {result.error_reason}")
            results.append(result)

        logger.info(f"Completed {len(results)} sub-questions for run {run_id}")
        return results
