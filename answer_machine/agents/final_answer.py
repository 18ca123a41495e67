"""Final answer generation across every answered sub-question of a run."""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from answer_machine.agents.base import BaseAgent
from answer_machine.schemas.answer_machine import FinalAnswerResult
from answer_machine.services.conversation import ConversationService, format_transcript
from answer_machine.services.llm_config import LlmConfigResolver
from answer_machine.services.run_store import RunStore
from answer_machine.services.sub_question_store import SubQuestionStore

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."

FINAL_ANSWER_INSTRUCTIONS = """You are synthesizing a comprehensive final answer based on research questions that were asked to gather information. Your task is to provide a complete, well-structured answer that directly addresses the original user question.

Instructions:
- Synthesize information from all the research questions and answers provided
- Provide a comprehensive but concise answer
- Structure your answer clearly
- Ensure the answer directly addresses the original question
- Use evidence from the research to support your answer
- If there are gaps or uncertainties, acknowledge them
- Maintain the same helpful tone as the system prompt above"""


def format_findings(pairs: List[Tuple[str, str]]) -> str:
    return "\n\n".join(
        f"Research Question {i}: {question}\nAnswer {i}: {answer}"
        for i, (question, answer) in enumerate(pairs, start=1)
    )


class FinalAnswerGenerator(BaseAgent):
    """Asks the LLM for the run's final answer using the whole conversation and the research findings."""

    def __init__(self, llm_client, db_session, config_resolver: Optional[LlmConfigResolver] = None):
        super().__init__(llm_client, db_session)
        self.runs = RunStore(db_session)
        self.sub_questions = SubQuestionStore(db_session)
        self.conversation = ConversationService(db_session)
        self.config_resolver = config_resolver or LlmConfigResolver(db_session)

    def _build_messages(self, thread_id: UUID, username: str, run_id: UUID):
        thread = self.runs.get_thread(thread_id)
        system_prompt = (thread.system_prompt if thread else "") or DEFAULT_SYSTEM_PROMPT

        messages = [m for m in self.conversation.get_messages(thread_id, username) if m.type == "text"]
        conversation_text = format_transcript(messages, separator="\n\n")
        findings = format_findings(self.sub_questions.answered_pairs(run_id))

        user_prompt = "Please provide a comprehensive final answer based on the following research and conversation context.\n\n"
        if conversation_text:
            user_prompt += f"ORIGINAL CONVERSATION:\n{conversation_text}\n\n"
        if findings:
            user_prompt += f"RESEARCH FINDINGS:\n{findings}\n\n"
        user_prompt += "Based on all the above information, please provide a complete and well-structured answer to the user's original question."

        return [
            {"role": "system", "content": f"{system_prompt}\n\n{FINAL_ANSWER_INSTRUCTIONS}"},
            {"role": "user", "content": user_prompt},
        ]

    def generate(self, thread_id: UUID, username: str, run_id: UUID) -> FinalAnswerResult:
        try:
            run = self.runs.get(run_id)
            if not run:
                return FinalAnswerResult(success=False, error_reason="Answer machine record not found")

            config = self.config_resolver.resolve(username, run.thread_id)
            if not config:
                return FinalAnswerResult(success=False, error_reason="No LLM configuration available")

            messages = self._build_messages(thread_id, username, run_id)
            result = self.llm.call(config, messages, temperature=0.4, max_tokens=2048)
            if not result.success or not result.content.strip():
                return FinalAnswerResult(
                    success=False, error_reason=result.error or "Failed to generate final answer"
                )

            tokens = self.tokens_from_raw(result.raw, config)
            self.track_tokens(run_id, thread_id, username, tokens, "final_answer")

            logger.info(f"Generated final answer for run {run_id}")
            return FinalAnswerResult(success=True, answer=result.content.strip(), tokens=tokens)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error generating final answer for thread {thread_id}: {e}", exc_info=True)
            return FinalAnswerResult(success=False, error_reason=str(e) or "Final answer generation failed")
