"""Intermediate answer synthesis over answered sub-questions."""

import logging
from uuid import UUID

from answer_machine.agents.base import BaseAgent
from answer_machine.schemas.answer_machine import SynthesisResult
from answer_machine.services.sub_question_store import SubQuestionStore

logger = logging.getLogger(__name__)

NOTHING_ANSWERED = "No sub-questions have been answered yet."


class IntermediateAnswerSynthesizer(BaseAgent):
    """Merges every answered sub-question of a run into one numbered intermediate answer."""

    def __init__(self, llm_client, db_session):
        super().__init__(llm_client, db_session)
        self.sub_questions = SubQuestionStore(db_session)

    def synthesize(self, run_id: UUID) -> SynthesisResult:
        pairs = self.sub_questions.answered_pairs(run_id)
        if not pairs:
            return SynthesisResult(answer=NOTHING_ANSWERED, tokens=self.placeholder_tokens(10, 5))

        parts = [f"Based on analysis of {len(pairs)} key questions:\n\n"]
        for index, (question, answer) in enumerate(pairs, start=1):
            parts.append(f"{index}. {question}\n")
            parts.append(f"   {answer or 'No answer available'}\n\n")
        parts.append("This analysis provides insights into the topic, revealing key aspects and considerations.")

        count = len(pairs)
        answer = "".join(parts)
        logger.info(f"Synthesized intermediate answer for run {run_id} from {count} sub-questions ({len(answer)} chars)")
        return SynthesisResult(
            answer=answer,
            tokens=self.placeholder_tokens(count * 20, count * 15, count * 5),
        )
