"""Runs one Answer Machine iteration."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from answer_machine.agents.answering import SubQuestionAnswerer
from answer_machine.agents.decomposition import QuestionDecompositionStrategy
from answer_machine.agents.evaluation import SatisfactionEvaluator
from answer_machine.agents.synthesis import IntermediateAnswerSynthesizer
from answer_machine.config import settings
from answer_machine.core.limits import (
    GapRecovery,
    check_iteration_limits,
    decide_continuation,
    resolve_prior_gaps,
)
from answer_machine.schemas.answer_machine import IterationResult, TokenUsage
from answer_machine.services.conversation import ConversationService, format_transcript
from answer_machine.services.run_store import RunStore
from answer_machine.services.token_store import TokenStore
from answer_machine.services.tokens import format_token_usage

logger = logging.getLogger(__name__)


class IterationProcessor:
    """
    One pass of decompose, answer, synthesize and evaluate.

    Any exception inside an iteration is logged and turned into a stop with
    an error reason; it never propagates to the caller.
    """

    def __init__(
        self,
        db: Session,
        decomposer: QuestionDecompositionStrategy,
        answerer: SubQuestionAnswerer,
        synthesizer: IntermediateAnswerSynthesizer,
        evaluator: SatisfactionEvaluator,
        gap_recovery: Optional[GapRecovery] = None,
    ):
        self.db = db
        self.decomposer = decomposer
        self.answerer = answerer
        self.synthesizer = synthesizer
        self.evaluator = evaluator
        self.gap_recovery = gap_recovery or GapRecovery(evaluator)
        self.runs = RunStore(db)
        self.tokens = TokenStore(db)
        self.conversation = ConversationService(db)

    def _track(self, run_id: UUID, thread_id: UUID, username: str, tokens: Optional[TokenUsage], query_type: str):
        if tokens is None or tokens.total_tokens == 0:
            return
        logger.info(f"[{query_type}] {format_token_usage(tokens)}")
        self.tokens.track(run_id, thread_id, username, tokens, query_type)

    def process_iteration(
        self,
        run_id: UUID,
        thread_id: UUID,
        username: str,
        iteration_number: int,
        min_iterations: int,
        max_iterations: int,
        prior_gaps: Optional[List[str]] = None,
    ) -> IterationResult:
        try:
            limits = check_iteration_limits(iteration_number, min_iterations, max_iterations)
            logger.info(
                f"Processing iteration {iteration_number} for run {run_id} "
                f"(reached min: {limits.has_reached_min}, reached max: {limits.has_reached_max})"
            )

            messages = self.conversation.get_messages(thread_id, username, limit=settings.CONVERSATION_WINDOW)
            if not messages:
                return IterationResult(should_continue=False, error_reason="No conversation found")

            gaps = resolve_prior_gaps(run_id, iteration_number, prior_gaps, self.gap_recovery)
            if gaps.gaps:
                logger.info(f"Iteration {iteration_number}: prior gaps {gaps.gaps}")

            decomposition = self.decomposer.decompose(
                run_id,
                thread_id,
                username,
                iteration_number,
                gaps.gaps,
                gaps.is_continuing_for_min,
                transcript=format_transcript(messages),
            )
            self._track(run_id, thread_id, username, decomposition.tokens, "question_generation")
            logger.info(f"Iteration {iteration_number}: {len(decomposition.questions)} questions generated")

            if iteration_number > max_iterations:
                return IterationResult(should_continue=False)

            if not decomposition.questions and iteration_number == 1:
                logger.info(f"Iteration {iteration_number}: no questions generated, completing")
                return IterationResult(should_continue=False)

            self.answerer.answer_pending(run_id, username)

            synthesis = self.synthesizer.synthesize(run_id)
            self._track(run_id, thread_id, username, synthesis.tokens, "intermediate_answer")
            self.runs.record_iteration(run_id, iteration_number, synthesis.answer)
            self.tokens.refresh_run_totals(run_id)

            next_limits = check_iteration_limits(iteration_number + 1, min_iterations, max_iterations)
            if not next_limits.should_continue:
                logger.info(f"Max iterations ({max_iterations}) reached, completing")
                return IterationResult(should_continue=False)

            evaluation = self.evaluator.evaluate(run_id, iteration_number + 1)
            self._track(run_id, thread_id, username, evaluation.tokens, "evaluation")

            decision = decide_continuation(evaluation, next_limits)
            logger.info(
                f"Iteration {iteration_number + 1}: {decision.reason} "
                f"({evaluation.reasoning}), continue={decision.should_continue}"
            )

            if decision.should_continue:
                return IterationResult(should_continue=True, next_gaps=list(evaluation.gaps))
            return IterationResult(should_continue=False)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error in iteration {iteration_number} of run {run_id}: {e}", exc_info=True)
            return IterationResult(should_continue=False, error_reason=str(e) or "Iteration processing failed")
