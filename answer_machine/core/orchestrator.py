"""Drives an Answer Machine run from resolution to final answer."""

import logging
import threading
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from answer_machine.agents.answering import SubQuestionAnswerer
from answer_machine.agents.decomposition import QuestionDecompositionStrategy, TemplateQuestionDecomposer
from answer_machine.agents.evaluation import HeuristicSatisfactionEvaluator, SatisfactionEvaluator
from answer_machine.agents.final_answer import FinalAnswerGenerator
from answer_machine.agents.synthesis import IntermediateAnswerSynthesizer
from answer_machine.core.errors import AnswerMachineError, InvalidIterationBoundsError, ThreadNotFoundError
from answer_machine.core.iteration_processor import IterationProcessor
from answer_machine.core.run_manager import RunManager
from answer_machine.models import ChatThread
from answer_machine.schemas.answer_machine import AnswerMachineResult
from answer_machine.services.conversation import ConversationService
from answer_machine.services.llm_client import LLMClient
from answer_machine.services.run_store import RunStore
from answer_machine.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class AnswerMachineOrchestrator:
    """
    Runs iterations until the processor says stop, then writes the final
    answer back to the thread.

    `execute` never raises: validation errors, final answer failures and
    unexpected exceptions all come back as an unsuccessful result with the
    thread (and run, once resolved) marked as `error`.
    """

    def __init__(
        self,
        db: Session,
        llm_client: Optional[LLMClient] = None,
        decomposer: Optional[QuestionDecompositionStrategy] = None,
        evaluator: Optional[SatisfactionEvaluator] = None,
        answerer: Optional[SubQuestionAnswerer] = None,
        final_answer_generator: Optional[FinalAnswerGenerator] = None,
    ):
        self.db = db
        self.llm = llm_client or LLMClient()
        self.runs = RunStore(db)
        self.tokens = TokenStore(db)
        self.conversation = ConversationService(db)
        self.run_manager = RunManager(db)

        evaluator = evaluator or HeuristicSatisfactionEvaluator(self.llm, db)
        self.processor = IterationProcessor(
            db,
            decomposer=decomposer or TemplateQuestionDecomposer(self.llm, db),
            answerer=answerer or SubQuestionAnswerer(self.llm, db),
            synthesizer=IntermediateAnswerSynthesizer(self.llm, db),
            evaluator=evaluator,
        )
        self.final_answer_generator = final_answer_generator or FinalAnswerGenerator(self.llm, db)

    def _validate_settings(self, thread_id: UUID, username: str) -> Tuple[ChatThread, int, int]:
        thread = self.runs.get_thread(thread_id, username)
        if not thread:
            raise ThreadNotFoundError(thread_id)

        min_iterations = thread.answer_machine_min_iterations or 1
        max_iterations = thread.answer_machine_max_iterations or 1
        if min_iterations > max_iterations:
            raise InvalidIterationBoundsError(min_iterations, max_iterations)

        return thread, min_iterations, max_iterations

    def _fail(self, thread_id: UUID, error_reason: str, run_id: Optional[UUID] = None) -> AnswerMachineResult:
        try:
            self.runs.mark_error(thread_id, error_reason, run_id)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record error status for thread {thread_id}: {e}", exc_info=True)
        return AnswerMachineResult(success=False, error_reason=error_reason)

    def execute(
        self,
        thread_id: UUID,
        username: str,
        prior_gaps: Optional[List[str]] = None,
        continue_existing: bool = False,
        stop_event: Optional[threading.Event] = None,
    ) -> AnswerMachineResult:
        """
        Run the Answer Machine on a thread to completion.

        Args:
            thread_id: Thread whose latest user message is answered
            username: Owner of the thread
            prior_gaps: Gaps to feed the first processed iteration
            continue_existing: Resume the thread's linked run if it exists
            stop_event: Checked between iterations; when set the run stays pending

        Returns:
            AnswerMachineResult
        """
        run_id = None
        try:
            thread, min_iterations, max_iterations = self._validate_settings(thread_id, username)

            resolution = self.run_manager.resolve_run(
                thread_id, thread, username, continue_existing, min_iterations, max_iterations
            )
            run_id = resolution.run_id

            iteration = resolution.current_iteration
            gaps = prior_gaps
            while True:
                result = self.processor.process_iteration(
                    run_id, thread_id, username, iteration, min_iterations, max_iterations, gaps
                )

                if result.error_reason:
                    # Best-effort final answer over whatever was accumulated
                    logger.error(f"Iteration {iteration} of run {run_id} stopped: {result.error_reason}")
                    break

                if not result.should_continue:
                    break

                iteration += 1
                gaps = result.next_gaps or []

                if stop_event is not None and stop_event.is_set():
                    logger.info(f"Run {run_id} cancelled before iteration {iteration}")
                    return AnswerMachineResult(success=False, error_reason="Cancelled", cancelled=True)

            return self._finalize(thread_id, username, run_id)

        except ThreadNotFoundError as e:
            # Nothing of the caller's to mark
            logger.warning(f"Thread {thread_id} not found for user {username}")
            return AnswerMachineResult(success=False, error_reason=str(e))

        except AnswerMachineError as e:
            logger.warning(f"Answer Machine validation failed for thread {thread_id}: {e}")
            return self._fail(thread_id, str(e), run_id)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error in Answer Machine for thread {thread_id}: {e}", exc_info=True)
            return self._fail(thread_id, str(e) or "Internal server error", run_id)

    def _finalize(self, thread_id: UUID, username: str, run_id: UUID) -> AnswerMachineResult:
        logger.info(f"Generating final answer for run {run_id}")
        final = self.final_answer_generator.generate(thread_id, username, run_id)

        if not final.success or not final.answer:
            error_reason = final.error_reason or "Failed to generate final answer"
            logger.error(f"Final answer generation failed for run {run_id}: {error_reason}")
            return self._fail(thread_id, error_reason, run_id)

        self.runs.set_final_answer(run_id, final.answer)
        self.conversation.append_ai_message(thread_id, username, final.answer)
        self.tokens.refresh_run_totals(run_id)
        self.runs.mark_answered(run_id)

        logger.info(f"Answer Machine completed run {run_id} for thread {thread_id}")
        return AnswerMachineResult(success=True)
