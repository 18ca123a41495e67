"""Run record persistence and thread linkage."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from answer_machine.models import AnswerMachineRun, ChatMessage, ChatThread
from answer_machine.schemas.answer_machine import RunResolution

logger = logging.getLogger(__name__)


class RunStore:
    """CRUD for Answer Machine runs and the thread's live run pointer."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, run_id: UUID) -> Optional[AnswerMachineRun]:
        return self.db.query(AnswerMachineRun).filter(AnswerMachineRun.run_id == run_id).first()

    def get_thread(self, thread_id: UUID, username: Optional[str] = None) -> Optional[ChatThread]:
        query = self.db.query(ChatThread).filter(ChatThread.thread_id == thread_id)
        if username is not None:
            query = query.filter(ChatThread.username == username)
        return query.first()

    def latest_for_thread(self, thread_id: UUID) -> Optional[AnswerMachineRun]:
        return (
            self.db.query(AnswerMachineRun)
            .filter(AnswerMachineRun.thread_id == thread_id)
            .order_by(AnswerMachineRun.created_at.desc())
            .first()
        )

    def create(
        self,
        thread_id: UUID,
        parent_message_id: UUID,
        username: str,
        min_iterations: int = 1,
        max_iterations: int = 1,
    ) -> AnswerMachineRun:
        run = AnswerMachineRun(
            thread_id=thread_id,
            parent_message_id=parent_message_id,
            username=username,
            status="pending",
            min_iterations=min_iterations,
            max_iterations=max_iterations,
            current_iteration=1,
            intermediate_answers=[],
            final_answer="",
        )
        self.db.add(run)
        self.db.commit()
        return run

    def continuation_info(self, thread_id: UUID) -> Optional[RunResolution]:
        """The thread's linked run if its record still exists."""
        thread = self.get_thread(thread_id)
        if not thread or not thread.answer_machine_id:
            return None

        run = self.get(thread.answer_machine_id)
        if not run:
            return None

        return RunResolution(run_id=run.run_id, current_iteration=run.current_iteration or 1, resumed=True)

    def initialize_new_run(
        self,
        thread: ChatThread,
        username: str,
        min_iterations: int = 1,
        max_iterations: int = 1,
    ) -> Optional[AnswerMachineRun]:
        """
        Clear the thread's run pointer and create a fresh run.

        The parent message is the latest non-AI message the user wrote in the
        thread. Returns None when there is no such message. Earlier runs keep
        their records; only the pointer moves.
        """
        if thread.answer_machine_id:
            thread.answer_machine_id = None
            self.db.commit()

        last_user_message = (
            self.db.query(ChatMessage)
            .filter(
                ChatMessage.thread_id == thread.thread_id,
                ChatMessage.username == username,
                ChatMessage.is_ai.is_(False),
            )
            .order_by(ChatMessage.created_at.desc())
            .first()
        )
        if not last_user_message:
            return None

        run = self.create(
            thread_id=thread.thread_id,
            parent_message_id=last_user_message.message_id,
            username=username,
            min_iterations=min_iterations,
            max_iterations=max_iterations,
        )

        thread.answer_machine_id = run.run_id
        thread.answer_machine_status = "pending"
        thread.answer_machine_error_reason = ""
        self.db.commit()

        logger.info(f"Created run {run.run_id} for thread {thread.thread_id}")
        return run

    def record_iteration(self, run_id: UUID, iteration_number: int, intermediate_answer: str = "") -> None:
        """Append the iteration's intermediate answer and advance to the next iteration."""
        run = self.get(run_id)
        if not run:
            raise ValueError(f"Run {run_id} not found")

        if intermediate_answer:
            # Reassign so the JSON column is flagged dirty
            run.intermediate_answers = list(run.intermediate_answers or []) + [intermediate_answer]

        next_iteration = iteration_number + 1
        if next_iteration > (run.current_iteration or 1):
            run.current_iteration = next_iteration
        self.db.commit()

    def latest_intermediate_answer(self, run_id: UUID) -> str:
        run = self.get(run_id)
        if not run or not run.intermediate_answers:
            return ""
        return run.intermediate_answers[-1]

    def set_final_answer(self, run_id: UUID, answer: str) -> None:
        run = self.get(run_id)
        if run:
            run.final_answer = answer
            self.db.commit()

    def mark_answered(self, run_id: UUID) -> None:
        run = self.get(run_id)
        if not run:
            return
        run.status = "answered"
        run.error_reason = ""

        thread = self.get_thread(run.thread_id)
        if thread:
            thread.answer_machine_status = "answered"
            thread.answer_machine_error_reason = ""
        self.db.commit()

    def mark_error(self, thread_id: UUID, error_reason: str, run_id: Optional[UUID] = None) -> None:
        """Mark the thread (and the run, when known) as failed."""
        thread = self.get_thread(thread_id)
        if thread:
            thread.answer_machine_status = "error"
            thread.answer_machine_error_reason = error_reason

        if run_id is not None:
            run = self.get(run_id)
            if run:
                run.status = "error"
                run.error_reason = error_reason
        self.db.commit()
