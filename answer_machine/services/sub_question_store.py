"""Sub-question persistence and status transitions."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from answer_machine.models import SubQuestion
from answer_machine.schemas.answer_machine import SubQuestionCounts

logger = logging.getLogger(__name__)


class SubQuestionStore:
    """
    CRUD for sub-questions.

    Status only moves forward: `pending` -> `answered` | `error` | `skipped`.
    Every transition is a conditional update on `status == 'pending'`, so a
    sub-question that already left `pending` is never written again.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_many(
        self,
        run_id: UUID,
        thread_id: UUID,
        parent_message_id: UUID,
        username: str,
        questions: List[str],
    ) -> List[SubQuestion]:
        rows = [
            SubQuestion(
                run_id=run_id,
                thread_id=thread_id,
                parent_message_id=parent_message_id,
                username=username,
                question=question,
                answer="",
                context_ids=[],
                status="pending",
            )
            for question in questions
            if question and question.strip()
        ]
        if not rows:
            return []

        self.db.add_all(rows)
        self.db.commit()
        logger.info(f"Created {len(rows)} pending sub-questions for run {run_id}")
        return rows

    def get(self, sub_question_id: UUID, username: Optional[str] = None) -> Optional[SubQuestion]:
        query = self.db.query(SubQuestion).filter(SubQuestion.sub_question_id == sub_question_id)
        if username is not None:
            query = query.filter(SubQuestion.username == username)
        return query.first()

    def list_for_run(self, run_id: UUID) -> List[SubQuestion]:
        return (
            self.db.query(SubQuestion)
            .filter(SubQuestion.run_id == run_id)
            .order_by(SubQuestion.created_at)
            .all()
        )

    def find_pending(self, run_id: UUID) -> List[SubQuestion]:
        return self._find_by_status(run_id, "pending")

    def find_answered(self, run_id: UUID) -> List[SubQuestion]:
        return self._find_by_status(run_id, "answered")

    def answered_pairs(self, run_id: UUID) -> List[Tuple[str, str]]:
        """(question, answer) pairs of every answered sub-question, oldest first."""
        return [(sq.question, sq.answer or "") for sq in self.find_answered(run_id)]

    def _find_by_status(self, run_id: UUID, status: str) -> List[SubQuestion]:
        return (
            self.db.query(SubQuestion)
            .filter(SubQuestion.run_id == run_id, SubQuestion.status == status)
            .order_by(SubQuestion.created_at)
            .all()
        )

    def mark_answered(self, sub_question_id: UUID, answer: str, context_ids: List[str]) -> bool:
        return self._transition(
            sub_question_id,
            {"status": "answered", "answer": answer, "context_ids": list(context_ids)},
        )

    def mark_error(self, sub_question_id: UUID, error_reason: str) -> bool:
        return self._transition(sub_question_id, {"status": "error", "error_reason": error_reason})

    def mark_skipped(self, sub_question_id: UUID, reason: str = "") -> bool:
        return self._transition(sub_question_id, {"status": "skipped", "error_reason": reason})

    def _transition(self, sub_question_id: UUID, values: Dict) -> bool:
        values["updated_at"] = datetime.utcnow()
        updated = (
            self.db.query(SubQuestion)
            .filter(SubQuestion.sub_question_id == sub_question_id, SubQuestion.status == "pending")
            .update(values, synchronize_session="fetch")
        )
        self.db.commit()

        if not updated:
            logger.warning(f"Sub-question {sub_question_id} is not pending, {values['status']} not applied")
        return bool(updated)

    def count_by_status(self, run_id: UUID) -> SubQuestionCounts:
        rows = (
            self.db.query(SubQuestion.status, func.count(SubQuestion.sub_question_id))
            .filter(SubQuestion.run_id == run_id)
            .group_by(SubQuestion.status)
            .all()
        )

        counts = SubQuestionCounts()
        for status, count in rows:
            if status in ("pending", "answered", "error", "skipped"):
                setattr(counts, status, count)
            counts.total += count
        return counts
