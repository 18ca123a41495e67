"""Append-only token records and their aggregation."""

import logging
from typing import Dict
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from answer_machine.models import AnswerMachineRun, TokenRecord
from answer_machine.schemas.answer_machine import TokenTotals, TokenTypeStats, TokenUsage

logger = logging.getLogger(__name__)

QUERY_TYPES = (
    "question_generation",
    "sub_question_answer",
    "intermediate_answer",
    "evaluation",
    "final_answer",
)


class TokenStore:
    """Records token usage per LLM-consuming operation and aggregates it per run."""

    def __init__(self, db: Session):
        self.db = db

    def track(
        self,
        run_id: UUID,
        thread_id: UUID,
        username: str,
        tokens: TokenUsage,
        query_type: str,
    ) -> None:
        """Append a token record. Tracking failures are logged, never raised."""
        if query_type not in QUERY_TYPES:
            logger.warning(f"Unknown token query type {query_type!r}, not tracked")
            return

        try:
            record = TokenRecord(
                run_id=run_id,
                thread_id=thread_id,
                username=username,
                query_type=query_type,
                prompt_tokens=tokens.prompt_tokens,
                completion_tokens=tokens.completion_tokens,
                reasoning_tokens=tokens.reasoning_tokens,
                total_tokens=tokens.total_tokens,
                cost_in_usd=tokens.cost_in_usd,
            )
            self.db.add(record)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error tracking tokens for run {run_id}: {e}", exc_info=True)

    def aggregate(self, run_id: UUID) -> TokenTotals:
        """Sum every token record of a run."""
        row = (
            self.db.query(
                func.coalesce(func.sum(TokenRecord.prompt_tokens), 0),
                func.coalesce(func.sum(TokenRecord.completion_tokens), 0),
                func.coalesce(func.sum(TokenRecord.reasoning_tokens), 0),
                func.coalesce(func.sum(TokenRecord.total_tokens), 0),
                func.coalesce(func.sum(TokenRecord.cost_in_usd), 0.0),
            )
            .filter(TokenRecord.run_id == run_id)
            .one()
        )

        return TokenTotals(
            total_prompt_tokens=int(row[0]),
            total_completion_tokens=int(row[1]),
            total_reasoning_tokens=int(row[2]),
            total_tokens=int(row[3]),
            cost_in_usd=float(row[4]),
        )

    def breakdown_by_type(self, run_id: UUID) -> Dict[str, TokenTypeStats]:
        """Group token records of a run by query type."""
        rows = (
            self.db.query(
                TokenRecord.query_type,
                func.count(TokenRecord.token_record_id),
                func.coalesce(func.sum(TokenRecord.total_tokens), 0),
                func.coalesce(func.sum(TokenRecord.cost_in_usd), 0.0),
                func.coalesce(func.max(TokenRecord.total_tokens), 0),
            )
            .filter(TokenRecord.run_id == run_id)
            .group_by(TokenRecord.query_type)
            .all()
        )

        breakdown = {}
        for query_type, count, total_tokens, total_cost, max_tokens in rows:
            breakdown[query_type] = TokenTypeStats(
                count=count,
                total_tokens=int(total_tokens),
                total_cost=float(total_cost),
                avg_tokens=round(total_tokens / count) if count else 0,
                max_tokens=int(max_tokens),
            )
        return breakdown

    def refresh_run_totals(self, run_id: UUID) -> TokenTotals:
        """Recompute the run's token totals from its records."""
        totals = self.aggregate(run_id)
        run = self.db.query(AnswerMachineRun).filter(AnswerMachineRun.run_id == run_id).first()
        if run:
            run.total_prompt_tokens = totals.total_prompt_tokens
            run.total_completion_tokens = totals.total_completion_tokens
            run.total_reasoning_tokens = totals.total_reasoning_tokens
            run.total_tokens = totals.total_tokens
            run.cost_in_usd = totals.cost_in_usd
            self.db.commit()
        return totals
