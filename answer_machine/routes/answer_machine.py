"""Answer Machine routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from answer_machine.database import get_db
from answer_machine.models import AnswerMachineJob, AnswerMachineRun
from answer_machine.schemas.answer_machine import (
    RunStartRequest,
    RunStartResponse,
    RunStatsResponse,
    RunStatusResponse,
    SubQuestionSchema,
)
from answer_machine.services.run_store import RunStore
from answer_machine.services.sub_question_store import SubQuestionStore
from answer_machine.services.token_store import TokenStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/answer-machine", tags=["answer-machine"])

ACTIVE_JOB_STATUSES = ("queued", "running")


def _active_job(db: Session, thread_id: uuid.UUID):
    return (
        db.query(AnswerMachineJob)
        .filter(
            AnswerMachineJob.thread_id == thread_id,
            AnswerMachineJob.status.in_(ACTIVE_JOB_STATUSES),
        )
        .first()
    )


def _current_run(runs: RunStore, thread) -> AnswerMachineRun:
    if thread.answer_machine_id:
        run = runs.get(thread.answer_machine_id)
        if run:
            return run
    return runs.latest_for_thread(thread.thread_id)


@router.post("/threads/{thread_id}/runs", response_model=RunStartResponse)
def start_answer_machine(
    thread_id: uuid.UUID,
    data: RunStartRequest,
    db: Session = Depends(get_db),
):
    """Enqueue an Answer Machine job for the thread."""
    runs = RunStore(db)
    thread = runs.get_thread(thread_id, data.username)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")

    if _active_job(db, thread_id):
        raise HTTPException(status_code=409, detail="Answer Machine is already running for this thread")

    job = AnswerMachineJob(
        thread_id=thread_id,
        username=data.username,
        continue_existing=data.continue_existing,
        status="queued",
    )
    db.add(job)

    thread.answer_machine_status = "pending"
    thread.answer_machine_error_reason = ""
    db.commit()

    logger.info(f"Enqueued Answer Machine job {job.job_id} for thread {thread_id}")

    return RunStartResponse(
        thread_id=thread_id,
        job_id=job.job_id,
        message="Answer Machine job enqueued",
    )


@router.get("/threads/{thread_id}/status", response_model=RunStatusResponse)
def get_answer_machine_status(
    thread_id: uuid.UUID,
    username: str,
    db: Session = Depends(get_db),
):
    """Polling view of the thread's current run."""
    runs = RunStore(db)
    thread = runs.get_thread(thread_id, username)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")

    is_processing = _active_job(db, thread_id) is not None
    run = _current_run(runs, thread)
    if not run:
        return RunStatusResponse(
            thread_id=thread_id,
            status=thread.answer_machine_status,
            error_reason=thread.answer_machine_error_reason or "",
            is_processing=is_processing,
            max_iterations=thread.answer_machine_max_iterations or 1,
        )

    tokens = TokenStore(db)
    sub_questions = SubQuestionStore(db).list_for_run(run.run_id)

    return RunStatusResponse(
        thread_id=thread_id,
        run_id=run.run_id,
        status=run.status,
        error_reason=run.error_reason or "",
        is_processing=is_processing,
        current_iteration=run.current_iteration or 0,
        max_iterations=run.max_iterations or 1,
        sub_questions=[
            SubQuestionSchema(
                sub_question_id=sq.sub_question_id,
                question=sq.question,
                answer=sq.answer or "",
                status=sq.status,
                error_reason=sq.error_reason or "",
                created_at=sq.created_at,
            )
            for sq in sub_questions
        ],
        totals=tokens.aggregate(run.run_id),
        breakdown=tokens.breakdown_by_type(run.run_id),
    )


@router.get("/threads/{thread_id}/stats", response_model=RunStatsResponse)
def get_answer_machine_stats(
    thread_id: uuid.UUID,
    username: str,
    db: Session = Depends(get_db),
):
    """Statistics for the thread's current run."""
    runs = RunStore(db)
    thread = runs.get_thread(thread_id, username)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")

    run = _current_run(runs, thread)
    if not run:
        raise HTTPException(status_code=404, detail="No Answer Machine run for this thread")

    tokens = TokenStore(db)
    return RunStatsResponse(
        thread_id=thread_id,
        run_id=run.run_id,
        status=run.status,
        current_iteration=run.current_iteration or 1,
        sub_questions=SubQuestionStore(db).count_by_status(run.run_id),
        intermediate_answer_count=len(run.intermediate_answers or []),
        final_answer=run.final_answer or "",
        totals=tokens.aggregate(run.run_id),
        breakdown=tokens.breakdown_by_type(run.run_id),
    )
