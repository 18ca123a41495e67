"""Answer Machine run, sub-question and token record models."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, Text, Uuid

from answer_machine.database import Base, JSONType


class AnswerMachineRun(Base):
    """One execution of the Answer Machine for a single user message."""

    __tablename__ = "answer_machine_runs"

    run_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    thread_id = Column(Uuid(as_uuid=True), ForeignKey("chat_threads.thread_id", ondelete="CASCADE"), nullable=False)
    parent_message_id = Column(Uuid(as_uuid=True), nullable=False)
    username = Column(Text, nullable=False)

    status = Column(Text, nullable=False, default="pending")  # 'pending', 'answered', 'error'
    error_reason = Column(Text, default="")

    min_iterations = Column(Integer, default=1)
    max_iterations = Column(Integer, default=1)
    current_iteration = Column(Integer, nullable=False, default=1)

    intermediate_answers = Column(JSONType, default=list)
    final_answer = Column(Text, default="")

    # Totals, recomputed from token records
    total_prompt_tokens = Column(Integer, default=0)
    total_completion_tokens = Column(Integer, default=0)
    total_reasoning_tokens = Column(Integer, default=0)
    total_tokens = Column(Integer, default=0)
    cost_in_usd = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_answer_machine_runs_thread", "thread_id"),
        Index("idx_answer_machine_runs_status", "status"),
    )


class SubQuestion(Base):
    """Atomic question generated during decomposition."""

    __tablename__ = "answer_machine_sub_questions"

    sub_question_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid(as_uuid=True), ForeignKey("answer_machine_runs.run_id", ondelete="CASCADE"), nullable=False)
    thread_id = Column(Uuid(as_uuid=True), nullable=False)
    parent_message_id = Column(Uuid(as_uuid=True), nullable=False)
    username = Column(Text, nullable=False)

    question = Column(Text, nullable=False)
    answer = Column(Text, default="")
    context_ids = Column(JSONType, default=list)  # Opaque entity ids used to answer

    status = Column(Text, nullable=False, default="pending")  # 'pending', 'answered', 'error', 'skipped'
    error_reason = Column(Text, default="")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_sub_questions_run_status", "run_id", "status"),
    )


class TokenRecord(Base):
    """Immutable token usage entry for one LLM-consuming operation."""

    __tablename__ = "answer_machine_token_records"

    token_record_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid(as_uuid=True), ForeignKey("answer_machine_runs.run_id", ondelete="CASCADE"), nullable=False)
    thread_id = Column(Uuid(as_uuid=True), nullable=False)
    username = Column(Text, nullable=False)

    # 'question_generation', 'sub_question_answer', 'intermediate_answer', 'evaluation', 'final_answer'
    query_type = Column(Text, nullable=False)

    prompt_tokens = Column(Integer, default=0)
    completion_tokens = Column(Integer, default=0)
    reasoning_tokens = Column(Integer, default=0)
    total_tokens = Column(Integer, default=0)
    cost_in_usd = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_token_records_run_type", "run_id", "query_type"),
    )
