"""Job model for the Answer Machine worker queue."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Text, Uuid

from answer_machine.database import Base


class AnswerMachineJob(Base):
    """Queued request to run the Answer Machine on a thread."""

    __tablename__ = "answer_machine_jobs"

    job_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    thread_id = Column(Uuid(as_uuid=True), nullable=False)
    username = Column(Text, nullable=False)
    continue_existing = Column(Boolean, nullable=False, default=False)
    status = Column(Text, nullable=False, default="queued")  # 'queued', 'running', 'done', 'failed', 'cancelled'
    retries = Column(Integer, default=0)
    last_error = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_answer_machine_jobs_status", "status"),
        Index("idx_answer_machine_jobs_thread", "thread_id"),
    )
