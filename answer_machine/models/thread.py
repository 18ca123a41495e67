"""Chat thread and message models."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from answer_machine.database import Base


class ChatThread(Base):
    """Conversation thread owning the Answer Machine settings and live run pointer."""

    __tablename__ = "chat_threads"

    thread_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(Text, nullable=False, index=True)
    title = Column(Text, default="")
    system_prompt = Column(Text, default="")

    # Answer Machine settings (null means 1)
    answer_machine_min_iterations = Column(Integer)
    answer_machine_max_iterations = Column(Integer)

    # Optional per-thread model override
    ai_model_provider = Column(Text)
    ai_model_name = Column(Text)

    # Live run pointer and last outcome
    answer_machine_id = Column(Uuid(as_uuid=True))
    answer_machine_status = Column(Text)  # 'pending', 'answered', 'error'
    answer_machine_error_reason = Column(Text, default="")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    messages = relationship("ChatMessage", back_populates="thread", cascade="all, delete-orphan")


class ChatMessage(Base):
    """Single message in a thread, authored by the user or the assistant."""

    __tablename__ = "chat_messages"

    message_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    thread_id = Column(Uuid(as_uuid=True), ForeignKey("chat_threads.thread_id", ondelete="CASCADE"), nullable=False)
    username = Column(Text, nullable=False)
    content = Column(Text, default="")
    type = Column(Text, nullable=False, default="text")
    is_ai = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    thread = relationship("ChatThread", back_populates="messages")

    __table_args__ = (
        Index("idx_chat_messages_thread_created", "thread_id", "created_at"),
    )
