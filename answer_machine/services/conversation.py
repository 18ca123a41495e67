"""Conversation history provider for a chat thread."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from answer_machine.models import ChatMessage

logger = logging.getLogger(__name__)


class ConversationService:
    """Reads and appends chat messages of a thread."""

    def __init__(self, db: Session):
        self.db = db

    def get_messages(self, thread_id: UUID, username: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """
        Messages of the thread in chronological order.

        With `limit`, only the most recent `limit` messages are returned (still
        oldest first).
        """
        query = self.db.query(ChatMessage).filter(
            ChatMessage.thread_id == thread_id,
            ChatMessage.username == username,
        )

        if limit:
            recent = query.order_by(ChatMessage.created_at.desc()).limit(limit).all()
            return list(reversed(recent))

        return query.order_by(ChatMessage.created_at.asc()).all()

    def append_ai_message(self, thread_id: UUID, username: str, content: str) -> ChatMessage:
        message = ChatMessage(
            thread_id=thread_id,
            username=username,
            content=content,
            type="text",
            is_ai=True,
        )
        self.db.add(message)
        self.db.commit()
        logger.info(f"Appended AI message {message.message_id} to thread {thread_id}")
        return message


def format_transcript(messages: List[ChatMessage], separator: str = "\n") -> str:
    """Render messages as `User:`/`Assistant:` lines."""
    lines = []
    for message in messages:
        role = "Assistant" if message.is_ai else "User"
        lines.append(f"{role}: {message.content or ''}")
    return separator.join(lines)

