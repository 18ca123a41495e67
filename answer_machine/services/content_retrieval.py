"""Renders context items (tasks, notes, life events, info vault) into prompt text."""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from answer_machine.models import InfoVaultItem, LifeEvent, Note, Task

logger = logging.getLogger(__name__)

GROUP_SEPARATOR = "\n\n---\n\n"


def _date(value: Optional[datetime], default: Optional[str] = "Unknown") -> Optional[str]:
    return value.date().isoformat() if value else default


def _tags(tags) -> Optional[str]:
    return f"Tags: {', '.join(tags)}" if tags else None


def format_task(task: Task) -> str:
    lines = [
        f"Task: {task.title or 'Untitled'}",
        f"Description: {task.description}" if task.description else None,
        f"Status: {task.status or 'Unknown'}",
        f"Priority: {task.priority}" if task.priority else None,
        f"Due Date: {_date(task.due_date, None)}" if task.due_date else None,
        f"Created: {_date(task.created_at)}",
        f"Updated: {_date(task.updated_at)}",
    ]
    return "\n".join(line for line in lines if line)


def format_note(note: Note) -> str:
    lines = [
        f"Note: {note.title or 'Untitled'}",
        f"Content: {note.content}" if note.content else None,
        _tags(note.tags),
        f"Created: {_date(note.created_at)}",
        f"Updated: {_date(note.updated_at)}",
    ]
    return "\n".join(line for line in lines if line)


def format_life_event(event: LifeEvent) -> str:
    lines = [
        f"Life Event: {event.title or 'Untitled'}",
        f"Description: {event.description}" if event.description else None,
        f"Date: {_date(event.event_date, None)}" if event.event_date else None,
        f"Category: {event.category}" if event.category else None,
        _tags(event.tags),
        f"Created: {_date(event.created_at)}",
        f"Updated: {_date(event.updated_at)}",
    ]
    return "\n".join(line for line in lines if line)


def format_info_vault(item: InfoVaultItem) -> str:
    lines = [
        f"Info Item: {item.title or item.name or 'Untitled'}",
        f"Content: {item.content}" if item.content else None,
        f"Category: {item.category}" if item.category else None,
        _tags(item.tags),
        f"Created: {_date(item.created_at)}",
        f"Updated: {_date(item.updated_at)}",
    ]
    return "\n".join(line for line in lines if line)


# (heading, model, primary key column, formatter)
SOURCES = (
    ("TASKS", Task, Task.task_id, format_task),
    ("NOTES", Note, Note.note_id, format_note),
    ("LIFE EVENTS", LifeEvent, LifeEvent.life_event_id, format_life_event),
    ("INFO VAULT", InfoVaultItem, InfoVaultItem.info_vault_id, format_info_vault),
)


def _parse_ids(context_ids: List[str]) -> List[uuid.UUID]:
    parsed = []
    for value in context_ids:
        try:
            parsed.append(value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)))
        except ValueError:
            logger.warning(f"Ignoring malformed context id {value!r}")
    return parsed


class ContentRetrieval:
    """Loads context items owned by a user and renders them grouped by source."""

    def __init__(self, db: Session):
        self.db = db

    def _source_block(self, heading, model, pk_column, formatter, ids, username) -> str:
        try:
            rows = self.db.query(model).filter(pk_column.in_(ids), model.username == username).all()
            if not rows:
                return ""
            return f"{heading}:\n" + "\n\n".join(formatter(row) for row in rows)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error getting {heading.lower()} content: {e}", exc_info=True)
            return ""

    def get_context_content(self, context_ids: List[str], username: str) -> str:
        ids = _parse_ids(context_ids)
        if not ids:
            return ""

        blocks = [
            self._source_block(heading, model, pk_column, formatter, ids, username)
            for heading, model, pk_column, formatter in SOURCES
        ]
        return GROUP_SEPARATOR.join(block for block in blocks if block.strip())
