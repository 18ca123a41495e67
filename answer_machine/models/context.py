"""Personal data used as retrieval context: tasks, notes, life events, info vault."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text, Uuid

from answer_machine.database import Base, JSONType


class Task(Base):
    """User task."""

    __tablename__ = "tasks"

    task_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(Text, nullable=False, index=True)
    title = Column(Text, default="")
    description = Column(Text, default="")
    status = Column(Text, default="")
    priority = Column(Text, default="")
    due_date = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Note(Base):
    """User note."""

    __tablename__ = "notes"

    note_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(Text, nullable=False, index=True)
    title = Column(Text, default="")
    content = Column(Text, default="")
    tags = Column(JSONType, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LifeEvent(Base):
    """Dated life event."""

    __tablename__ = "life_events"

    life_event_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(Text, nullable=False, index=True)
    title = Column(Text, default="")
    description = Column(Text, default="")
    event_date = Column(DateTime)
    category = Column(Text, default="")
    tags = Column(JSONType, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class InfoVaultItem(Base):
    """Info vault entry (contacts, accounts, reference facts)."""

    __tablename__ = "info_vault_items"

    info_vault_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(Text, nullable=False, index=True)
    title = Column(Text, default="")
    name = Column(Text, default="")
    content = Column(Text, default="")
    category = Column(Text, default="")
    tags = Column(JSONType, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GlobalSearchItem(Base):
    """Denormalised search index row pointing at one context entity."""

    __tablename__ = "global_search_items"

    search_item_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_id = Column(Uuid(as_uuid=True), nullable=False)
    entity_type = Column(Text, nullable=False)  # 'task', 'note', 'life_event', 'info_vault'
    username = Column(Text, nullable=False)
    title = Column(Text, default="")
    content = Column(Text, default="")
    tags = Column(JSONType, default=list)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_global_search_username", "username"),
        Index("idx_global_search_entity", "entity_id"),
    )
