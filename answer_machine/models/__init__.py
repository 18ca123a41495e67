"""SQLAlchemy ORM models."""

from answer_machine.models.thread import ChatThread, ChatMessage
from answer_machine.models.answer_machine import AnswerMachineRun, SubQuestion, TokenRecord
from answer_machine.models.context import Task, Note, LifeEvent, InfoVaultItem, GlobalSearchItem
from answer_machine.models.job import AnswerMachineJob

__all__ = [
    "ChatThread",
    "ChatMessage",
    "AnswerMachineRun",
    "SubQuestion",
    "TokenRecord",
    "Task",
    "Note",
    "LifeEvent",
    "InfoVaultItem",
    "GlobalSearchItem",
    "AnswerMachineJob",
]
