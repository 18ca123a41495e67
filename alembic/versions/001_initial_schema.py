"""Initial Answer Machine schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "chat_threads" in existing_tables:
        return

    op.create_table(
        "chat_threads",
        sa.Column("thread_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("title", sa.Text, server_default=""),
        sa.Column("system_prompt", sa.Text, server_default=""),
        sa.Column("answer_machine_min_iterations", sa.Integer),
        sa.Column("answer_machine_max_iterations", sa.Integer),
        sa.Column("ai_model_provider", sa.Text),
        sa.Column("ai_model_name", sa.Text),
        sa.Column("answer_machine_id", UUID(as_uuid=True)),
        sa.Column("answer_machine_status", sa.Text),
        sa.Column("answer_machine_error_reason", sa.Text, server_default=""),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_chat_threads_username", "chat_threads", ["username"])

    op.create_table(
        "chat_messages",
        sa.Column("message_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("thread_id", UUID(as_uuid=True), sa.ForeignKey("chat_threads.thread_id", ondelete="CASCADE"), nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("content", sa.Text, server_default=""),
        sa.Column("type", sa.Text, nullable=False, server_default="text"),
        sa.Column("is_ai", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_chat_messages_thread_created", "chat_messages", ["thread_id", "created_at"])

    op.create_table(
        "answer_machine_runs",
        sa.Column("run_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("thread_id", UUID(as_uuid=True), sa.ForeignKey("chat_threads.thread_id", ondelete="CASCADE"), nullable=False),
        sa.Column("parent_message_id", UUID(as_uuid=True), nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("error_reason", sa.Text, server_default=""),
        sa.Column("min_iterations", sa.Integer, server_default="1"),
        sa.Column("max_iterations", sa.Integer, server_default="1"),
        sa.Column("current_iteration", sa.Integer, nullable=False, server_default="1"),
        sa.Column("intermediate_answers", JSONB),
        sa.Column("final_answer", sa.Text, server_default=""),
        sa.Column("total_prompt_tokens", sa.Integer, server_default="0"),
        sa.Column("total_completion_tokens", sa.Integer, server_default="0"),
        sa.Column("total_reasoning_tokens", sa.Integer, server_default="0"),
        sa.Column("total_tokens", sa.Integer, server_default="0"),
        sa.Column("cost_in_usd", sa.Float, server_default="0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_answer_machine_runs_thread", "answer_machine_runs", ["thread_id"])
    op.create_index("idx_answer_machine_runs_status", "answer_machine_runs", ["status"])

    op.create_table(
        "answer_machine_sub_questions",
        sa.Column("sub_question_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("run_id", UUID(as_uuid=True), sa.ForeignKey("answer_machine_runs.run_id", ondelete="CASCADE"), nullable=False),
        sa.Column("thread_id", UUID(as_uuid=True), nullable=False),
        sa.Column("parent_message_id", UUID(as_uuid=True), nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("question", sa.Text, nullable=False),
        sa.Column("answer", sa.Text, server_default=""),
        sa.Column("context_ids", JSONB),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("error_reason", sa.Text, server_default=""),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_sub_questions_run_status", "answer_machine_sub_questions", ["run_id", "status"])

    op.create_table(
        "answer_machine_token_records",
        sa.Column("token_record_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("run_id", UUID(as_uuid=True), sa.ForeignKey("answer_machine_runs.run_id", ondelete="CASCADE"), nullable=False),
        sa.Column("thread_id", UUID(as_uuid=True), nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("query_type", sa.Text, nullable=False),
        sa.Column("prompt_tokens", sa.Integer, server_default="0"),
        sa.Column("completion_tokens", sa.Integer, server_default="0"),
        sa.Column("reasoning_tokens", sa.Integer, server_default="0"),
        sa.Column("total_tokens", sa.Integer, server_default="0"),
        sa.Column("cost_in_usd", sa.Float, server_default="0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_token_records_run_type", "answer_machine_token_records", ["run_id", "query_type"])

    # Context sources
    op.create_table(
        "tasks",
        sa.Column("task_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("title", sa.Text, server_default=""),
        sa.Column("description", sa.Text, server_default=""),
        sa.Column("status", sa.Text, server_default=""),
        sa.Column("priority", sa.Text, server_default=""),
        sa.Column("due_date", sa.DateTime),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_tasks_username", "tasks", ["username"])

    op.create_table(
        "notes",
        sa.Column("note_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("title", sa.Text, server_default=""),
        sa.Column("content", sa.Text, server_default=""),
        sa.Column("tags", JSONB),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_notes_username", "notes", ["username"])

    op.create_table(
        "life_events",
        sa.Column("life_event_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("title", sa.Text, server_default=""),
        sa.Column("description", sa.Text, server_default=""),
        sa.Column("event_date", sa.DateTime),
        sa.Column("category", sa.Text, server_default=""),
        sa.Column("tags", JSONB),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_life_events_username", "life_events", ["username"])

    op.create_table(
        "info_vault_items",
        sa.Column("info_vault_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("title", sa.Text, server_default=""),
        sa.Column("name", sa.Text, server_default=""),
        sa.Column("content", sa.Text, server_default=""),
        sa.Column("category", sa.Text, server_default=""),
        sa.Column("tags", JSONB),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_info_vault_items_username", "info_vault_items", ["username"])

    op.create_table(
        "global_search_items",
        sa.Column("search_item_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column("entity_type", sa.Text, nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("title", sa.Text, server_default=""),
        sa.Column("content", sa.Text, server_default=""),
        sa.Column("tags", JSONB),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_global_search_username", "global_search_items", ["username"])
    op.create_index("idx_global_search_entity", "global_search_items", ["entity_id"])

    # Create answer_machine_jobs table last; startup checks for it
    op.create_table(
        "answer_machine_jobs",
        sa.Column("job_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("thread_id", UUID(as_uuid=True), nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("continue_existing", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", sa.Text, nullable=False, server_default="queued"),
        sa.Column("retries", sa.Integer, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_answer_machine_jobs_status", "answer_machine_jobs", ["status"])
    op.create_index("idx_answer_machine_jobs_thread", "answer_machine_jobs", ["thread_id"])


def downgrade() -> None:
    op.drop_table("answer_machine_jobs")
    op.drop_table("global_search_items")
    op.drop_table("info_vault_items")
    op.drop_table("life_events")
    op.drop_table("notes")
    op.drop_table("tasks")
    op.drop_table("answer_machine_token_records")
    op.drop_table("answer_machine_sub_questions")
    op.drop_table("answer_machine_runs")
    op.drop_table("chat_messages")
    op.drop_table("chat_threads")
