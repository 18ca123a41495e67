"""Resolves whether an orchestration resumes an existing run or starts a new one."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from answer_machine.core.errors import NoUserMessageError
from answer_machine.models import ChatThread
from answer_machine.schemas.answer_machine import RunResolution
from answer_machine.services.run_store import RunStore

logger = logging.getLogger(__name__)


class RunManager:
    """Start or resume the thread's live run."""

    def __init__(self, db: Session):
        self.db = db
        self.runs = RunStore(db)

    def resolve_run(
        self,
        thread_id: UUID,
        thread: ChatThread,
        username: str,
        continue_existing: bool,
        min_iterations: int = 1,
        max_iterations: int = 1,
    ) -> RunResolution:
        """
        Resume the thread's linked run when asked to and it still exists,
        otherwise create a new run for the latest user message.

        Raises:
            NoUserMessageError: If the thread has no message from the user
        """
        if continue_existing:
            resolution = self.runs.continuation_info(thread_id)
            if resolution:
                logger.info(f"Continuing run {resolution.run_id} at iteration {resolution.current_iteration}")
                return resolution
            logger.info(f"No existing run to continue for thread {thread_id}, starting fresh")

        run = self.runs.initialize_new_run(thread, username, min_iterations, max_iterations)
        if not run:
            raise NoUserMessageError()

        return RunResolution(run_id=run.run_id, current_iteration=1)
