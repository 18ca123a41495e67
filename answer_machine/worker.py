"""Background worker that runs queued Answer Machine jobs."""

import logging
import time
from typing import Optional

import sqlalchemy
from sqlalchemy import exists
from sqlalchemy.orm import Session, aliased

from answer_machine.config import settings
from answer_machine.core.orchestrator import AnswerMachineOrchestrator
from answer_machine.database import SessionLocal
from answer_machine.models.job import AnswerMachineJob
from answer_machine.services.llm_client import LLMClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


class Worker:
    """Polls the job table and drives the orchestrator, one job at a time."""

    def __init__(self, llm_client: Optional[LLMClient] = None, session_factory=SessionLocal):
        """Initialize worker."""
        self.llm_client = llm_client or LLMClient()
        self.session_factory = session_factory
        self.poll_interval = settings.WORKER_POLL_INTERVAL
        self.max_retries = settings.MAX_JOB_RETRIES
        self.stop_event = None

    def wait_for_database(self, max_wait: int = 60):
        """Block until the job table exists (migrations may still be running)."""
        waited = 0
        while waited < max_wait:
            try:
                db = self.session_factory()
                db.execute(sqlalchemy.text("SELECT 1 FROM answer_machine_jobs LIMIT 1"))
                db.close()
                logger.info("Database is ready, starting worker loop")
                return
            except Exception as e:
                logger.info(f"Waiting for database ({waited}s): {e}")
                time.sleep(2)
                waited += 2

        logger.error(f"Database not ready after {max_wait} seconds, starting anyway...")

    def run(self, stop_event=None):
        """Main worker loop.

        Args:
            stop_event: Optional threading.Event to signal worker to stop
        """
        self.stop_event = stop_event
        logger.info("Worker started - waiting for database to be ready...")
        self.wait_for_database()
        self.requeue_interrupted_jobs()

        while True:
            if stop_event and stop_event.is_set():
                logger.info("Worker stop signal received")
                break

            try:
                if not self.run_once():
                    time.sleep(self.poll_interval)
            except KeyboardInterrupt:
                logger.info("Worker shutting down")
                break
            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                time.sleep(self.poll_interval)

    def requeue_interrupted_jobs(self) -> int:
        """
        Re-queue jobs left `running` by a worker that died or was stopped
        mid-run. They resume their run through `continue_existing`.

        Assumes a single worker per database; a second live worker's jobs
        would be re-queued too.
        """
        db = self.session_factory()
        try:
            jobs = db.query(AnswerMachineJob).filter(AnswerMachineJob.status == "running").all()
            for job in jobs:
                job.status = "queued"
                job.continue_existing = True
                logger.warning(f"Re-queued interrupted job {job.job_id} (thread: {job.thread_id})")
            db.commit()
            return len(jobs)
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to re-queue interrupted jobs: {e}", exc_info=True)
            return 0
        finally:
            db.close()

    def run_once(self) -> bool:
        """Process the next job if there is one. Returns False when the queue is empty."""
        db = self.session_factory()
        job = self.get_next_job(db)
        if not job:
            db.close()
            return False

        self.process_job(job, db)
        return True

    def get_next_job(self, db: Session) -> Optional[AnswerMachineJob]:
        """Oldest queued job whose thread has nothing running."""
        running = aliased(AnswerMachineJob)
        thread_busy = exists().where(
            running.thread_id == AnswerMachineJob.thread_id,
            running.status == "running",
        )
        return (
            db.query(AnswerMachineJob)
            .filter(AnswerMachineJob.status == "queued", ~thread_busy)
            .order_by(AnswerMachineJob.created_at)
            .with_for_update(skip_locked=True)
            .first()
        )

    def process_job(self, job: AnswerMachineJob, db: Session):
        """Process a single job."""
        logger.info(f"Processing job {job.job_id} (thread: {job.thread_id})")

        job.status = "running"
        db.commit()

        try:
            orchestrator = AnswerMachineOrchestrator(db, self.llm_client)
            result = orchestrator.execute(
                job.thread_id,
                job.username,
                continue_existing=job.continue_existing,
                stop_event=self.stop_event,
            )

            if result.cancelled:
                # Resume the same run on the next pickup
                job.status = "queued"
                job.continue_existing = True
                logger.info(f"Job {job.job_id} cancelled between iterations, re-queued")
            elif result.success:
                job.status = "done"
                logger.info(f"Job {job.job_id} completed successfully")
            else:
                job.status = "failed"
                job.last_error = result.error_reason
                logger.warning(f"Job {job.job_id} finished with error: {result.error_reason}")

            db.commit()

        except Exception as e:
            db.rollback()
            logger.error(f"Job {job.job_id} failed: {e}", exc_info=True)

            job.retries = (job.retries or 0) + 1
            job.last_error = str(e)

            if job.retries >= self.max_retries:
                job.status = "failed"
                logger.error(f"Job {job.job_id} failed after {job.retries} retries")
            else:
                job.status = "queued"
                job.continue_existing = True
                logger.warning(f"Job {job.job_id} retry {job.retries}/{self.max_retries}")

            db.commit()

        finally:
            db.close()


def worker_loop(stop_event=None):
    """Run worker loop (for use as background thread).

    Args:
        stop_event: Optional threading.Event to signal worker to stop
    """
    worker = Worker()
    worker.run(stop_event=stop_event)


def main():
    """Entry point for standalone worker."""
    worker = Worker()
    worker.run()


if __name__ == "__main__":
    main()
