"""FastAPI application entry point."""

import logging
import os
import threading

import sqlalchemy
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from answer_machine.routes import answer_machine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Answer Machine",
    description="Iterative question decomposition over a personal knowledge base",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(answer_machine.router)

# Worker thread management
worker_thread = None
worker_stop_event = threading.Event()


def run_worker_loop():
    """Run the worker loop in a background thread."""
    from answer_machine.worker import worker_loop
    logger.info("Starting background worker thread")
    worker_loop(worker_stop_event)


def run_migrations():
    """Apply alembic migrations unless the schema is already in place."""
    from answer_machine.database import engine

    try:
        if sqlalchemy.inspect(engine).has_table("answer_machine_jobs"):
            logger.info("Database tables already exist, skipping migrations")
            return

        logger.info("Running database migrations...")
        from alembic import command
        from alembic.config import Config

        alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
        command.upgrade(alembic_cfg, "head")
        logger.info("Database migrations completed successfully")
    except Exception as e:
        logger.error(f"Startup database check/migration error: {e}")
        logger.info("Continuing startup - assuming database is ready")


@app.on_event("startup")
async def startup_event():
    """Run migrations and start the background worker."""
    global worker_thread
    logger.info("Starting application...")

    run_migrations()

    worker_thread = threading.Thread(target=run_worker_loop, daemon=True)
    worker_thread.start()
    logger.info("Background worker thread started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the background worker when the app shuts down."""
    logger.info("Shutting down application...")

    # The worker finishes its current iteration, then re-queues the job
    worker_stop_event.set()

    if worker_thread and worker_thread.is_alive():
        worker_thread.join(timeout=10)
        logger.info("Background worker thread stopped")


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}

