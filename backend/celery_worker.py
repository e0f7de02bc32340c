"""
Celery Worker for the content risk analysis queue.
Production task queue with Redis broker. Start with:

    celery -A celery_worker.celery_app worker --concurrency=1
"""

import os
import logging
from datetime import datetime, timezone
from celery import Celery
from dotenv import load_dotenv

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Redis connection
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# Create Celery app
celery_app = Celery(
    'content_risk',
    broker=REDIS_URL,
    backend=REDIS_URL,
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone
    timezone='UTC',
    enable_utc=True,

    # Task settings
    task_track_started=True,
    task_time_limit=600,  # hard stop well past the job timeout guard
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,  # One job at a time per worker

    # Reliability
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Result backend
    result_expires=86400,
)

_flask_app = None


def get_flask_app():
    """One Flask app (and so one orchestrator and rate governor) per worker process."""
    global _flask_app
    if _flask_app is None:
        # Import here to avoid circular imports
        from app import create_app
        _flask_app = create_app()
    return _flask_app


@celery_app.task(bind=True)
def process_next_job_task(self):
    """
    Process the oldest pending job.

    Returns:
        Summary dict from QueueService.process_next()
    """
    from app.services import queue_service

    get_flask_app()
    summary = queue_service.process_next_in_context()
    logger.info(f"Task {self.request.id}: {summary.get('status')} {summary.get('job_id', '')}")
    return summary


# Health check task
@celery_app.task
def health_check():
    """Simple health check task."""
    return {'status': 'healthy', 'timestamp': datetime.now(timezone.utc).isoformat()}
