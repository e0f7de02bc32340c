"""
Queue Service - Supports both Threading (simple) and Celery (production) modes.
Set QUEUE_MODE environment variable to 'threading' or 'celery'.

process_next() is the single worker entry point: it claims the oldest pending
job, runs it through the analysis pipeline under a wall-clock timeout, stores
the result and schedules the next job.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import Callable, Optional

from analysis.errors import JobFatalError, ProviderError
from analysis.pipeline import STAGE_CONTEXT, STAGE_RISK

from .content_source import ContentSource, InlineContentSource
from .job_store import JobStore
from .notifier import CompletionNotifier

logger = logging.getLogger(__name__)

DEFAULT_JOB_TIMEOUT_SECONDS = 300
DEFAULT_CHAIN_DELAY_SECONDS = 2
# Extra time past the job timeout before a processing job counts as abandoned
STALE_GRACE_SECONDS = 30

# (step index, progress, label)
STEP_PREPARING = (1, 20, 'Preparing video for analysis...')
STEP_EXTRACTING = (2, 40, 'Extracting video content...')
STEP_AI_ANALYSIS = (3, 60, 'Performing AI analysis...')
STEP_RISK_SCORING = (4, 80, 'Analyzing risks and policies...')
STEP_SAVING = (5, 90, 'Saving results...')

# Context and category scoring share step 3; risk and suggestions share step 4
_STAGE_STEPS = {
    STAGE_CONTEXT: STEP_AI_ANALYSIS,
    STAGE_RISK: STEP_RISK_SCORING,
}

IDLE_MESSAGE = 'No pending jobs in queue'
SKIPPED_MESSAGE = 'Job already being processed or completed'
BUSY_MESSAGE = 'Worker is already processing a job'


def timeout_message(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"Scan timed out after {minutes} minute{'s' if minutes != 1 else ''}"
    return f"Scan timed out after {seconds:g} seconds"


class ThreadingScheduler:
    """Runs process_next on a timer thread inside this process."""

    def __init__(self, service: 'QueueService'):
        self.service = service

    def schedule(self, delay: float):
        timer = threading.Timer(delay, self.service.process_next_in_context)
        timer.daemon = True
        timer.start()
        logger.info(f"Scheduled next job in {delay}s (thread timer)")
        return timer


class CeleryScheduler:
    """Hands process_next to a Celery worker."""

    def schedule(self, delay: float):
        from celery_worker import process_next_job_task

        result = process_next_job_task.apply_async(countdown=delay)
        logger.info(f"Scheduled next job in {delay}s (celery task {result.id})")
        return result


class QueueService:
    """Manages the content analysis queue."""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, '_initialized') and self._initialized:
            return

        self.app = None
        self.queue_mode = 'threading'
        self.job_timeout = DEFAULT_JOB_TIMEOUT_SECONDS
        self.chain_delay = DEFAULT_CHAIN_DELAY_SECONDS

        self.store = JobStore()
        self.content_source: ContentSource = InlineContentSource()
        self.notifier = CompletionNotifier()
        self.scheduler = ThreadingScheduler(self)
        self._pipeline = None
        self._pipeline_factory: Optional[Callable] = None

        self._run_lock = threading.Lock()
        self._is_processing = False
        self._current_job_id: Optional[str] = None

        self._initialized = True

    def init_app(self, app):
        """Initialize with Flask app."""
        self.app = app
        self.queue_mode = app.config.get('QUEUE_MODE', 'threading')
        self.job_timeout = float(app.config.get('JOB_TIMEOUT_SECONDS', DEFAULT_JOB_TIMEOUT_SECONDS))
        self.chain_delay = float(app.config.get('CHAIN_DELAY_SECONDS', DEFAULT_CHAIN_DELAY_SECONDS))
        self.notifier = CompletionNotifier(app.config.get('NOTIFY_COMPLETION_URL'))
        self.content_source = InlineContentSource()
        self.scheduler = CeleryScheduler() if self.queue_mode == 'celery' else ThreadingScheduler(self)
        self._pipeline = None
        self._pipeline_factory = None
        logger.info(f"QueueService initialized in {self.queue_mode} mode")

        # Pick up jobs left behind by a previous run
        if self.queue_mode == 'threading' and app.config.get('QUEUE_AUTOSTART', True):
            with app.app_context():
                self.fail_stale_jobs()
                if self.store.has_pending_jobs():
                    self.scheduler.schedule(0)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    @property
    def pipeline(self):
        """Analysis pipeline, built once per process on first use."""
        if self._pipeline is None:
            if self._pipeline_factory is not None:
                self._pipeline = self._pipeline_factory()
            else:
                from analysis.orchestrator import build_orchestrator
                from analysis.pipeline import AnalysisPipeline

                self._pipeline = AnalysisPipeline(build_orchestrator(self.app.config))
        return self._pipeline

    @pipeline.setter
    def pipeline(self, value):
        self._pipeline = value

    def set_pipeline_factory(self, factory: Callable):
        self._pipeline_factory = factory
        self._pipeline = None

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def submit_job(self, user_id, source_ref, video_path=None, title=None, description=None):
        job = self.store.create_job(
            user_id=user_id,
            source_ref=source_ref,
            video_path=video_path,
            title=title,
            description=description,
        )
        if not self._is_processing:
            self.scheduler.schedule(0)
        return job

    def get_job(self, job_id: str):
        return self.store.get_job(job_id)

    def get_progress(self, job_id: str) -> Optional[dict]:
        job = self.store.get_job(job_id)
        return job.progress_snapshot() if job else None

    def get_result(self, result_id: str):
        return self.store.get_result(result_id)

    def cancel_job(self, job_id: str) -> bool:
        cancelled = self.store.cancel_job(job_id)
        if cancelled:
            logger.info(f"Cancelled job {job_id}")
        return cancelled

    def retry_job(self, job_id: str) -> bool:
        reset = self.store.retry_job(job_id)
        if reset:
            logger.info(f"Job {job_id} reset to pending")
            if not self._is_processing:
                self.scheduler.schedule(0)
        return reset

    def get_queue_status(self) -> dict:
        counts = self.store.status_counts()
        counts['total'] = sum(counts.values())
        counts.update({
            'is_processing': self._is_processing,
            'current_job_id': self._current_job_id,
            'queue_mode': self.queue_mode,
        })
        return counts

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def process_next_in_context(self) -> dict:
        """process_next() wrapped in an application context (timer threads, Celery)."""
        with self.app.app_context():
            try:
                return self.process_next()
            except Exception as e:
                logger.error(f"Error in scheduled processing: {e}", exc_info=True)
                return {'status': 'error', 'message': str(e)}

    def process_next(self) -> dict:
        """
        Process the oldest pending job.

        Returns:
            Summary dict with 'status' idle / skipped / completed / failed
        """
        if not self._run_lock.acquire(blocking=False):
            return {'status': 'skipped', 'message': BUSY_MESSAGE}

        try:
            self.fail_stale_jobs()
            job = self.store.get_next_pending_job()
            if job is None:
                return {'status': 'idle', 'message': IDLE_MESSAGE}

            job_id = job.job_id
            if not self.store.claim_job(job_id):
                return {'status': 'skipped', 'message': SKIPPED_MESSAGE}

            self._is_processing = True
            self._current_job_id = job_id
            try:
                summary = self._run_job(job_id)
            finally:
                self._is_processing = False
                self._current_job_id = None
        finally:
            self._run_lock.release()

        self._chain_next()
        return summary

    def fail_stale_jobs(self) -> int:
        """Fail jobs stuck in processing well past the job timeout."""
        return self.store.fail_stale_processing(
            self.job_timeout + STALE_GRACE_SECONDS, timeout_message(self.job_timeout)
        )

    def _run_job(self, job_id: str) -> dict:
        job = self.store.get_job(job_id)
        user_id = job.user_id
        source_ref = job.source_ref
        video_path = job.video_path
        metadata = job.metadata_dict

        logger.info(f"Processing job {job_id}")
        start_time = time.monotonic()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"job-{job_id[:8]}")

        try:
            future = executor.submit(self._analyze, job_id, source_ref, video_path, metadata)
            acquired, report = future.result(timeout=self.job_timeout)
        except FuturesTimeout:
            message = timeout_message(self.job_timeout)
            logger.error(f"Job {job_id} timed out after {self.job_timeout}s")
            self.store.fail_if_processing(
                job_id, message, error_kind='timeout', processing_time=time.monotonic() - start_time
            )
            return {'status': 'failed', 'job_id': job_id, 'error': message}
        except (JobFatalError, ProviderError) as e:
            logger.error(f"Job {job_id} failed: {e}")
            return self._fail(job_id, str(e), start_time)
        except Exception as e:
            logger.error(f"Error processing job {job_id}: {e}", exc_info=True)
            return self._fail(job_id, str(e) or e.__class__.__name__, start_time)
        finally:
            # A timed-out analysis keeps running; its result is dropped
            executor.shutdown(wait=False)

        payload = {
            'job_id': job_id,
            'user_id': user_id,
            'source_ref': source_ref,
            'analysis_source': acquired.analysis_source,
            'report': report,
        }
        try:
            self._set_step(job_id, STEP_SAVING)
            result_id = self.store.complete_with_result(
                job_id, payload, processing_time=time.monotonic() - start_time
            )
        except Exception as e:
            logger.error(f"Failed to save result for job {job_id}: {e}", exc_info=True)
            self.store.rollback()
            return self._fail(job_id, f"Failed to save results: {e}", start_time)
        if result_id is None:
            job = self.store.get_job(job_id)
            error = job.error_message if job and job.error_message else 'Job left processing before completion'
            return {'status': 'failed', 'job_id': job_id, 'error': error}

        logger.info(f"Completed job {job_id} in {time.monotonic() - start_time:.1f}s, result {result_id}")

        try:
            self.store.increment_usage_counter(user_id)
        except Exception as e:
            logger.warning(f"Failed to increment usage counter for {user_id}: {e}")

        self.notifier.notify(job_id, user_id, result_id)
        return {'status': 'completed', 'job_id': job_id, 'result_id': result_id}

    def _analyze(self, job_id, source_ref, video_path, metadata):
        """Steps 1-4; runs on the executor thread."""
        with self.app.app_context():
            self._set_step(job_id, STEP_PREPARING)

            self._set_step(job_id, STEP_EXTRACTING)
            acquired = self.content_source.acquire(source_ref, video_path=video_path, metadata=metadata)
            logger.info(f"Acquired {len(acquired.text)} chars for job {job_id} ({acquired.analysis_source})")

            def on_stage(stage):
                step = _STAGE_STEPS.get(stage)
                if step:
                    self._set_step(job_id, step)

            report = self.pipeline.analyze(
                acquired.text,
                video_path=acquired.video_path,
                metadata=acquired.metadata,
                on_stage=on_stage,
            )
            report['analysis_source'] = acquired.analysis_source
            return acquired, report

    def _set_step(self, job_id: str, step: tuple):
        index, progress, label = step
        updated = self.store.update_job(
            job_id,
            progress=progress,
            current_step=label,
            current_step_index=index,
        )
        if updated:
            logger.info(f"Job {job_id}: {progress}% {label}")
        else:
            logger.debug(f"Job {job_id} no longer processing, progress '{label}' dropped")

    def _fail(self, job_id: str, message: str, start_time: float) -> dict:
        self.store.fail_if_processing(
            job_id, message, error_kind='error', processing_time=time.monotonic() - start_time
        )
        return {'status': 'failed', 'job_id': job_id, 'error': message}

    def _chain_next(self):
        try:
            if self.store.has_pending_jobs():
                self.scheduler.schedule(self.chain_delay)
        except Exception as e:
            logger.error(f"Failed to schedule next job: {e}", exc_info=True)


queue_service = QueueService()
