"""
Job persistence.

All state transitions are conditional updates on the current status: of two
workers racing on the same row only one wins, and a job forced to failed by
the timeout guard is never moved again by a late result.
Must be called inside an application context.
"""

import logging
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import func

from ..models.database import (
    db,
    Job,
    JobStatus,
    AnalysisResult,
    UsageCounter,
    get_utc_now,
)

logger = logging.getLogger(__name__)

START_PROGRESS = 10
START_STEP = 'Starting analysis...'


class JobStore:
    """Database access for jobs, results and usage counters."""

    def create_job(
        self,
        user_id: str,
        source_ref: str,
        video_path: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Job:
        job = Job(
            job_id=str(uuid.uuid4()),
            user_id=user_id,
            source_ref=source_ref,
            video_path=video_path,
            title=title,
            description=description,
            status=JobStatus.PENDING,
            progress=0,
            current_step='Queued',
            current_step_index=0,
        )
        db.session.add(job)
        db.session.commit()
        logger.info(f"Created job {job.job_id} for user {user_id}")
        return job

    def rollback(self):
        db.session.rollback()

    def get_job(self, job_id: str) -> Optional[Job]:
        return Job.query.filter_by(job_id=job_id).first()

    def get_result(self, result_id: str) -> Optional[AnalysisResult]:
        return AnalysisResult.query.filter_by(result_id=result_id).first()

    def get_next_pending_job(self) -> Optional[Job]:
        """Oldest pending job, or None."""
        return Job.query.filter_by(status=JobStatus.PENDING).order_by(Job.created_at, Job.id).first()

    def has_pending_jobs(self) -> bool:
        return db.session.query(Job.id).filter_by(status=JobStatus.PENDING).first() is not None

    def claim_job(self, job_id: str) -> bool:
        """
        Move a pending job to processing.

        Re-reads the row first, then updates only while it is still pending.

        Returns:
            True if this caller won the job
        """
        db.session.expire_all()
        job = self.get_job(job_id)
        if job is None or job.status != JobStatus.PENDING:
            logger.info(f"Job {job_id} is no longer pending, skipping")
            return False

        claimed = Job.query.filter_by(job_id=job_id, status=JobStatus.PENDING).update(
            {
                'status': JobStatus.PROCESSING,
                'progress': START_PROGRESS,
                'current_step': START_STEP,
                'current_step_index': 0,
                'started_at': get_utc_now(),
                'error_message': None,
                'error_kind': None,
            },
            synchronize_session=False,
        )
        db.session.commit()

        if claimed != 1:
            logger.info(f"Lost race for job {job_id}")
            return False
        logger.info(f"Claimed job {job_id}")
        return True

    def update_job(self, job_id: str, **patch) -> bool:
        """
        Patch a processing job.

        No-op once the job has left processing. A progress value lower than
        the stored one is ignored.
        """
        query = Job.query.filter_by(job_id=job_id, status=JobStatus.PROCESSING)
        if 'progress' in patch:
            query = query.filter(Job.progress <= patch['progress'])
        updated = query.update(patch, synchronize_session=False)
        db.session.commit()
        return updated == 1

    def persist_result(self, payload: dict, commit: bool = True) -> str:
        """Store an analysis report and return its result_id."""
        result = AnalysisResult(
            result_id=str(uuid.uuid4()),
            job_id=payload['job_id'],
            user_id=payload['user_id'],
            source_ref=payload.get('source_ref'),
            analysis_source=payload.get('analysis_source'),
            payload=payload.get('report', {}),
        )
        db.session.add(result)
        if commit:
            db.session.commit()
        return result.result_id

    def complete_with_result(self, job_id: str, payload: dict, processing_time: Optional[float] = None) -> Optional[str]:
        """
        Persist the result and mark the job completed in one transaction.

        Returns:
            result_id, or None if the job was no longer processing
        """
        try:
            result_id = self.persist_result(payload, commit=False)
            completed = Job.query.filter_by(job_id=job_id, status=JobStatus.PROCESSING).update(
                {
                    'status': JobStatus.COMPLETED,
                    'progress': 100,
                    'current_step': 'Analysis completed',
                    'current_step_index': 5,
                    'completed_at': get_utc_now(),
                    'result_id': result_id,
                    'archived': True,
                    'processing_time_seconds': processing_time,
                },
                synchronize_session=False,
            )
        except Exception:
            db.session.rollback()
            raise
        if completed != 1:
            db.session.rollback()
            logger.warning(f"Job {job_id} left processing before completion; discarding result")
            return None
        db.session.commit()
        return result_id

    def fail_if_processing(
        self,
        job_id: str,
        message: str,
        error_kind: str = 'error',
        processing_time: Optional[float] = None,
    ) -> bool:
        """Mark a processing job failed. No-op for any other state."""
        failed = Job.query.filter_by(job_id=job_id, status=JobStatus.PROCESSING).update(
            {
                'status': JobStatus.FAILED,
                'error_message': message,
                'error_kind': error_kind,
                'completed_at': get_utc_now(),
                'processing_time_seconds': processing_time,
            },
            synchronize_session=False,
        )
        db.session.commit()
        return failed == 1

    def fail_stale_processing(self, older_than: float, message: str) -> int:
        """
        Fail processing jobs whose worker is gone.

        A job still processing more than older_than seconds after it was
        claimed outlived its timeout guard (worker crash, restart).

        Returns:
            Number of jobs failed
        """
        cutoff = get_utc_now() - timedelta(seconds=older_than)
        failed = Job.query.filter(
            Job.status == JobStatus.PROCESSING,
            Job.started_at < cutoff,
        ).update(
            {
                'status': JobStatus.FAILED,
                'error_message': message,
                'error_kind': 'timeout',
                'completed_at': get_utc_now(),
            },
            synchronize_session=False,
        )
        db.session.commit()
        if failed:
            logger.warning(f"Failed {failed} stale processing job(s) started before {cutoff.isoformat()}")
        return failed

    def increment_usage_counter(self, user_id: str) -> int:
        counter = UsageCounter.query.filter_by(user_id=user_id).first()
        if counter is None:
            counter = UsageCounter(user_id=user_id, scan_count=0)
            db.session.add(counter)
            db.session.flush()
        UsageCounter.query.filter_by(user_id=user_id).update(
            {'scan_count': UsageCounter.scan_count + 1, 'updated_at': get_utc_now()},
            synchronize_session=False,
        )
        db.session.commit()
        db.session.refresh(counter)
        return counter.scan_count

    def cancel_job(self, job_id: str) -> bool:
        cancelled = Job.query.filter_by(job_id=job_id, status=JobStatus.PENDING).update(
            {'status': JobStatus.CANCELLED, 'current_step': 'Cancelled', 'completed_at': get_utc_now()},
            synchronize_session=False,
        )
        db.session.commit()
        return cancelled == 1

    def retry_job(self, job_id: str) -> bool:
        reset = Job.query.filter_by(job_id=job_id, status=JobStatus.FAILED).update(
            {
                'status': JobStatus.PENDING,
                'progress': 0,
                'current_step': 'Queued',
                'current_step_index': 0,
                'error_message': None,
                'error_kind': None,
                'started_at': None,
                'completed_at': None,
            },
            synchronize_session=False,
        )
        db.session.commit()
        return reset == 1

    def status_counts(self) -> dict:
        rows = db.session.query(Job.status, func.count(Job.id)).group_by(Job.status).all()
        counts = {status.value: 0 for status in JobStatus}
        for status, count in rows:
            counts[status.value if isinstance(status, JobStatus) else str(status)] = count
        return counts
