"""
Database models for the analysis queue.
Uses SQLite by default; set DATABASE_URL for PostgreSQL.
Timestamps are stored in UTC.
"""

from datetime import datetime, timezone
from enum import Enum
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def get_utc_now():
    """Get current datetime in UTC."""
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Job(db.Model):
    """A single content analysis job."""
    __tablename__ = 'jobs'

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.String(36), unique=True, nullable=False)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    # Content
    source_ref = db.Column(db.Text, nullable=False)
    video_path = db.Column(db.String(500), nullable=True)
    title = db.Column(db.String(500), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Status
    status = db.Column(db.Enum(JobStatus), default=JobStatus.PENDING, index=True)
    progress = db.Column(db.Integer, default=0)
    current_step = db.Column(db.String(255), nullable=True)
    current_step_index = db.Column(db.Integer, default=0)
    total_steps = db.Column(db.Integer, default=5)
    created_at = db.Column(db.DateTime, default=get_utc_now, index=True)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    # Results
    result_id = db.Column(db.String(36), nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    error_kind = db.Column(db.String(20), nullable=True)
    archived = db.Column(db.Boolean, default=False)
    processing_time_seconds = db.Column(db.Float, nullable=True)

    @property
    def metadata_dict(self) -> dict:
        return {k: v for k, v in (('title', self.title), ('description', self.description)) if v}

    def progress_snapshot(self) -> dict:
        return {
            'status': self.status.value if self.status else None,
            'progress': self.progress,
            'current_step': self.current_step,
            'current_step_index': self.current_step_index,
            'total_steps': self.total_steps,
        }

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'job_id': self.job_id,
            'user_id': self.user_id,
            'source_ref': self.source_ref,
            'video_path': self.video_path,
            'title': self.title,
            'status': self.status.value if self.status else None,
            'progress': self.progress,
            'current_step': self.current_step,
            'current_step_index': self.current_step_index,
            'total_steps': self.total_steps,
            'created_at': _iso(self.created_at),
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
            'result_id': self.result_id,
            'error_message': self.error_message,
            'error_kind': self.error_kind,
            'archived': self.archived,
            'processing_time_seconds': self.processing_time_seconds,
        }


class AnalysisResult(db.Model):
    """Persisted analysis report for a completed job."""
    __tablename__ = 'analysis_results'

    id = db.Column(db.Integer, primary_key=True)
    result_id = db.Column(db.String(36), unique=True, nullable=False)
    job_id = db.Column(db.String(36), nullable=False, index=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    source_ref = db.Column(db.Text, nullable=True)
    analysis_source = db.Column(db.String(50), nullable=True)
    payload = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=get_utc_now)

    def to_dict(self) -> dict:
        return {
            'result_id': self.result_id,
            'job_id': self.job_id,
            'user_id': self.user_id,
            'source_ref': self.source_ref,
            'analysis_source': self.analysis_source,
            'payload': self.payload,
            'created_at': _iso(self.created_at),
        }


class UsageCounter(db.Model):
    """Per-user count of completed scans."""
    __tablename__ = 'usage_counters'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), unique=True, nullable=False)
    scan_count = db.Column(db.Integer, default=0, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_utc_now, onupdate=get_utc_now)

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'scan_count': self.scan_count,
            'updated_at': _iso(self.updated_at),
        }


def init_db(app):
    """Initialize database."""
    db.init_app(app)
    with app.app_context():
        db.create_all()
