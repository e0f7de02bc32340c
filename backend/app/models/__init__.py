from .database import db, init_db, Job, JobStatus, AnalysisResult, UsageCounter

__all__ = ['db', 'init_db', 'Job', 'JobStatus', 'AnalysisResult', 'UsageCounter']
