from .queue import queue_service, QueueService
from .job_store import JobStore
from .content_source import ContentSource, InlineContentSource, AcquiredContent
from .notifier import CompletionNotifier

__all__ = [
    'queue_service',
    'QueueService',
    'JobStore',
    'ContentSource',
    'InlineContentSource',
    'AcquiredContent',
    'CompletionNotifier',
]
