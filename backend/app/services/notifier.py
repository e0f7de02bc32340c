"""
Completion notifications.

POSTs a small JSON body to NOTIFY_COMPLETION_URL on a daemon thread. Delivery
failures are logged and never affect the job.
"""

import logging
import threading
from typing import Optional

import requests

logger = logging.getLogger(__name__)

NOTIFY_TIMEOUT_SECONDS = 10


class CompletionNotifier:

    def __init__(self, url: Optional[str] = None, timeout: float = NOTIFY_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def notify(self, job_id: str, user_id: str, result_id: str, background: bool = True) -> Optional[threading.Thread]:
        if not self.enabled:
            return None

        body = {'job_id': job_id, 'user_id': user_id, 'result_id': result_id, 'status': 'completed'}
        if not background:
            self._send(body)
            return None

        thread = threading.Thread(target=self._send, args=(body,), daemon=True)
        thread.start()
        return thread

    def _send(self, body: dict) -> bool:
        try:
            response = requests.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
            logger.info(f"Sent completion notification for job {body['job_id']}")
            return True
        except requests.RequestException as e:
            logger.warning(f"Completion notification for job {body['job_id']} failed: {e}")
            return False
