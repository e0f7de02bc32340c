import sys
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from analysis.errors import JobFatalError
from app.services import notifier as notifier_module
from app.services.content_source import InlineContentSource, metadata_text
from app.services.notifier import CompletionNotifier


def test_transcript_is_used_as_is():
    acquired = InlineContentSource().acquire('  hello world  ', metadata={'title': 'T'})
    assert acquired.text == 'hello world'
    assert acquired.analysis_source == 'transcript'
    assert acquired.video_path is None
    assert acquired.metadata == {'title': 'T'}


def test_metadata_fallback():
    acquired = InlineContentSource().acquire('', metadata={'title': 'Pasta', 'description': 'Dinner'})
    assert acquired.text == 'Title: Pasta\n\nDescription: Dinner'
    assert acquired.analysis_source == 'metadata'


def test_nothing_to_analyze_is_fatal():
    with pytest.raises(JobFatalError):
        InlineContentSource().acquire('   ', metadata={'title': ''})


def test_video_attached_only_when_file_exists(tmp_path):
    video = tmp_path / 'clip.mp4'
    video.write_bytes(b'\x00\x00')

    acquired = InlineContentSource().acquire('text', video_path=str(video))
    assert acquired.video_path == str(video)
    assert acquired.analysis_source == 'video+transcript'

    missing = InlineContentSource().acquire('text', video_path=str(tmp_path / 'gone.mp4'))
    assert missing.video_path is None
    assert missing.analysis_source == 'transcript'


def test_metadata_text_empty():
    assert metadata_text(None) == ''
    assert metadata_text({'title': '  '}) == ''


class DummyResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')


def test_notifier_disabled_without_url():
    notifier = CompletionNotifier()
    assert not notifier.enabled
    assert notifier.notify('j', 'u', 'r') is None


def test_notifier_posts_completion(monkeypatch):
    sent = []

    def fake_post(url, json=None, timeout=None):
        sent.append((url, json, timeout))
        return DummyResponse()

    monkeypatch.setattr(notifier_module.requests, 'post', fake_post)
    notifier = CompletionNotifier('http://hooks.local/done', timeout=3)

    notifier.notify('job-1', 'user-1', 'res-1', background=False)

    assert sent == [(
        'http://hooks.local/done',
        {'job_id': 'job-1', 'user_id': 'user-1', 'result_id': 'res-1', 'status': 'completed'},
        3,
    )]


def test_notifier_background_thread(monkeypatch):
    sent = []
    monkeypatch.setattr(notifier_module.requests, 'post', lambda url, json=None, timeout=None: sent.append(json) or DummyResponse())

    thread = CompletionNotifier('http://hooks.local/done').notify('job-1', 'user-1', 'res-1')
    thread.join(5)

    assert sent[0]['job_id'] == 'job-1'


def test_notifier_failures_are_swallowed(monkeypatch):
    def failing_post(url, json=None, timeout=None):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(notifier_module.requests, 'post', failing_post)
    notifier = CompletionNotifier('http://hooks.local/done')

    assert notifier._send({'job_id': 'j'}) is False
    monkeypatch.setattr(notifier_module.requests, 'post', lambda *a, **k: DummyResponse(500))
    assert notifier._send({'job_id': 'j'}) is False
