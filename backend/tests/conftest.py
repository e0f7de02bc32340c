import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from analysis.orchestrator import FallbackOrchestrator
from analysis.pipeline import AnalysisPipeline
from analysis.providers import CallableProvider
from analysis.rate_governor import RateGovernor
from analysis.taxonomy import DEFAULT_TAXONOMY


CONTEXT_RESPONSE = json.dumps({
    "content_type": "Cooking",
    "target_audience": "General Audience",
    "monetization_impact": 85,
    "content_length": 6,
    "language_detected": "English",
})


class FakeClock:
    """Monotonic clock whose sleep() just advances time."""

    def __init__(self, start=0.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class QueuedOrchestrator:
    """Returns queued responses (or raises queued exceptions), repeating the last one."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def run(self, capability, prompt, media_ref=None, aux_text=None, metadata=None):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingScheduler:
    def __init__(self):
        self.delays = []

    def schedule(self, delay):
        self.delays.append(delay)


def make_batch_response(scores=None, keys=DEFAULT_TAXONOMY):
    scores = scores or {}
    categories = {}
    for key in keys:
        score = scores.get(key, 0)
        categories[key] = {
            "risk_score": score,
            "confidence": 90,
            "violations": ["flagged"] if score else [],
            "severity": "HIGH" if score >= 70 else "LOW",
            "explanation": "Flagged content." if score else "Nothing found.",
        }
    return json.dumps({"categories": categories})


RISK_RESPONSE = json.dumps({
    "overall_risk_score": 0,
    "flagged_section": "",
    "risk_factors": [],
    "severity_level": "LOW",
    "risky_phrases_by_category": {},
})

SUGGESTIONS_RESPONSE = json.dumps({"suggestions": [
    {"title": f"Tip {i}", "text": f"Consider tip number {i}.", "priority": "LOW", "impact_score": 30}
    for i in range(1, 6)
]})


def fake_responder(context=CONTEXT_RESPONSE, batch=None, risk=RISK_RESPONSE, suggestions=SUGGESTIONS_RESPONSE):
    """Answer each stage prompt with its canned response."""
    batch = batch or make_batch_response()

    def respond(prompt):
        if '"suggestions"' in prompt:
            return suggestions
        if "risky_phrases_by_category" in prompt:
            return risk
        if "CATEGORIES:" in prompt:
            return batch
        return context

    return respond


def make_pipeline(respond=None, name="fake-model"):
    orchestrator = FallbackOrchestrator(
        [CallableProvider(name, respond or fake_responder())],
        governor=RateGovernor(),
        sleep=lambda seconds: None,
    )
    return AnalysisPipeline(orchestrator)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def app(tmp_path):
    from app import create_app
    from app.models import db
    from app.services import queue_service

    app = create_app(overrides={
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'QUEUE_MODE': 'threading',
        'QUEUE_AUTOSTART': False,
        'JOB_TIMEOUT_SECONDS': 5,
        'CHAIN_DELAY_SECONDS': 2,
        'NOTIFY_COMPLETION_URL': None,
        'GOOGLE_API_KEY': '',
        'ANTHROPIC_API_KEY': '',
    })
    queue_service.scheduler = RecordingScheduler()
    queue_service.pipeline = make_pipeline()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()
