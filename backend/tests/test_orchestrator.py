import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from analysis.errors import ErrorCategory, ProviderChainExhausted, ProviderError
from analysis.orchestrator import MULTIMODAL, TEXT, FallbackOrchestrator
from analysis.providers import CallableProvider, ProviderAdapter
from analysis.rate_governor import RateGovernor
from conftest import FakeClock


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


def _orchestrator(providers, events=None):
    clock = FakeClock()
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        if events is not None:
            events.append(("sleep", seconds))

    orch = FallbackOrchestrator(providers, governor=RateGovernor(clock=clock, sleep=clock.sleep), sleep=sleep)
    return orch, sleeps


def test_overloaded_primary_retries_with_backoff_then_falls_back():
    events = []

    def primary(prompt):
        events.append(("primary", None))
        raise ProviderError("model overloaded", category=ErrorCategory.OVERLOADED)

    def secondary(prompt):
        events.append(("secondary", None))
        return "ok"

    orch, sleeps = _orchestrator(
        [CallableProvider("primary", primary), CallableProvider("secondary", secondary)],
        events=events,
    )

    assert orch.run(TEXT, "hello") == "ok"
    assert sleeps == [1, 2, 4]
    assert events == [
        ("primary", None), ("sleep", 1),
        ("primary", None), ("sleep", 2),
        ("primary", None), ("sleep", 4),
        ("secondary", None),
    ]


def test_sdk_exceptions_are_classified_by_status_and_text():
    calls = {"n": 0}

    def flaky(prompt):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StatusError("Too many requests", 429)
        if calls["n"] == 2:
            raise RuntimeError("503 Service Unavailable")
        return "recovered"

    orch, sleeps = _orchestrator([CallableProvider("gemini", flaky)])

    assert orch.run(TEXT, "x") == "recovered"
    assert sleeps == [1, 2]


def test_fatal_error_propagates_without_fallback():
    secondary_calls = []

    def primary(prompt):
        raise ValueError("invalid api key")

    orch, sleeps = _orchestrator([
        CallableProvider("primary", primary),
        CallableProvider("secondary", lambda p: secondary_calls.append(p) or "never"),
    ])

    with pytest.raises(ProviderError) as excinfo:
        orch.run(TEXT, "x")

    assert excinfo.value.category == ErrorCategory.FATAL
    assert excinfo.value.provider == "primary"
    assert secondary_calls == []
    assert sleeps == []


def test_chain_exhaustion_carries_last_error():
    def overloaded(prompt):
        raise ProviderError("busy", category=ErrorCategory.OVERLOADED)

    orch, sleeps = _orchestrator([
        CallableProvider("a", overloaded),
        CallableProvider("b", overloaded),
    ])

    with pytest.raises(ProviderChainExhausted) as excinfo:
        orch.run(TEXT, "x")

    assert sleeps == [1, 2, 4, 1, 2, 4]
    assert excinfo.value.last_error is not None
    assert excinfo.value.last_error.provider == "b"


def test_multimodal_exhaustion_degrades_to_text_with_flattened_prompt():
    text_prompts = []

    def video_overloaded(prompt, media_ref, aux_text, metadata):
        raise ProviderError("overloaded", category=ErrorCategory.OVERLOADED)

    def video_text(prompt):
        raise AssertionError("exhausted provider should be skipped in the text chain")

    def claude(prompt):
        text_prompts.append(prompt)
        return "text answer"

    orch, sleeps = _orchestrator([
        CallableProvider("gemini", video_text, multimodal_fn=video_overloaded),
        CallableProvider("claude", claude),
    ])

    result = orch.run(
        MULTIMODAL,
        "Analyze this video",
        media_ref="/tmp/video.mp4",
        aux_text="the transcript",
        metadata={"title": "Pasta night"},
    )

    assert result == "text answer"
    assert sleeps == [1, 2, 4]
    assert text_prompts[0].startswith("Analyze this video")
    assert "Transcript: the transcript" in text_prompts[0]
    assert 'Metadata: {"title": "Pasta night"}' in text_prompts[0]


def test_capability_mismatch_degrades_immediately():
    text_calls = []

    class TextOnly(ProviderAdapter):
        name = "text-only"
        supports_multimodal = True  # claims support but the call reports a mismatch

        def generate_multimodal_content(self, prompt, media_ref, aux_text=None, metadata=None):
            raise ProviderError("no video", category=ErrorCategory.CAPABILITY_MISMATCH)

        def generate_content(self, prompt):
            text_calls.append(prompt)
            return "fine"

    orch, sleeps = _orchestrator([TextOnly()])

    assert orch.run(MULTIMODAL, "p", media_ref="/tmp/v.mp4", aux_text="t") == "fine"
    assert sleeps == []
    assert "Transcript: t" in text_calls[0]


def test_text_only_provider_raises_capability_mismatch():
    provider = CallableProvider("claude", lambda p: "x")
    with pytest.raises(ProviderError) as excinfo:
        provider.generate_multimodal_content("p", "/tmp/v.mp4")
    assert excinfo.value.category == ErrorCategory.CAPABILITY_MISMATCH


def test_multimodal_chain_only_holds_capable_providers():
    orch, _ = _orchestrator([
        CallableProvider("gemini", lambda p: "", multimodal_fn=lambda *a: ""),
        CallableProvider("claude", lambda p: ""),
    ])
    assert [p.name for p in orch.chain_for(MULTIMODAL)] == ["gemini"]
    assert [p.name for p in orch.chain_for(TEXT)] == ["gemini", "claude"]


def test_every_attempt_goes_through_the_governor():
    clock = FakeClock()
    governor = RateGovernor(max_requests=100, clock=clock, sleep=clock.sleep)
    calls = {"n": 0}

    def flaky(prompt):
        calls["n"] += 1
        if calls["n"] < 3:
            raise ProviderError("rate", category=ErrorCategory.RATE_LIMITED)
        return "ok"

    orch = FallbackOrchestrator([CallableProvider("g", flaky)], governor=governor, sleep=lambda s: None)
    orch.run(TEXT, "abcdefgh")

    usage = governor.usage("g")
    assert usage["requests_in_window"] == 3
    assert usage["used"] == 6


def test_unknown_capability_rejected():
    orch, _ = _orchestrator([CallableProvider("g", lambda p: "")])
    with pytest.raises(ValueError):
        orch.run("audio", "x")


@pytest.mark.parametrize("attempts", [0, -1])
def test_attempt_count_below_one_rejected(attempts):
    with pytest.raises(ValueError, match="max_attempts"):
        FallbackOrchestrator([CallableProvider("g", lambda p: "ok")], max_attempts=attempts)


def test_single_attempt_goes_straight_to_the_next_provider():
    clock = FakeClock()
    sleeps = []

    def busy(prompt):
        raise StatusError("overloaded", 529)

    orch = FallbackOrchestrator(
        [CallableProvider("g", busy), CallableProvider("c", lambda p: "from c")],
        governor=RateGovernor(clock=clock, sleep=clock.sleep),
        max_attempts=1,
        sleep=sleeps.append,
    )

    assert orch.run(TEXT, "x") == "from c"
    assert sleeps == [1]
