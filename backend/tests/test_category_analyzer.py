import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from analysis.category_analyzer import BatchCategoryAnalyzer, normalize_scores
from analysis.errors import ErrorCategory, ProviderChainExhausted, ProviderError
from analysis.schemas import DEFAULT_EXPLANATION
from analysis.taxonomy import DEFAULT_TAXONOMY

KEYS = ["violence_graphic", "hate_speech", "spam"]


class StubOrchestrator:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def run(self, capability, prompt, media_ref=None, aux_text=None, metadata=None):
        self.calls.append({"capability": capability, "prompt": prompt, "media_ref": media_ref})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _analyzer(orchestrator, keys=KEYS):
    sleeps = []
    analyzer = BatchCategoryAnalyzer(orchestrator, taxonomy=keys, sleep=sleeps.append)
    return analyzer, sleeps


# ---------------------------------------------------------------------------
# normalize_scores
# ---------------------------------------------------------------------------

def test_normalize_zero_to_five_scale():
    assert normalize_scores([-5, 3, 2]) == [0, 60, 40]


def test_normalize_zero_to_ten_scale():
    assert normalize_scores([7, 0, 10]) == [70, 0, 100]


def test_normalize_caps_above_hundred():
    assert normalize_scores([150, 50]) == [100, 50]


def test_normalize_leaves_hundred_scale_alone():
    assert normalize_scores([85, 12, 0]) == [85, 12, 0]


@pytest.mark.parametrize("values", [
    [0, 0, 0],
    [0.3, 0.2],
    [0.6],
    [3, 1],
    [7.5, 2],
    [10.4],
    [55.5, 3],
    [-20, 400, 12],
])
def test_normalize_is_clamped_and_idempotent(values):
    once = normalize_scores(values)
    assert all(isinstance(v, int) and 0 <= v <= 100 for v in once)
    assert normalize_scores(once) == once


def test_normalize_empty():
    assert normalize_scores([]) == []


# ---------------------------------------------------------------------------
# BatchCategoryAnalyzer
# ---------------------------------------------------------------------------

def test_every_key_present_even_when_output_is_garbage():
    orch = StubOrchestrator("I cannot produce JSON today.")
    analyzer, sleeps = _analyzer(orch)

    results = analyzer.analyze_categories("some content")

    assert list(results) == KEYS
    for result in results.values():
        assert result.risk_score == 0
        assert result.confidence == 0
        assert result.violations == []
        assert result.severity == "LOW"
        assert result.explanation == DEFAULT_EXPLANATION
    assert len(orch.calls) == 3
    assert sleeps == [1.0, 1.0]


def test_single_category_on_ten_point_scale_is_rescaled_and_rest_defaulted():
    response = json.dumps({"categories": {"violence_graphic": {
        "risk_score": 7,
        "confidence": 9,
        "violations": ["staged fight"],
        "severity": "MEDIUM",
        "explanation": "A staged fight scene.",
    }}})
    analyzer, sleeps = _analyzer(StubOrchestrator(response))

    results = analyzer.analyze_categories("content")

    violence = results["violence_graphic"]
    assert violence.risk_score == 70
    assert violence.confidence == 90
    assert violence.severity == "MEDIUM"
    assert violence.violations == ["staged fight"]
    assert results["hate_speech"].risk_score == 0
    assert results["spam"].explanation == DEFAULT_EXPLANATION
    assert sleeps == []


def test_unknown_keys_are_dropped_and_keys_matched_case_insensitively():
    response = json.dumps({"categories": {
        "SPAM": {"risk_score": 45, "confidence": 70},
        "made_up": {"risk_score": 99},
    }})
    analyzer, _ = _analyzer(StubOrchestrator(response))

    results = analyzer.analyze_categories("content")

    assert set(results) == set(KEYS)
    assert results["spam"].risk_score == 45
    assert results["spam"].severity == "MEDIUM"


def test_missing_severity_is_derived_from_score():
    response = json.dumps({"categories": {"hate_speech": {"risk_score": 85, "confidence": 60}}})
    analyzer, _ = _analyzer(StubOrchestrator(response))

    result = analyzer.analyze_categories("content")["hate_speech"]

    assert result.severity == "HIGH"
    assert result.explanation


def test_parse_failure_then_success_uses_batch_retry():
    good = json.dumps({"categories": {"spam": {"risk_score": 50, "confidence": 50}}})
    orch = StubOrchestrator("not json", good)
    analyzer, sleeps = _analyzer(orch)

    results = analyzer.analyze_categories("content")

    assert results["spam"].risk_score == 50
    assert len(orch.calls) == 2
    assert sleeps == [1.0]


def test_partial_fragments_keep_recovered_categories():
    text = 'Mostly fine. "spam": {"risk_score": 6, "confidence": 8, "severity": "medium"} end.'
    analyzer, _ = _analyzer(StubOrchestrator(text))

    results = analyzer.analyze_categories("content")

    assert analyzer.last_outcome.strategy == "partial"
    assert results["spam"].risk_score == 60
    assert results["spam"].confidence == 80
    assert results["spam"].severity == "MEDIUM"
    assert results["violence_graphic"].risk_score == 0


def test_chain_exhaustion_consumes_a_batch_retry():
    good = json.dumps({"categories": {"spam": {"risk_score": 20}}})
    orch = StubOrchestrator(ProviderChainExhausted("all busy"), good)
    analyzer, sleeps = _analyzer(orch)

    results = analyzer.analyze_categories("content")

    assert results["spam"].risk_score == 20
    assert sleeps == [1.0]


def test_chain_exhaustion_on_every_attempt_raises():
    orch = StubOrchestrator(ProviderChainExhausted("all busy"))
    analyzer, sleeps = _analyzer(orch)

    with pytest.raises(ProviderChainExhausted):
        analyzer.analyze_categories("content")
    assert len(orch.calls) == 3


def test_fatal_provider_error_propagates_immediately():
    orch = StubOrchestrator(ProviderError("bad key", category=ErrorCategory.FATAL))
    analyzer, sleeps = _analyzer(orch)

    with pytest.raises(ProviderError):
        analyzer.analyze_categories("content")
    assert len(orch.calls) == 1
    assert sleeps == []


def test_video_path_selects_multimodal_capability():
    orch = StubOrchestrator(json.dumps({"categories": {"spam": {"risk_score": 0}}}))
    analyzer, _ = _analyzer(orch)

    analyzer.analyze_categories("transcript", video_path="/tmp/v.mp4")

    assert orch.calls[0]["capability"] == "multimodal"
    assert orch.calls[0]["media_ref"] == "/tmp/v.mp4"


def test_prompt_lists_every_category():
    orch = StubOrchestrator("{}")
    analyzer, _ = _analyzer(orch, keys=DEFAULT_TAXONOMY)
    analyzer.analyze_categories("content", {"content_type": "Gaming"})

    prompt = orch.calls[0]["prompt"]
    assert len(DEFAULT_TAXONOMY) == 19
    for key in DEFAULT_TAXONOMY:
        assert key in prompt
    assert "content_type: Gaming" in prompt
