import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from analysis.errors import ErrorCategory, ProviderChainExhausted, ProviderError
from analysis.risk_assessment import CHUNK_OVERLAP, CHUNK_SIZE, RiskAssessor, chunk_text
from analysis.schemas import CategoryResult, RiskAssessment
from conftest import QueuedOrchestrator

KEYS = ["CONTENT_SAFETY_VIOLENCE", "COMMUNITY_STANDARDS_HATE_SPEECH", "COMMUNITY_STANDARDS_SPAM"]
CATEGORIES = {
    "CONTENT_SAFETY_VIOLENCE": CategoryResult(risk_score=70, confidence=80, severity="HIGH"),
    "COMMUNITY_STANDARDS_HATE_SPEECH": CategoryResult.default(),
    "COMMUNITY_STANDARDS_SPAM": CategoryResult.default(),
}


def _assessment(score=0, section="", factors=(), severity="LOW", phrases=None):
    return json.dumps({
        "overall_risk_score": score,
        "flagged_section": section,
        "risk_factors": list(factors),
        "severity_level": severity,
        "risky_phrases_by_category": phrases or {},
    })


def _assessor(orchestrator):
    sleeps = []
    return RiskAssessor(orchestrator, taxonomy=KEYS, sleep=sleeps.append), sleeps


# ---------------------------------------------------------------------------
# chunk_text
# ---------------------------------------------------------------------------

def test_short_text_is_one_chunk():
    assert chunk_text("short") == ["short"]
    assert chunk_text("x" * CHUNK_SIZE) == ["x" * CHUNK_SIZE]


def test_long_text_chunks_overlap():
    text = "".join(chr(ord("a") + i % 26) for i in range(8000))
    chunks = chunk_text(text)

    step = CHUNK_SIZE - CHUNK_OVERLAP
    assert [len(c) for c in chunks] == [3500, 3500, 1500]
    assert chunks[1] == text[step:step + CHUNK_SIZE]
    assert chunks[0][-CHUNK_OVERLAP:] == chunks[1][:CHUNK_OVERLAP]
    assert chunks[-1] == text[2 * step:]


def test_chunk_overlap_must_be_smaller_than_size():
    with pytest.raises(ValueError):
        chunk_text("abc", size=10, overlap=10)


# ---------------------------------------------------------------------------
# RiskAssessment schema
# ---------------------------------------------------------------------------

def test_schema_coerces_loose_values():
    parsed = RiskAssessment.model_validate({
        "overall_risk_score": "75",
        "risk_factors": "profanity",
        "severity_level": "bogus",
        "risky_phrases_by_category": {"X": "damn", "Y": None},
    })

    assert parsed.overall_risk_score == 75
    assert parsed.risk_factors == ["profanity"]
    assert parsed.severity_level == "HIGH"
    assert parsed.risky_phrases_by_category == {"X": ["damn"], "Y": []}


def test_schema_rejects_unrelated_objects():
    with pytest.raises(ValueError):
        RiskAssessment.model_validate({"content_type": "Cooking"})


# ---------------------------------------------------------------------------
# RiskAssessor
# ---------------------------------------------------------------------------

def test_single_chunk_assessment_is_filtered():
    response = _assessment(
        score=72,
        section="I will hurt you",
        factors=["threat"],
        severity="high",
        phrases={
            "content_safety_violence": ["hurt you", "team", "hurt you"],
            "made_up": ["whatever"],
        },
    )
    assessor, sleeps = _assessor(QueuedOrchestrator(response))

    findings = assessor.assess("I will hurt you", CATEGORIES, {"content_type": "Gaming"})

    assert findings.overall_risk_score == 72
    assert findings.flagged_section == "I will hurt you"
    assert findings.severity_level == "HIGH"
    assert findings.risk_factors == ["threat"]
    assert findings.risky_phrases_by_category == {"CONTENT_SAFETY_VIOLENCE": ["hurt you"]}
    assert findings.risky_phrases == ["hurt you"]
    assert sleeps == []


def test_prompt_lists_keys_flagged_categories_and_context():
    orch = QueuedOrchestrator(_assessment())
    assessor, _ = _assessor(orch)

    assessor.assess("content", CATEGORIES, {"content_type": "Gaming"})

    prompt = orch.prompts[0]
    for key in KEYS:
        assert f"- {key}" in prompt
    assert '"risk_score": 70' in prompt
    assert '"content_type": "Gaming"' in prompt
    assert "risky_phrases_by_category" in prompt


def test_long_content_merges_phrases_from_every_chunk():
    first = _assessment(score=40, section="first section", factors=["profanity"],
                        phrases={"CONTENT_SAFETY_VIOLENCE": ["damn it"]})
    second = _assessment(score=90, section="second section", factors=["profanity", "slurs"],
                         phrases={"CONTENT_SAFETY_VIOLENCE": ["Damn it", "beat him up"],
                                  "COMMUNITY_STANDARDS_HATE_SPEECH": ["slur here"]})
    third = _assessment()
    orch = QueuedOrchestrator(first, second, third)
    assessor, _ = _assessor(orch)

    findings = assessor.assess("word " * 1600, CATEGORIES)

    assert len(orch.prompts) == 3
    assert findings.overall_risk_score == 40
    assert findings.flagged_section == "first section"
    assert findings.risk_factors == ["profanity", "slurs"]
    assert findings.risky_phrases_by_category == {
        "CONTENT_SAFETY_VIOLENCE": ["damn it", "beat him up"],
        "COMMUNITY_STANDARDS_HATE_SPEECH": ["slur here"],
    }
    assert findings.risky_phrases == ["damn it", "beat him up", "slur here"]


def test_unparseable_output_retries_then_defaults():
    orch = QueuedOrchestrator("Sorry, I can't help with that.")
    assessor, sleeps = _assessor(orch)

    findings = assessor.assess("content", CATEGORIES)

    assert len(orch.prompts) == 3
    assert sleeps == [1.0, 1.0]
    assert findings.flagged_section == "Analysis incomplete"
    assert findings.overall_risk_score == 0
    assert findings.severity_level == "LOW"
    assert findings.risk_factors == []
    assert findings.risky_phrases == []
    assert findings.risky_phrases_by_category == {}


def test_chain_exhaustion_consumes_a_retry():
    good = _assessment(phrases={"COMMUNITY_STANDARDS_SPAM": ["buy followers now"]})
    assessor, sleeps = _assessor(QueuedOrchestrator(ProviderChainExhausted("all busy"), good))

    findings = assessor.assess("content", CATEGORIES)

    assert findings.risky_phrases == ["buy followers now"]
    assert sleeps == [1.0]


def test_exhaustion_on_every_attempt_falls_back():
    assessor, _ = _assessor(QueuedOrchestrator(ProviderChainExhausted("all busy")))
    assert assessor.assess("content", CATEGORIES).flagged_section == "Analysis incomplete"


def test_fatal_provider_error_propagates():
    orch = QueuedOrchestrator(ProviderError("bad key", category=ErrorCategory.FATAL))
    assessor, sleeps = _assessor(orch)

    with pytest.raises(ProviderError):
        assessor.assess("content", CATEGORIES)
    assert len(orch.prompts) == 1
