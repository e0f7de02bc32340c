"""
Stage 1: content context classification.

Determines content type, target audience, monetization impact, length and
language. A response that cannot be parsed yields a default 'General'
classification instead of failing the job.
"""

import logging
import re
from typing import Any, Dict, Optional

from .errors import ExtractionError
from .json_extraction import ExtractionPipeline
from .orchestrator import TEXT, FallbackOrchestrator
from .schemas import ContextClassification
from .taxonomy import CONTENT_TYPES, TARGET_AUDIENCES

logger = logging.getLogger(__name__)

# Checked in order; the first script found wins
LANGUAGE_PATTERNS = [
    ("Arabic", re.compile(r"[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]")),
    ("Chinese", re.compile(r"[\u4E00-\u9FFF]")),
    ("Japanese", re.compile(r"[\u3040-\u309F\u30A0-\u30FF]")),
    ("Korean", re.compile(r"[\uAC00-\uD7AF]")),
    ("Thai", re.compile(r"[\u0E00-\u0E7F]")),
    ("Hindi", re.compile(r"[\u0900-\u097F]")),
]

DEFAULT_MONETIZATION_IMPACT = 50


def detect_language(text: str) -> str:
    """Script-range language guess; English when no listed script is present."""
    for name, pattern in LANGUAGE_PATTERNS:
        if pattern.search(text or ""):
            return name
    return "English"


def is_non_english(text: str) -> bool:
    return detect_language(text) != "English"


def word_count(text: str) -> int:
    return len((text or "").split())


def _match_choice(value: str, choices, default: str) -> str:
    lowered = {c.lower(): c for c in choices}
    return lowered.get((value or "").strip().lower(), default)


def build_context_prompt(content: str) -> str:
    return f"""Respond ONLY with valid JSON. Escape any double quotes inside string values as \\".

Analyze the following content to determine its context and characteristics:

Content: "{content}"

Provide analysis in JSON format with the following structure:
{{
  "content_type": "one of: {', '.join(CONTENT_TYPES)}",
  "target_audience": "one of: {', '.join(TARGET_AUDIENCES)}",
  "monetization_impact": "number 0-100, how likely this content type is to be monetized",
  "content_length": "number (word count)",
  "language_detected": "primary language"
}}

Only use "General" if the content does not clearly fit a specific type."""


class ContextClassifier:
    """Classify content context through the orchestrator."""

    def __init__(self, orchestrator: FallbackOrchestrator):
        self.orchestrator = orchestrator
        self.extractor = ExtractionPipeline(label="context classification")

    def default_classification(self, content: str) -> ContextClassification:
        return ContextClassification(
            content_type="General",
            target_audience="General Audience",
            monetization_impact=DEFAULT_MONETIZATION_IMPACT,
            content_length=word_count(content),
            language_detected=detect_language(content),
        )

    def classify(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> ContextClassification:
        """
        Classify content.

        Provider errors propagate; unusable responses fall back to the default
        classification.
        """
        detected = detect_language(content)
        if detected != "English":
            logger.info(f"Non-English content detected: {detected}")

        response = self.orchestrator.run(TEXT, build_context_prompt(content), metadata=metadata)
        try:
            data: ContextClassification = self.extractor.parse(response, ContextClassification).unwrap()
        except ExtractionError as e:
            logger.warning(f"Context classification unusable, using defaults: {e}")
            return self.default_classification(content)

        return ContextClassification(
            content_type=_match_choice(data.content_type, CONTENT_TYPES, "General"),
            target_audience=_match_choice(data.target_audience, TARGET_AUDIENCES, "General Audience"),
            monetization_impact=data.monetization_impact,
            content_length=data.content_length or word_count(content),
            language_detected=data.language_detected or detected,
        )
