"""
Stage 3: risk assessment and risky phrase extraction.

Long content is split into overlapping chunks, each assessed separately.
Phrases from every chunk are merged, limited to taxonomy keys, and passed
through the false-positive filter. The overall score and flagged section come
from the first chunk that produced a usable assessment.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .false_positive_filter import filter_false_positives
from .schemas import CategoryResult, RiskAssessment, RiskFindings
from .structured_stage import StructuredStage
from .taxonomy import DEFAULT_TAXONOMY

logger = logging.getLogger(__name__)

CHUNK_SIZE = 3500
CHUNK_OVERLAP = 250

INCOMPLETE_SECTION = "Analysis incomplete"


def chunk_text(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """
    Split text into chunks of at most `size` characters, each overlapping the
    previous one by `overlap`. Text that fits in one chunk is returned whole.
    """
    if overlap >= size:
        raise ValueError("overlap must be smaller than the chunk size")
    if len(text) <= size:
        return [text]

    chunks = []
    pos = 0
    while pos < len(text):
        chunks.append(text[pos:pos + size])
        if pos + size >= len(text):
            break
        pos += size - overlap
    return chunks


def _flagged_categories(categories: Dict[str, CategoryResult]) -> Dict[str, Any]:
    return {
        key: {'risk_score': r.risk_score, 'severity': r.severity, 'violations': r.violations}
        for key, r in categories.items()
        if r.risk_score > 0
    }


def build_risk_prompt(content: str, categories: Dict[str, CategoryResult], context: Dict[str, Any], keys: List[str]) -> str:
    key_lines = "\n".join(f"- {key}" for key in keys)
    return f"""Respond ONLY with valid JSON. Escape any double quotes inside string values as \\".

Assess the overall risk of the following content and identify the words or phrases that directly cause policy concerns.

Content: "{content}"

Policy analysis (categories with any risk):
{json.dumps(_flagged_categories(categories), indent=2)}

Context:
{json.dumps(context, indent=2)}

Consider the context. Sports, gaming, technology and educational vocabulary is normal for those content types.
Do NOT flag common words, family words ("kid", "son", "mom") or device words ("phone", "laptop") unless the
surrounding words make them problematic. List only ACTUAL words or phrases from the content, not category
descriptions. If a phrase appears more than once, list it once per category.

Use these exact category keys in risky_phrases_by_category:
{key_lines}

Provide the assessment in JSON format:
{{
  "overall_risk_score": "number 0-100 (not a 0-5 or 0-10 scale)",
  "flagged_section": "most concerning part of the content",
  "risk_factors": ["main risk factors"],
  "severity_level": "LOW|MEDIUM|HIGH",
  "risky_phrases_by_category": {{
    "CATEGORY_KEY": ["risky word or phrase"]
  }}
}}

Return empty arrays when nothing is risky."""


class RiskAssessor(StructuredStage):
    """Assess risk and collect risky phrases through the orchestrator."""

    label = "risk assessment"
    schema = RiskAssessment

    def __init__(self, orchestrator, taxonomy: Optional[List[str]] = None, **kwargs):
        super().__init__(orchestrator, **kwargs)
        self.taxonomy = list(taxonomy) if taxonomy is not None else list(DEFAULT_TAXONOMY)

    def assess(
        self,
        content: str,
        categories: Dict[str, CategoryResult],
        context: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RiskFindings:
        chunks = chunk_text(content)
        if len(chunks) > 1:
            logger.info(f"Assessing risk over {len(chunks)} chunks of {len(content)} chars")

        assessments: List[RiskAssessment] = []
        for index, chunk in enumerate(chunks):
            prompt = build_risk_prompt(chunk, categories, context or {}, self.taxonomy)
            assessment = self.request(prompt, metadata=metadata)
            if assessment is None:
                logger.warning(f"Risk assessment for chunk {index + 1}/{len(chunks)} unusable, skipping")
                continue
            assessments.append(assessment)

        return self._merge(assessments)

    def _merge(self, assessments: List[RiskAssessment]) -> RiskFindings:
        if not assessments:
            return RiskFindings(flagged_section=INCOMPLETE_SECTION)

        lookup = {key.lower(): key for key in self.taxonomy}
        collected: Dict[str, List[str]] = {}
        risk_factors: List[str] = []
        for assessment in assessments:
            for key, phrases in assessment.risky_phrases_by_category.items():
                canonical = lookup.get(key.strip().lower())
                if canonical is None:
                    logger.debug(f"Dropping risky phrases for unknown category: {key}")
                    continue
                collected.setdefault(canonical, []).extend(phrases)
            risk_factors.extend(f for f in assessment.risk_factors if f not in risk_factors)

        by_category = {}
        for key, phrases in collected.items():
            kept = filter_false_positives(phrases)
            if len(kept) < len(phrases):
                logger.info(f"{key}: kept {len(kept)}/{len(phrases)} risky phrases after filtering")
            by_category[key] = kept
        risky_phrases = filter_false_positives(p for phrases in by_category.values() for p in phrases)

        base = assessments[0]
        return RiskFindings(
            overall_risk_score=base.overall_risk_score,
            flagged_section=base.flagged_section,
            risk_factors=risk_factors,
            severity_level=base.severity_level,
            risky_phrases=risky_phrases,
            risky_phrases_by_category=by_category,
        )
