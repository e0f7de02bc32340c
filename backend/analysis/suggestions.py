"""
Stage 4: actionable suggestions.

Every report carries between MIN_SUGGESTIONS and MAX_SUGGESTIONS suggestions;
short lists are padded with a general best-practice tip.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .schemas import CategoryResult, RiskFindings, Suggestion, SuggestionList
from .structured_stage import StructuredStage

logger = logging.getLogger(__name__)

MIN_SUGGESTIONS = 5
MAX_SUGGESTIONS = 12

PADDING_SUGGESTION = Suggestion(
    title="General Best Practice",
    text="Consider reviewing your content for further improvements in engagement, compliance, or monetization.",
    priority="LOW",
    impact_score=40,
)
FALLBACK_SUGGESTION = Suggestion(
    title="Review Content",
    text="Please review your content for potential policy violations.",
    priority="MEDIUM",
    impact_score=50,
)


def pad_suggestions(suggestions: List[Suggestion]) -> List[Suggestion]:
    """Cap at MAX_SUGGESTIONS and pad up to MIN_SUGGESTIONS."""
    suggestions = list(suggestions[:MAX_SUGGESTIONS])
    while len(suggestions) < MIN_SUGGESTIONS:
        suggestions.append(PADDING_SUGGESTION.model_copy())
    return suggestions


def build_suggestions_prompt(content: str, categories: Dict[str, CategoryResult], risk: RiskFindings) -> str:
    flagged = {
        key: {'risk_score': r.risk_score, 'severity': r.severity, 'explanation': r.explanation}
        for key, r in categories.items()
        if r.risk_score > 0
    }
    assessment = risk.model_dump(include={'overall_risk_score', 'flagged_section', 'risk_factors', 'severity_level'})
    return f"""Respond ONLY with valid JSON. Escape any double quotes inside string values as \\".

Generate specific, actionable suggestions to improve the following content based on the analysis.

Content: "{content}"

Policy analysis (categories with any risk):
{json.dumps(flagged, indent=2)}

Risk assessment:
{json.dumps(assessment, indent=2)}

Phrase suggestions as advice ("Consider...", "We recommend..."), not commands.
Provide between {MIN_SUGGESTIONS} and {MAX_SUGGESTIONS} suggestions for every scan. For safe content, include tips
for growth, engagement, monetization or best practices.

Provide suggestions in JSON format:
{{
  "suggestions": [
    {{
      "title": "suggestion title",
      "text": "detailed explanation",
      "priority": "HIGH|MEDIUM|LOW",
      "impact_score": "number 0-100, how much this will improve the content"
    }}
  ]
}}"""


class SuggestionGenerator(StructuredStage):
    """Generate improvement suggestions through the orchestrator."""

    label = "suggestions"
    schema = SuggestionList

    def generate(
        self,
        content: str,
        categories: Dict[str, CategoryResult],
        risk: RiskFindings,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Suggestion]:
        result: Optional[SuggestionList] = self.request(
            build_suggestions_prompt(content, categories, risk), metadata=metadata
        )
        if result is None:
            return pad_suggestions([FALLBACK_SUGGESTION.model_copy()])

        if len(result.suggestions) > MAX_SUGGESTIONS:
            logger.info(f"Trimming {len(result.suggestions)} suggestions to {MAX_SUGGESTIONS}")
        return pad_suggestions(result.suggestions)
