"""
Content risk analysis pipeline.

Orchestrates the analysis stages:
1. Context classification (content type, audience, language)
2. Batch policy category scoring
3. Risk assessment and risky phrases
4. Actionable suggestions

The overall risk score, risk level and highlights are derived from the
category scores.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .category_analyzer import BatchCategoryAnalyzer
from .context_classifier import ContextClassifier
from .orchestrator import FallbackOrchestrator
from .risk_assessment import RiskAssessor
from .schemas import CategoryResult
from .suggestions import SuggestionGenerator
from .taxonomy import category_weight

logger = logging.getLogger(__name__)

STAGE_CONTEXT = "context"
STAGE_CATEGORIES = "categories"
STAGE_RISK = "risk"
STAGE_SUGGESTIONS = "suggestions"


def calculate_overall_risk_score(categories: Dict[str, CategoryResult]) -> int:
    """
    Weighted average of category scores, boosted by how risk is distributed.

    High-priority categories weigh 2.0, medium 1.5, the rest 1.0.
    """
    if not categories:
        return 0

    total_weighted = 0.0
    total_weight = 0.0
    for key, result in categories.items():
        weight = category_weight(key)
        total_weighted += result.risk_score * weight
        total_weight += weight
    weighted_average = total_weighted / total_weight if total_weight else 0.0

    scores = [r.risk_score for r in categories.values()]
    high = sum(1 for s in scores if s >= 80)
    medium = sum(1 for s in scores if 40 <= s < 80)
    low = sum(1 for s in scores if 20 <= s < 40)
    concerning = sum(1 for s in scores if s >= 30)

    adjusted = weighted_average
    if high:
        adjusted = weighted_average + 20
    elif medium >= 3:
        adjusted = weighted_average + 15
    elif medium >= 2:
        adjusted = weighted_average + 10
    elif low >= 3 or medium >= 1:
        adjusted = weighted_average + 5

    if concerning >= 4:
        adjusted = max(adjusted, 35)
    elif concerning >= 2:
        adjusted = max(adjusted, 25)

    adjusted = min(100.0, adjusted)
    logger.debug(
        f"Risk calculation: weighted={weighted_average:.2f} high={high} medium={medium} "
        f"low={low} concerning={concerning} final={round(adjusted)}"
    )
    return int(round(adjusted))


def get_risk_level(score: float) -> str:
    if score >= 70:
        return "HIGH"
    if score >= 40:
        return "MEDIUM"
    return "LOW"


def generate_highlights(categories: Dict[str, CategoryResult]) -> List[Dict[str, Any]]:
    """Categories with any risk, highest score first."""
    highlights = [
        {
            'category': key.replace('_', ' '),
            'key': key,
            'risk': result.severity,
            'score': result.risk_score,
            'confidence': result.confidence,
        }
        for key, result in categories.items()
        if result.risk_score > 0
    ]
    highlights.sort(key=lambda h: h['score'], reverse=True)
    return highlights


def _confidence_score(categories: Dict[str, CategoryResult]) -> int:
    scored = [r.confidence for r in categories.values() if r.confidence > 0]
    if not scored:
        return 0
    return int(round(sum(scored) / len(scored)))


class AnalysisPipeline:
    """
    Run the full analysis for one piece of content.

    Usage:
        pipeline = AnalysisPipeline(orchestrator)
        report = pipeline.analyze(text, video_path=None, metadata={"title": "..."})
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        taxonomy: Optional[List[str]] = None,
        classifier: Optional[ContextClassifier] = None,
        analyzer: Optional[BatchCategoryAnalyzer] = None,
        assessor: Optional[RiskAssessor] = None,
        suggester: Optional[SuggestionGenerator] = None,
    ):
        self.orchestrator = orchestrator
        self.classifier = classifier or ContextClassifier(orchestrator)
        self.analyzer = analyzer or BatchCategoryAnalyzer(orchestrator, taxonomy=taxonomy)
        self.assessor = assessor or RiskAssessor(orchestrator, taxonomy=taxonomy)
        self.suggester = suggester or SuggestionGenerator(orchestrator)

    def analyze(
        self,
        text: str,
        video_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        on_stage: Optional[Callable[[str], None]] = None,
    ) -> Dict[str, Any]:
        """
        Analyze content and build the risk report.

        Args:
            text: Transcript or other content text
            video_path: Optional local video for multi-modal scoring
            metadata: Optional title/description metadata
            on_stage: Called with the stage name (STAGE_*) before each stage

        Returns:
            JSON-serializable report dict
        """
        start = time.time()

        if on_stage:
            on_stage(STAGE_CONTEXT)
        context = self.classifier.classify(text, metadata)
        logger.info(f"Context: {context.content_type} / {context.target_audience} / {context.language_detected}")

        if on_stage:
            on_stage(STAGE_CATEGORIES)
        categories = self.analyzer.analyze_categories(
            text,
            context.model_dump(),
            video_path=video_path,
            metadata=metadata,
        )

        risk_score = calculate_overall_risk_score(categories)
        risk_level = get_risk_level(risk_score)
        highlights = generate_highlights(categories)
        logger.info(f"Overall risk: {risk_score} ({risk_level}), {len(highlights)} highlighted categories")

        if on_stage:
            on_stage(STAGE_RISK)
        risk = self.assessor.assess(text, categories, context.model_dump(), metadata=metadata)
        logger.info(f"Risk assessment: {len(risk.risky_phrases)} risky phrase(s), severity {risk.severity_level}")

        if on_stage:
            on_stage(STAGE_SUGGESTIONS)
        suggestions = self.suggester.generate(text, categories, risk, metadata=metadata)

        outcome = self.analyzer.last_outcome
        return {
            'risk_score': risk_score,
            'risk_level': risk_level,
            'confidence_score': _confidence_score(categories),
            'flagged_section': risk.flagged_section,
            'risk_factors': risk.risk_factors,
            'policy_categories': {k: v.model_dump() for k, v in categories.items()},
            'context_analysis': context.model_dump(),
            'highlights': highlights,
            'suggestions': [s.model_dump() for s in suggestions],
            'risky_phrases': risk.risky_phrases,
            'risky_phrases_by_category': risk.risky_phrases_by_category,
            'analysis_metadata': {
                'providers': [p.name for p in self.orchestrator.providers],
                'analysis_timestamp': datetime.now(timezone.utc).isoformat(),
                'processing_time_ms': int((time.time() - start) * 1000),
                'content_length': len(text),
                'analysis_mode': 'multimodal' if video_path else 'text',
                'extraction_strategy': outcome.strategy if outcome else None,
            },
        }
