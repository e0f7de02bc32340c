"""
Batch category analyzer.

One provider request scores every taxonomy category at once. The response
goes through the extraction pipeline, scores are normalized to 0-100, and any
category the model skipped is filled with a zero-risk default.
"""

import logging
import math
import re
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .errors import ProviderChainExhausted
from .json_extraction import ExtractionPipeline, ParseOutcome
from .orchestrator import MULTIMODAL, TEXT, FallbackOrchestrator
from .schemas import (
    DEFAULT_EXPLANATION,
    BatchAnalysis,
    CategoryResult,
    RawCategoryScore,
    severity_from_score,
)
from .taxonomy import DEFAULT_TAXONOMY, category_description

logger = logging.getLogger(__name__)

MAX_BATCH_RETRIES = 2
BATCH_RETRY_DELAY = 1.0
MISSING_EXPLANATION = "Explanation not provided."


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_scores(values: Iterable[float]) -> List[int]:
    """
    Bring a batch of scores onto the 0-100 integer scale.

    Negatives clamp to 0 and values are rounded first. The scale is then
    inferred from the batch maximum: <= 5 means a 0-5 scale (x20), <= 10 a
    0-10 scale (x10), anything larger is already 0-100 and capped at 100.
    Outputs always have a maximum of 0 or above 10, so normalizing twice
    changes nothing.
    """
    rounded = [_round_half_up(max(0.0, float(v))) for v in values]
    if not rounded:
        return []

    top = max(rounded)
    if top == 0:
        return rounded
    if top <= 5:
        logger.warning("Detected 0-5 scale, normalizing scores by 20x")
        factor = 20
    elif top <= 10:
        logger.warning("Detected 0-10 scale, normalizing scores by 10x")
        factor = 10
    else:
        if top > 100:
            logger.warning("Detected score above 100, capping at 100")
        factor = 1
    return [min(100, v * factor) for v in rounded]


def make_category_fragment_extractor(keys: Iterable[str]) -> Callable[[str], Dict[str, RawCategoryScore]]:
    """Build a partial-tier extractor that recovers individual category blocks."""
    keys = list(keys)

    def extract(text: str) -> Dict[str, RawCategoryScore]:
        recovered = {}
        for key in keys:
            match = re.search(rf'"{re.escape(key)}"\s*:\s*\{{([^}}]+)\}}', text, re.IGNORECASE)
            if not match:
                continue
            block = match.group(1)
            fields: Dict[str, Any] = {}

            risk = re.search(r'"risk_score"\s*:\s*"?(-?\d+(?:\.\d+)?)', block, re.IGNORECASE)
            if risk:
                fields["risk_score"] = risk.group(1)
            confidence = re.search(r'"confidence"\s*:\s*"?(-?\d+(?:\.\d+)?)', block, re.IGNORECASE)
            if confidence:
                fields["confidence"] = confidence.group(1)
            severity = re.search(r'"severity"\s*:\s*"([^"]+)"', block, re.IGNORECASE)
            if severity:
                fields["severity"] = severity.group(1)
            violations = re.search(r'"violations"\s*:\s*\[([^\]]*)\]', block, re.IGNORECASE)
            if violations:
                fields["violations"] = re.findall(r'"((?:[^"\\]|\\.)*)"', violations.group(1))
            explanation = re.search(r'"explanation"\s*:\s*"((?:[^"\\]|\\.)*)"', block, re.IGNORECASE)
            if explanation:
                fields["explanation"] = explanation.group(1).replace('\\"', '"').replace("\\\\", "\\")

            try:
                recovered[key] = RawCategoryScore.model_validate(fields)
            except ValidationError as e:
                logger.warning(f"Discarding malformed fragment for {key}: {e.error_count()} error(s)")
        return recovered

    return extract


def build_batch_prompt(content: str, keys: List[str], context_hints: Optional[Dict[str, Any]] = None) -> str:
    category_lines = "\n".join(f"- {key}: {category_description(key)}" for key in keys)
    hints = context_hints or {}
    context_lines = "\n".join(f"{k}: {v}" for k, v in hints.items() if v not in (None, ""))

    return f"""Analyze the following content for platform policy risk in every category listed below.

CATEGORIES:
{category_lines}

CONTENT CONTEXT:
{context_lines or 'Not available'}

CONTENT:
{content}

Return ONLY a JSON object of the form:
{{"categories": {{"CATEGORY_KEY": {{"risk_score": 0-100, "confidence": 0-100, "violations": ["..."], "severity": "LOW|MEDIUM|HIGH", "explanation": "..."}}}}}}
Include every category key exactly as listed. Use a 0-100 scale for risk_score and confidence.
Escape any double quotes inside string values."""


class BatchCategoryAnalyzer:
    """
    Score all taxonomy categories with a single batch request.

    Usage:
        analyzer = BatchCategoryAnalyzer(orchestrator)
        results = analyzer.analyze_categories(text, {"content_type": "Gaming"})
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        taxonomy: Optional[List[str]] = None,
        max_retries: int = MAX_BATCH_RETRIES,
        retry_delay: float = BATCH_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.orchestrator = orchestrator
        self.taxonomy = list(taxonomy) if taxonomy is not None else list(DEFAULT_TAXONOMY)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.extractor = ExtractionPipeline(label="batch category analysis")
        self.last_outcome: Optional[ParseOutcome] = None

    def analyze_categories(
        self,
        content: str,
        context_hints: Optional[Dict[str, Any]] = None,
        video_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, CategoryResult]:
        """
        Analyze content against every taxonomy category.

        Returns:
            Dict keyed by every taxonomy key, in taxonomy order

        Raises:
            ProviderError: a provider failed fatally
            ProviderChainExhausted: providers stayed unavailable through all batch retries
        """
        prompt = build_batch_prompt(content, self.taxonomy, context_hints)
        fragment_extractor = make_category_fragment_extractor(self.taxonomy)
        capability = MULTIMODAL if video_path else TEXT
        recovered: Dict[str, RawCategoryScore] = {}

        for attempt in range(self.max_retries + 1):
            if attempt:
                logger.info(f"Retrying batch analysis ({attempt}/{self.max_retries}) after {self.retry_delay}s")
                self._sleep(self.retry_delay)

            try:
                response = self.orchestrator.run(
                    capability,
                    prompt,
                    media_ref=video_path,
                    aux_text=content if video_path else None,
                    metadata=metadata,
                )
            except ProviderChainExhausted as e:
                logger.warning(f"Batch attempt {attempt + 1} failed, providers exhausted: {e}")
                if attempt == self.max_retries:
                    raise
                continue

            outcome = self.extractor.parse(response, BatchAnalysis, fragment_extractor=fragment_extractor)
            self.last_outcome = outcome
            if outcome.success:
                items = outcome.data.categories if isinstance(outcome.data, BatchAnalysis) else outcome.data
                recovered = self._select_taxonomy_keys(items)
                logger.info(
                    f"Batch analysis parsed via {outcome.strategy}: "
                    f"{len(recovered)}/{len(self.taxonomy)} categories"
                )
                break

            logger.warning(f"Batch attempt {attempt + 1} produced unparseable output: {outcome.error}")
        else:
            logger.error("Batch analysis failed after all retries; using default results")

        return self._complete(recovered)

    def _select_taxonomy_keys(self, items: Dict[str, RawCategoryScore]) -> Dict[str, RawCategoryScore]:
        lookup = {key.lower(): key for key in self.taxonomy}
        selected = {}
        for key, value in items.items():
            canonical = lookup.get(str(key).strip().lower())
            if canonical is None:
                logger.debug(f"Dropping unknown category from response: {key}")
                continue
            selected[canonical] = value
        return selected

    def _complete(self, recovered: Dict[str, RawCategoryScore]) -> Dict[str, CategoryResult]:
        keys = list(recovered)
        risk_scores = normalize_scores(recovered[k].risk_score for k in keys)
        confidences = normalize_scores(recovered[k].confidence for k in keys)

        normalized = {}
        for key, risk, confidence in zip(keys, risk_scores, confidences):
            raw = recovered[key]
            normalized[key] = CategoryResult(
                risk_score=risk,
                confidence=confidence,
                violations=raw.violations,
                severity=raw.severity or severity_from_score(risk),
                explanation=raw.explanation or (DEFAULT_EXPLANATION if risk == 0 else MISSING_EXPLANATION),
            )

        missing = [k for k in self.taxonomy if k not in normalized]
        if missing:
            logger.info(f"Filling {len(missing)} missing categories with defaults")

        return {key: normalized.get(key) or CategoryResult.default() for key in self.taxonomy}
