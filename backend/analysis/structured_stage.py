"""
Shared request loop for the auxiliary analysis stages (risk assessment,
suggestions).

Unlike category scoring, these stages never fail a job: after the retries
are spent the caller substitutes a safe default. Fatal provider errors still
propagate.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel

from .errors import ProviderChainExhausted
from .json_extraction import ExtractionPipeline, ParseOutcome
from .orchestrator import TEXT, FallbackOrchestrator

logger = logging.getLogger(__name__)

MAX_STAGE_RETRIES = 2
STAGE_RETRY_DELAY = 1.0


class StructuredStage:
    """Ask the orchestrator for JSON matching a schema, with a bounded retry."""

    label = "structured response"
    schema: Type[BaseModel]

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        max_retries: int = MAX_STAGE_RETRIES,
        retry_delay: float = STAGE_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.orchestrator = orchestrator
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.extractor = ExtractionPipeline(label=self.label)
        self.last_outcome: Optional[ParseOutcome] = None

    def request(self, prompt: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[BaseModel]:
        """
        Returns:
            The validated model, or None once every attempt failed
        """
        for attempt in range(self.max_retries + 1):
            if attempt:
                logger.info(f"Retrying {self.label} ({attempt}/{self.max_retries}) after {self.retry_delay}s")
                self._sleep(self.retry_delay)

            try:
                response = self.orchestrator.run(TEXT, prompt, metadata=metadata)
            except ProviderChainExhausted as e:
                logger.warning(f"{self.label} attempt {attempt + 1} failed, providers exhausted: {e}")
                continue

            outcome = self.extractor.parse(response, self.schema)
            self.last_outcome = outcome
            if outcome.success:
                return outcome.data
            logger.warning(f"{self.label} attempt {attempt + 1} produced unparseable output: {outcome.error}")

        logger.error(f"{self.label} failed after {self.max_retries + 1} attempts; using defaults")
        return None
