"""
Fallback orchestrator.

Walks an ordered provider chain per capability. Transient failures are retried
on the same provider with exponential backoff, then the next provider is tried.
Multi-modal requests degrade to the text chain with a flattened prompt.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .errors import ErrorCategory, ProviderChainExhausted, ProviderError, wrap_provider_exception
from .providers import ProviderAdapter, flatten_multimodal_prompt
from .rate_governor import RateGovernor, estimate_tokens

logger = logging.getLogger(__name__)

TEXT = "text"
MULTIMODAL = "multimodal"

MAX_ATTEMPTS_PER_PROVIDER = 3


class FallbackOrchestrator:
    """
    Run a prompt through the provider chain for a capability.

    Usage:
        orchestrator = FallbackOrchestrator(providers, governor)
        text = orchestrator.run("text", prompt)
        text = orchestrator.run("multimodal", prompt, media_ref="/tmp/v.mp4", aux_text=transcript)
    """

    def __init__(
        self,
        providers: List[ProviderAdapter],
        governor: Optional[RateGovernor] = None,
        max_attempts: int = MAX_ATTEMPTS_PER_PROVIDER,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not providers:
            raise ValueError("FallbackOrchestrator needs at least one provider")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.providers = list(providers)
        self.governor = governor or RateGovernor()
        self.max_attempts = max_attempts
        self._sleep = sleep

    def chain_for(self, capability: str) -> List[ProviderAdapter]:
        if capability == MULTIMODAL:
            return [p for p in self.providers if p.supports_multimodal]
        if capability == TEXT:
            return list(self.providers)
        raise ValueError(f"Unknown capability: {capability}")

    def run(
        self,
        capability: str,
        prompt: str,
        media_ref: Optional[str] = None,
        aux_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Execute the request, falling back across providers.

        Args:
            capability: "text" or "multimodal"
            prompt: Prompt text
            media_ref: Path to the video (multimodal only)
            aux_text: Transcript or other supporting text
            metadata: Content metadata

        Returns:
            Raw response text from the first provider that succeeded

        Raises:
            ProviderError: a provider failed with a FATAL error
            ProviderChainExhausted: every provider failed transiently
        """
        if capability not in (TEXT, MULTIMODAL):
            raise ValueError(f"Unknown capability: {capability}")

        exhausted: List[str] = []
        last_error: Optional[ProviderError] = None

        if capability == MULTIMODAL and media_ref:
            estimated = estimate_tokens(prompt) + estimate_tokens(aux_text)
            for provider in self.chain_for(MULTIMODAL):
                try:
                    return self._call_with_retries(
                        provider,
                        lambda p=provider: p.generate_multimodal_content(prompt, media_ref, aux_text, metadata),
                        estimated,
                    )
                except ProviderError as e:
                    last_error = e
                    if e.category == ErrorCategory.CAPABILITY_MISMATCH:
                        logger.warning(f"{provider.name} cannot take multi-modal input: {e}")
                        break
                    if not e.is_transient:
                        raise
                    exhausted.append(provider.name)
                    logger.warning(f"Multi-modal provider {provider.name} exhausted, trying next")

            logger.info("Degrading multi-modal request to text-only chain")
            prompt = flatten_multimodal_prompt(prompt, aux_text, metadata)
        elif capability == MULTIMODAL:
            prompt = flatten_multimodal_prompt(prompt, aux_text, metadata)

        estimated = estimate_tokens(prompt)
        for provider in self.chain_for(TEXT):
            if provider.name in exhausted:
                continue
            try:
                return self._call_with_retries(
                    provider,
                    lambda p=provider: p.generate_content(prompt),
                    estimated,
                )
            except ProviderError as e:
                last_error = e
                if e.category == ErrorCategory.FATAL:
                    raise
                exhausted.append(provider.name)
                logger.warning(f"Provider {provider.name} failed ({e.category.value}), falling back")

        logger.error(f"All providers failed: {exhausted}")
        raise ProviderChainExhausted(
            f"All providers failed ({', '.join(exhausted) or 'none available'})",
            last_error=last_error,
        )

    def _call_with_retries(self, provider: ProviderAdapter, call, estimated_tokens: int) -> str:
        """Call one provider, retrying transient errors with 1s/2s/4s backoff."""
        for attempt in range(self.max_attempts):
            self.governor.acquire(provider.name, estimated_tokens)
            try:
                result = call()
                if attempt:
                    logger.info(f"{provider.name} succeeded on attempt {attempt + 1}")
                return result
            except Exception as e:
                error = wrap_provider_exception(e, provider.name)
                if not error.is_transient:
                    if error is e:
                        raise
                    raise error from e

                delay = 2 ** attempt
                logger.warning(
                    f"{provider.name} attempt {attempt + 1}/{self.max_attempts} "
                    f"{error.category.value}: {e}. Backing off {delay}s"
                )
                self._sleep(delay)
                last = error

        raise last


def build_orchestrator(config: dict, providers: Optional[List[ProviderAdapter]] = None) -> FallbackOrchestrator:
    """Build the process-wide orchestrator and its rate governor from configuration."""
    if providers is None:
        from .llm_client import build_providers
        providers = build_providers(config)

    governor = RateGovernor(
        max_requests=int(config.get('RATE_LIMIT_MAX_REQUESTS', 80)),
        window_seconds=float(config.get('RATE_LIMIT_WINDOW_SECONDS', 60)),
        token_limit=int(config.get('TOKEN_LIMIT_PER_MINUTE', 250_000)),
        warning_threshold=float(config.get('TOKEN_WARNING_THRESHOLD', 0.8)),
    )
    return FallbackOrchestrator(providers, governor)
