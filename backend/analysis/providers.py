"""
Provider abstraction.

Every provider exposes generate_content(); providers that can look at video
also implement generate_multimodal_content() and set supports_multimodal.
"""

import json
import logging
from typing import Any, Dict, Optional

from .errors import ErrorCategory, ProviderError

logger = logging.getLogger(__name__)


class ProviderAdapter:
    """Base class for provider adapters."""

    name: str = "provider"
    supports_multimodal: bool = False

    def generate_content(self, prompt: str) -> str:
        raise NotImplementedError

    def generate_multimodal_content(
        self,
        prompt: str,
        media_ref: str,
        aux_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        raise ProviderError(
            f"Provider {self.name} does not support multi-modal content",
            category=ErrorCategory.CAPABILITY_MISMATCH,
            provider=self.name,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} multimodal={self.supports_multimodal}>"


class CallableProvider(ProviderAdapter):
    """
    Adapter around plain callables.

    Useful for wiring custom backends (and test doubles) without subclassing.
    """

    def __init__(self, name: str, text_fn, multimodal_fn=None):
        self.name = name
        self._text_fn = text_fn
        self._multimodal_fn = multimodal_fn
        self.supports_multimodal = multimodal_fn is not None

    def generate_content(self, prompt: str) -> str:
        return self._text_fn(prompt)

    def generate_multimodal_content(self, prompt, media_ref, aux_text=None, metadata=None) -> str:
        if self._multimodal_fn is None:
            return super().generate_multimodal_content(prompt, media_ref, aux_text, metadata)
        return self._multimodal_fn(prompt, media_ref, aux_text, metadata)


def flatten_multimodal_prompt(
    prompt: str,
    aux_text: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Collapse multi-modal inputs into a single text prompt for text-only providers."""
    parts = [prompt]
    if aux_text:
        parts.append(f"Transcript: {aux_text}")
    if metadata:
        parts.append(f"Metadata: {json.dumps(metadata, ensure_ascii=False, default=str)}")
    return "\n\n".join(parts)
