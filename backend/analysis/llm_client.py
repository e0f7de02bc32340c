"""
LLM client adapters for Google Gemini and Anthropic Claude.

Uses the google.genai package for Gemini and the anthropic SDK for Claude.
Provides:
- Unified client initialization
- Single-attempt calls with errors mapped to provider error categories
  (retries and fallback are owned by the orchestrator)
- Token usage tracking
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from .errors import ErrorCategory, ProviderError, wrap_provider_exception
from .providers import ProviderAdapter

logger = logging.getLogger(__name__)

VIDEO_MIME_TYPE = "video/mp4"

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class TokenUsageMixin:
    """Cumulative and last-call token counters."""

    def _init_usage(self):
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_tokens = 0
        self._last_usage = {}

    def _record_usage(self, input_tokens: int, output_tokens: int, total_tokens: Optional[int] = None):
        input_tokens = input_tokens or 0
        output_tokens = output_tokens or 0
        if total_tokens is None:
            total_tokens = input_tokens + output_tokens

        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.total_tokens += total_tokens
        self._last_usage = {
            'input_tokens': input_tokens,
            'output_tokens': output_tokens,
            'total_tokens': total_tokens,
        }
        logger.debug(f"Token usage: {input_tokens} input, {output_tokens} output, {total_tokens} total")

    def get_token_usage(self) -> Dict[str, int]:
        """
        Get cumulative token usage statistics.

        Returns:
            Dictionary with total_input_tokens, total_output_tokens, total_tokens
        """
        return {
            'total_input_tokens': self.total_input_tokens,
            'total_output_tokens': self.total_output_tokens,
            'total_tokens': self.total_tokens,
        }

    def get_last_usage(self) -> Dict[str, int]:
        """Get token usage from the last API call."""
        return self._last_usage.copy()

    def reset_usage(self):
        """Reset token usage counters."""
        self._init_usage()


class GeminiClient(TokenUsageMixin, ProviderAdapter):
    """
    Gemini provider with video support.

    Handles:
    - Client initialization with API key
    - Model configuration (temperature, max tokens, safety settings)
    - Inline video upload for multi-modal prompts
    - Token usage tracking
    """

    supports_multimodal = True

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.0-flash",
        temperature: float = 0.0,
        top_p: float = 0.8,
        top_k: int = 40,
        max_output_tokens: int = 8192,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Google AI API key
            model_name: Model to use
            temperature: Sampling temperature (0.0-1.0)
            top_p: Nucleus sampling parameter
            top_k: Top-k sampling parameter
            max_output_tokens: Maximum tokens in response
        """
        self.client = genai.Client(api_key=api_key)
        self.model_name = model_name
        self.name = model_name

        self.generation_config = types.GenerateContentConfig(
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            max_output_tokens=max_output_tokens,
            safety_settings=[
                types.SafetySetting(category=category, threshold="BLOCK_NONE")
                for category in _SAFETY_CATEGORIES
            ],
        )

        self._init_usage()
        logger.info(f"Initialized GeminiClient with model: {model_name}")

    def generate_content(self, prompt: str) -> str:
        contents = [types.Content(role="user", parts=[types.Part(text=prompt)])]
        return self._call(contents)

    def generate_multimodal_content(
        self,
        prompt: str,
        media_ref: str,
        aux_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        video_path = Path(media_ref)
        if not video_path.is_file():
            raise ProviderError(
                f"Video file not available: {media_ref}",
                category=ErrorCategory.CAPABILITY_MISMATCH,
                provider=self.name,
            )

        parts = [
            types.Part(text=prompt),
            types.Part.from_bytes(data=video_path.read_bytes(), mime_type=VIDEO_MIME_TYPE),
        ]
        if aux_text:
            parts.append(types.Part(text=f"\n\nTranscript:\n{aux_text}"))
        if metadata:
            parts.append(types.Part(
                text=f"\n\nVideo Metadata:\nTitle: {metadata.get('title', '')}\n"
                     f"Description: {metadata.get('description', '')}"
            ))

        return self._call([types.Content(role="user", parts=parts)])

    def _call(self, contents) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=self.generation_config,
            )
        except Exception as e:
            error = wrap_provider_exception(e, self.name)
            if error.is_transient:
                logger.warning(f"Transient Gemini error ({error.category.value}): {e}")
            else:
                logger.error(f"Gemini API error: {e}")
            raise error from e

        usage = getattr(response, 'usage_metadata', None)
        if usage is not None:
            self._record_usage(
                getattr(usage, 'prompt_token_count', 0),
                getattr(usage, 'candidates_token_count', 0),
                getattr(usage, 'total_token_count', None),
            )

        text = response.text
        if not text:
            raise ProviderError("Empty response from Gemini", category=ErrorCategory.FATAL, provider=self.name)
        return text


class ClaudeClient(TokenUsageMixin, ProviderAdapter):
    """Text-only Claude provider used as the last link of the chain."""

    supports_multimodal = False

    def __init__(
        self,
        api_key: str,
        model_name: str = "claude-3-haiku-20240307",
        max_tokens: int = 4000,
        temperature: float = 0.0,
    ):
        # Imported lazily so the Gemini-only setup does not need the SDK configured
        import anthropic

        self.client = anthropic.Anthropic(api_key=api_key)
        self.model_name = model_name
        self.name = model_name
        self.max_tokens = max_tokens
        self.temperature = temperature

        self._init_usage()
        logger.info(f"Initialized ClaudeClient with model: {model_name}")

    def generate_content(self, prompt: str) -> str:
        try:
            message = self.client.messages.create(
                model=self.model_name,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            error = wrap_provider_exception(e, self.name)
            logger.warning(f"Claude API error ({error.category.value}): {e}")
            raise error from e

        usage = getattr(message, 'usage', None)
        if usage is not None:
            self._record_usage(getattr(usage, 'input_tokens', 0), getattr(usage, 'output_tokens', 0))

        return "".join(
            block.text for block in message.content
            if getattr(block, 'type', None) == 'text' and isinstance(getattr(block, 'text', None), str)
        )


def build_providers(config: dict) -> list:
    """
    Build the ordered provider chain from configuration.

    Order: primary Gemini, fallback Gemini, Claude (text only). Providers
    without an API key are skipped.
    """
    providers = []

    google_key = config.get('GOOGLE_API_KEY')
    if google_key:
        primary = config.get('GEMINI_MODEL', 'gemini-2.0-flash')
        fallback = config.get('GEMINI_FALLBACK_MODEL', 'gemini-1.5-pro')
        for model_name in dict.fromkeys([primary, fallback]):
            providers.append(GeminiClient(
                api_key=google_key,
                model_name=model_name,
                temperature=float(config.get('GEMINI_TEMPERATURE', 0.0)),
                max_output_tokens=int(config.get('GEMINI_MAX_TOKENS', 8192)),
            ))

    anthropic_key = config.get('ANTHROPIC_API_KEY')
    if anthropic_key:
        providers.append(ClaudeClient(
            api_key=anthropic_key,
            model_name=config.get('CLAUDE_MODEL', 'claude-3-haiku-20240307'),
        ))

    if not providers:
        raise ValueError(
            "No AI API keys available. Set GOOGLE_API_KEY or ANTHROPIC_API_KEY in the environment."
        )

    logger.info(f"Provider chain: {[p.name for p in providers]}")
    return providers
