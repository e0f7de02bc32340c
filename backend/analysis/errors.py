"""
Error types shared by the provider layer, the orchestrator and the worker.

Provider failures carry an explicit category so the orchestrator can branch
on it instead of matching error strings.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    OVERLOADED = "OVERLOADED"
    CAPABILITY_MISMATCH = "CAPABILITY_MISMATCH"
    FATAL = "FATAL"


TRANSIENT_CATEGORIES = frozenset({ErrorCategory.RATE_LIMITED, ErrorCategory.OVERLOADED})


class ProviderError(Exception):
    """An error raised by (or on behalf of) a single provider call."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.FATAL,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.category = category
        self.provider = provider
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.category in TRANSIENT_CATEGORIES

    def __str__(self) -> str:
        base = super().__str__()
        if self.provider:
            return f"[{self.provider}] {base}"
        return base


class ProviderChainExhausted(ProviderError):
    """Every provider in the chain failed with a transient error."""

    def __init__(self, message: str, last_error: Optional[ProviderError] = None):
        category = last_error.category if last_error else ErrorCategory.OVERLOADED
        super().__init__(message, category=category)
        self.last_error = last_error


class ExtractionError(ValueError):
    """No extraction strategy produced usable data."""


class JobFatalError(RuntimeError):
    """The job cannot proceed (e.g. no content could be acquired)."""


# Substrings observed in provider SDK errors. Checked against the lowercased
# exception text and class name.
_RATE_LIMIT_MARKERS = ("429", "resourceexhausted", "resource_exhausted", "too many requests", "rate limit", "ratelimit")
_OVERLOAD_MARKERS = (
    "503",
    "529",
    "overloaded",
    "serviceunavailable",
    "service unavailable",
    "unavailable",
    "deadlineexceeded",
    "deadline_exceeded",
    "temporarily",
)


def _read_status_code(exc: BaseException) -> Optional[int]:
    for key in ("status_code", "status", "code", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
    return None


def classify_provider_exception(exc: BaseException) -> ErrorCategory:
    """Map an arbitrary SDK exception to a coarse error category."""
    if isinstance(exc, ProviderError):
        return exc.category

    status_code = _read_status_code(exc)
    if status_code == 429:
        return ErrorCategory.RATE_LIMITED
    if status_code in (500, 502, 503, 504, 529):
        return ErrorCategory.OVERLOADED

    text = f"{exc.__class__.__name__} {exc}".lower()
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorCategory.RATE_LIMITED
    if any(marker in text for marker in _OVERLOAD_MARKERS):
        return ErrorCategory.OVERLOADED
    return ErrorCategory.FATAL


def wrap_provider_exception(exc: BaseException, provider: str) -> ProviderError:
    """Wrap an SDK exception in a ProviderError tagged with its category."""
    if isinstance(exc, ProviderError):
        if exc.provider is None:
            exc.provider = provider
        return exc
    return ProviderError(
        str(exc) or exc.__class__.__name__,
        category=classify_provider_exception(exc),
        provider=provider,
        status_code=_read_status_code(exc),
    )
