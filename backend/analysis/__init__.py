from .errors import (
    ErrorCategory,
    ProviderError,
    ProviderChainExhausted,
    ExtractionError,
    JobFatalError,
)
from .rate_governor import RateGovernor
from .providers import ProviderAdapter, CallableProvider
from .orchestrator import FallbackOrchestrator, build_orchestrator
from .json_extraction import ExtractionPipeline, ParseOutcome
from .category_analyzer import BatchCategoryAnalyzer, normalize_scores
from .context_classifier import ContextClassifier
from .risk_assessment import RiskAssessor
from .suggestions import SuggestionGenerator
from .pipeline import AnalysisPipeline

__all__ = [
    'ErrorCategory',
    'ProviderError',
    'ProviderChainExhausted',
    'ExtractionError',
    'JobFatalError',
    'RateGovernor',
    'ProviderAdapter',
    'CallableProvider',
    'FallbackOrchestrator',
    'build_orchestrator',
    'ExtractionPipeline',
    'ParseOutcome',
    'BatchCategoryAnalyzer',
    'normalize_scores',
    'ContextClassifier',
    'RiskAssessor',
    'SuggestionGenerator',
    'AnalysisPipeline',
]
