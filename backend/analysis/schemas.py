"""
Pydantic models for model output and analysis results.

Raw* models accept what providers actually return (floats, numeric strings,
a single violation string, lowercase severities). Normalized models are what
gets stored.
"""

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

SEVERITIES = ("LOW", "MEDIUM", "HIGH")
Severity = Literal["LOW", "MEDIUM", "HIGH"]

DEFAULT_EXPLANATION = "No issues detected for this category."

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def _coerce_number(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            return float(match.group())
    raise ValueError(f"not a number: {value!r}")


def severity_from_score(score: float) -> str:
    if score >= 70:
        return "HIGH"
    if score >= 30:
        return "MEDIUM"
    return "LOW"


class RawCategoryScore(BaseModel):
    """One category entry as returned by a provider, before normalization."""

    risk_score: float = Field(0.0, validation_alias=AliasChoices("risk_score", "riskScore", "score"))
    confidence: float = 0.0
    violations: List[str] = Field(default_factory=list)
    severity: Optional[str] = None
    explanation: str = ""

    @field_validator("risk_score", "confidence", mode="before")
    @classmethod
    def _numbers(cls, value):
        return _coerce_number(value)

    @field_validator("violations", mode="before")
    @classmethod
    def _violations(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value if v is not None and str(v).strip()]
        return [str(value)]

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value):
        if not isinstance(value, str):
            return None
        value = value.strip().upper()
        return value if value in SEVERITIES else None

    @field_validator("explanation", mode="before")
    @classmethod
    def _explanation(cls, value):
        return "" if value is None else str(value)


def _reshape_batch(data):
    if isinstance(data, list):
        items = {}
        for item in data:
            if isinstance(item, dict) and isinstance(item.get("category"), str):
                items[item["category"]] = {k: v for k, v in item.items() if k != "category"}
        return {"categories": items}

    if isinstance(data, dict):
        categories = data.get("categories")
        if isinstance(categories, dict):
            return {"categories": {k: v for k, v in categories.items() if isinstance(v, dict)}}
        if isinstance(categories, list):
            return _reshape_batch(categories)
        return {"categories": {k: v for k, v in data.items() if isinstance(v, dict)}}

    return data


class BatchAnalysis(BaseModel):
    """
    Batch response covering many categories.

    Accepts {"categories": {KEY: {...}}}, a bare {KEY: {...}} object, or a
    list of {"category": KEY, ...} items.
    """

    categories: Dict[str, RawCategoryScore]

    @model_validator(mode="before")
    @classmethod
    def _reshape(cls, data):
        return _reshape_batch(data)

    @model_validator(mode="after")
    def _not_empty(self):
        if not self.categories:
            raise ValueError("no category entries found")
        return self


class CategoryResult(BaseModel):
    """Normalized per-category result."""

    risk_score: int = Field(0, ge=0, le=100)
    confidence: int = Field(0, ge=0, le=100)
    violations: List[str] = Field(default_factory=list)
    severity: Severity = "LOW"
    explanation: str = DEFAULT_EXPLANATION

    @classmethod
    def default(cls) -> "CategoryResult":
        return cls(
            risk_score=0,
            confidence=0,
            violations=[],
            severity="LOW",
            explanation=DEFAULT_EXPLANATION,
        )


class ContextClassification(BaseModel):
    content_type: str = "General"
    target_audience: str = "General Audience"
    monetization_impact: int = Field(0, ge=0, le=100)
    content_length: int = Field(0, ge=0)
    language_detected: str = "English"

    @field_validator("monetization_impact", mode="before")
    @classmethod
    def _impact(cls, value):
        return max(0, min(int(round(_coerce_number(value))), 100))

    @field_validator("content_length", mode="before")
    @classmethod
    def _length(cls, value):
        return max(0, int(round(_coerce_number(value))))

    @field_validator("content_type", "target_audience", "language_detected", mode="before")
    @classmethod
    def _strings(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("empty value")
        return str(value).strip()


def _string_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


class RiskAssessment(BaseModel):
    """Risk assessment for one piece (or chunk) of content, as returned by a provider."""

    overall_risk_score: int = Field(0, ge=0, le=100)
    flagged_section: str = ""
    risk_factors: List[str] = Field(default_factory=list)
    severity_level: Severity = "LOW"
    risky_phrases_by_category: Dict[str, List[str]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _severity_default(cls, data):
        if isinstance(data, dict):
            if not any(name in data for name in cls.model_fields):
                raise ValueError("no risk assessment fields found")
            severity = data.get("severity_level")
            if not isinstance(severity, str) or severity.strip().upper() not in SEVERITIES:
                data = dict(data)
                data["severity_level"] = severity_from_score(_coerce_number(data.get("overall_risk_score")))
        return data

    @field_validator("overall_risk_score", mode="before")
    @classmethod
    def _score(cls, value):
        return max(0, min(int(round(_coerce_number(value))), 100))

    @field_validator("flagged_section", mode="before")
    @classmethod
    def _section(cls, value):
        return "" if value is None else str(value)

    @field_validator("risk_factors", mode="before")
    @classmethod
    def _factors(cls, value):
        return _string_list(value)

    @field_validator("severity_level", mode="before")
    @classmethod
    def _severity(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("risky_phrases_by_category", mode="before")
    @classmethod
    def _phrases(cls, value):
        if not isinstance(value, dict):
            return {}
        return {str(k): _string_list(v) for k, v in value.items()}


class RiskFindings(BaseModel):
    """Merged risk assessment across all chunks, after false-positive filtering."""

    overall_risk_score: int = 0
    flagged_section: str = ""
    risk_factors: List[str] = Field(default_factory=list)
    severity_level: Severity = "LOW"
    risky_phrases: List[str] = Field(default_factory=list)
    risky_phrases_by_category: Dict[str, List[str]] = Field(default_factory=dict)


class Suggestion(BaseModel):
    title: str
    text: str = Field(validation_alias=AliasChoices("text", "description", "suggestion"))
    priority: Severity = "MEDIUM"
    impact_score: int = Field(50, ge=0, le=100)

    @field_validator("title", "text", mode="before")
    @classmethod
    def _strings(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("empty value")
        return str(value).strip()

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        if not isinstance(value, str):
            return "MEDIUM"
        value = value.strip().upper()
        return value if value in SEVERITIES else "MEDIUM"

    @field_validator("impact_score", mode="before")
    @classmethod
    def _impact(cls, value):
        return max(0, min(int(round(_coerce_number(value))), 100))


def _usable_suggestion(item) -> bool:
    if not isinstance(item, dict):
        return False
    text = item.get("text") or item.get("description") or item.get("suggestion")
    return all(isinstance(v, str) and v.strip() for v in (item.get("title"), text))


class SuggestionList(BaseModel):
    """Accepts {"suggestions": [...]} or a bare list; unusable items are dropped."""

    suggestions: List[Suggestion]

    @model_validator(mode="before")
    @classmethod
    def _reshape(cls, data):
        if isinstance(data, list):
            data = {"suggestions": data}
        if isinstance(data, dict) and isinstance(data.get("suggestions"), list):
            return {"suggestions": [item for item in data["suggestions"] if _usable_suggestion(item)]}
        return data

    @model_validator(mode="after")
    def _not_empty(self):
        if not self.suggestions:
            raise ValueError("no suggestions found")
        return self
