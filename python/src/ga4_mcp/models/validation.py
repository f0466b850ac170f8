"""
Data models for GTM → GA4 parameter validation.

Models serialize with camelCase aliases (eventName, notCollected, apiCalls, ...)
and accept either camelCase or snake_case on input.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..core.config import settings


class CamelModel(BaseModel):
    """Base model with camelCase wire names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GTMEventConfig(CamelModel):
    """An event and the parameter names GTM sends with it."""

    event_name: str = Field(..., description="GA4 event name (e.g., 'purchase')")
    parameters: List[str] = Field(default_factory=list, description="Event parameter names")

    @field_validator("parameters")
    @classmethod
    def dedupe_parameters(cls, v: List[str]) -> List[str]:
        """Drop duplicate parameter names, keeping first-seen order."""
        return list(dict.fromkeys(v))


class DateRange(CamelModel):
    """Date range for the per-parameter report queries."""

    start_date: str = Field(default_factory=lambda: settings.GA4_DEFAULT_START_DATE)
    end_date: str = Field(default_factory=lambda: settings.GA4_DEFAULT_END_DATE)


class ValidationStatus(str, Enum):
    """Verdict for one (event, parameter) pairing."""
    COLLECTED = "collected"
    NOT_COLLECTED = "not_collected"
    NOT_REGISTERED = "not_registered"


class ValidationResult(CamelModel):
    """Verdict for one (event, parameter) pairing."""

    event_name: str
    parameter: str
    status: ValidationStatus
    count: Optional[int] = None
    message: str


class ValidationSummary(CamelModel):
    """Aggregate outcome of a validation run."""

    total_events: int = 0
    total_parameters: int = 0
    collected: int = 0
    not_collected: int = 0
    not_registered: int = 0
    details: List[ValidationResult] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    api_calls: int = 0
    failed_parameters: List[str] = Field(
        default_factory=list,
        description="Registered parameters whose report query failed; their pairings read as not_collected",
    )
