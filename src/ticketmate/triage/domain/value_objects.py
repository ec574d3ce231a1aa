"""
Triage Value Objects
====================

Triage configuration loaded from YAML.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ticketmate.config import Priority, VALID_PRIORITIES
from ticketmate.triage.domain.entities import Classification

DEFAULT_REPLY_SUGGESTIONS = [
    "Thank you for contacting support. I've received your ticket and will investigate this issue promptly.",
    "I understand your concern. Let me look into this matter and provide you with a solution as soon as possible.",
    "Your ticket has been assigned to me. I'm currently reviewing the details and will respond with next steps shortly.",
]


class FallbackClassification(BaseModel):
    """Classification stored when the classifier gives no usable answer."""
    priority: str = Field(default=Priority.MEDIUM)
    helpful_notes: str = Field(default="AI analysis failed - requires manual review")
    related_skills: List[str] = Field(default_factory=list)
    reply_suggestions: List[str] = Field(default_factory=lambda: list(DEFAULT_REPLY_SUGGESTIONS))

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        if v not in VALID_PRIORITIES:
            raise ValueError(f"priority must be one of {VALID_PRIORITIES}")
        return v

    @field_validator("related_skills")
    @classmethod
    def validate_related_skills(cls, v: List[str]) -> List[str]:
        if v:
            raise ValueError("fallback classification carries no related skills")
        return v

    @field_validator("reply_suggestions")
    @classmethod
    def validate_reply_suggestions(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one fallback reply suggestion is required")
        return v

    def to_classification(self) -> Classification:
        return Classification(
            priority=self.priority,
            helpful_notes=self.helpful_notes,
            related_skills=list(self.related_skills),
            reply_suggestions=list(self.reply_suggestions),
            is_fallback=True,
        )


class AnalysisSettings(BaseModel):
    """Per-call overrides for the classifier request."""
    temperature: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(default=None, ge=1, le=8000)
    extra_instructions: str = Field(default="", description="Appended to the analysis prompt")


class TriageConfig(BaseModel):
    """
    Triage configuration loaded from YAML.

    This is a value object - replaced wholesale on reload.
    """
    fallback: FallbackClassification = Field(default_factory=FallbackClassification)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
