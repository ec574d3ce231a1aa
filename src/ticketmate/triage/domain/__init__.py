"""
Triage Domain Layer
===================

Contains pure Python business logic for ticket triage:
- Classifier prompt and answer parsing
- Fallback configuration
- Moderator selection rule
"""

from ticketmate.triage.domain.entities import (
    Classification,
    ClassificationPromptBuilder,
    extract_json,
    validate_classification,
)
from ticketmate.triage.domain.selection import select_moderator
from ticketmate.triage.domain.value_objects import (
    DEFAULT_REPLY_SUGGESTIONS,
    AnalysisSettings,
    FallbackClassification,
    TriageConfig,
)

__all__ = [
    "Classification",
    "ClassificationPromptBuilder",
    "extract_json",
    "validate_classification",
    "select_moderator",
    "DEFAULT_REPLY_SUGGESTIONS",
    "AnalysisSettings",
    "FallbackClassification",
    "TriageConfig",
]
