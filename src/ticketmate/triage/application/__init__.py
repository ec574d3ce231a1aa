"""
Triage Application Layer
========================

Classifier service and the `on-ticket-created` workflow handler.
"""

from ticketmate.triage.application.services import (
    ASSIGNMENT_SUBJECT,
    ClassificationService,
    ITriageConfigProvider,
    TriageWorkflow,
    build_assignment_email,
)

__all__ = [
    "ASSIGNMENT_SUBJECT",
    "ClassificationService",
    "ITriageConfigProvider",
    "TriageWorkflow",
    "build_assignment_email",
]
