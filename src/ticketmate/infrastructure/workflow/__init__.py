"""
Workflow Infrastructure
=======================

Durable background execution of event-triggered functions: engine, run
models, APScheduler poller and the HTTP surface.
"""

from ticketmate.infrastructure.workflow.engine import (
    Event,
    EventPublisher,
    NonRetriableError,
    RunContext,
    Step,
    WorkflowEngine,
    WorkflowFunction,
)
from ticketmate.infrastructure.workflow.models import (
    RunStatus,
    WorkflowRunModel,
    WorkflowStepModel,
)
from ticketmate.infrastructure.workflow.scheduler import WorkflowScheduler

__all__ = [
    "Event",
    "EventPublisher",
    "NonRetriableError",
    "RunContext",
    "Step",
    "WorkflowEngine",
    "WorkflowFunction",
    "RunStatus",
    "WorkflowRunModel",
    "WorkflowStepModel",
    "WorkflowScheduler",
]
