"""
Triage Workflow Functions
=========================

Registers the triage handler on the workflow engine.
"""

from ticketmate.config import EventName
from ticketmate.infrastructure.workflow import WorkflowEngine, WorkflowFunction
from ticketmate.triage.application import TriageWorkflow

ON_TICKET_CREATED = "on-ticket-created"


def register_triage_functions(engine: WorkflowEngine, workflow: TriageWorkflow) -> WorkflowFunction:
    """
    `on-ticket-created`: up to three attempts, one run per ticket id.
    """
    return engine.register(WorkflowFunction(
        id=ON_TICKET_CREATED,
        trigger=EventName.TICKET_CREATED,
        handler=workflow,
        retries=2,
        idempotency="data.ticketId",
    ))
