"""
Triage Application Services
===========================

Application services for ticket triage.

ClassificationService wraps the LLM call; TriageWorkflow is the handler of
the `on-ticket-created` workflow function and drives the six triage steps
against the ticket and user stores.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from ticketmate.accounts.infrastructure import SQLAlchemyUserRepository
from ticketmate.config import Role, Settings, TicketStatus
from ticketmate.core.exceptions import MailException
from ticketmate.infrastructure.database import Database
from ticketmate.infrastructure.llm import ILLMClient
from ticketmate.infrastructure.mail import IEmailService
from ticketmate.infrastructure.workflow import NonRetriableError, RunContext, Step
from ticketmate.shared.infrastructure.logging import get_logger, log_latency
from ticketmate.tickets.infrastructure import SQLAlchemyTicketRepository
from ticketmate.triage.domain import (
    Classification,
    ClassificationPromptBuilder,
    TriageConfig,
    extract_json,
    select_moderator,
    validate_classification,
)

logger = get_logger(__name__)


class ITriageConfigProvider(Protocol):
    @property
    def config(self) -> TriageConfig:
        ...


# ========== Classification ==========

class ClassificationService:
    """
    Service for ticket classification using LLM.

    `analyze` never raises: a missing client, a provider error or an
    unparseable reply all come back as None.
    """

    def __init__(
        self,
        llm_client: Optional[ILLMClient],
        config_provider: ITriageConfigProvider,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ):
        self._llm = llm_client
        self._config = config_provider
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def from_settings(
        cls,
        llm_client: Optional[ILLMClient],
        config_provider: ITriageConfigProvider,
        settings: Settings,
    ) -> "ClassificationService":
        return cls(llm_client, config_provider, settings.llm_temperature, settings.llm_max_tokens)

    @property
    def is_available(self) -> bool:
        return self._llm is not None

    async def analyze(self, title: str, description: str) -> Optional[Dict[str, Any]]:
        """
        Ask the classifier about a ticket.

        Returns:
            The parsed JSON object, or None when no usable reply was obtained
        """
        if self._llm is None:
            logger.warning("No classifier configured, skipping ticket analysis")
            return None

        analysis = self._config.config.analysis
        messages = ClassificationPromptBuilder.build_messages(
            title, description, analysis.extra_instructions
        )

        try:
            with log_latency(logger, "ticket_analysis", model=self._llm.model):
                response = await self._llm.chat_completion(
                    messages=messages,
                    temperature=analysis.temperature if analysis.temperature is not None else self._temperature,
                    max_tokens=analysis.max_tokens or self._max_tokens,
                    operation="ticket_analysis",
                )
            data = extract_json(response.content)
        except Exception as e:
            logger.error(f"Ticket analysis failed: {e}", extra={"error_type": type(e).__name__})
            return None

        if not isinstance(data, dict):
            logger.warning("Classifier reply is not a JSON object")
            return None

        return data

    def resolve(self, analysis: Optional[Dict[str, Any]]) -> Classification:
        """Validated classification, or the configured fallback."""
        classification = validate_classification(analysis)
        if classification is None:
            return self._config.config.fallback.to_classification()
        return classification


# ========== Notification ==========

ASSIGNMENT_SUBJECT = "Ticket Assigned - Reply Suggestions Included"


def build_assignment_email(
    title: str,
    priority: Optional[str],
    helpful_notes: Optional[str],
    reply_suggestions: List[str],
) -> tuple[str, str]:
    """Subject and plain-text body of the mail sent to a new assignee."""
    lines = [
        f"A new ticket has been assigned to you: {title}",
        "",
        f"Priority: {priority or 'unknown'}",
        f"Helpful Notes: {helpful_notes or 'None'}",
    ]

    if reply_suggestions:
        lines += ["", "Suggested Replies:"]
        lines += [f"{i}. {reply}" for i, reply in enumerate(reply_suggestions, start=1)]

    lines += ["", "You can use these suggested replies as starting points for your response."]
    return ASSIGNMENT_SUBJECT, "\n".join(lines)


# ========== Workflow ==========

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ticket_not_found(ticket_id: Any) -> NonRetriableError:
    return NonRetriableError(f"Ticket not found: {ticket_id}", code="TICKET_NOT_FOUND")


class TriageWorkflow:
    """
    Handler for `ticket/created`.

    Steps (each checkpointed):
    1. fetch-ticket             - missing ticket dead-letters the run
    2. update-ticket-status     - status back to TODO
    3. analyze-ticket           - classifier call, None on any failure
    4. process-ai-response      - persist classification or fallback, in-progress
    5. assign-moderator         - selection rule over moderators and admins
    6. send-email-notification  - mail the assignee; mail errors are recorded

    Every step opens and commits its own session before its checkpoint is
    written.
    """

    def __init__(
        self,
        database: Database,
        classifier: ClassificationService,
        email_service: IEmailService,
    ):
        self._database = database
        self._classifier = classifier
        self._mail = email_service

    async def __call__(self, ctx: RunContext, step: Step) -> Dict[str, Any]:
        ticket_id = ctx.event.data.get("ticketId")

        try:
            ticket = await step.run("fetch-ticket", self.fetch_ticket, ticket_id)
            await step.run("update-ticket-status", self.mark_queued, ticket_id)

            analysis = await step.run("analyze-ticket", self._classifier.analyze, ticket["title"], ticket["description"])
            if analysis is None:
                ctx.logger.warning("No classifier result, using fallback", extra={"ticket_id": ticket_id})

            skills = await step.run("process-ai-response", self.apply_classification, ticket_id, analysis)
            assignee = await step.run("assign-moderator", self.assign_moderator, ticket_id, skills)
            notification = await step.run("send-email-notification", self.notify_assignee, ticket_id, assignee)
        except NonRetriableError:
            raise
        except Exception as e:
            ctx.logger.error(
                f"Triage failed: {e}",
                extra={"ticket_id": ticket_id, "error_type": type(e).__name__},
                exc_info=True,
            )
            return {"success": False, "error": str(e)}

        ctx.logger.info(
            "Ticket triaged",
            extra={
                "ticket_id": ticket_id,
                "assigned_to": assignee["id"] if assignee else None,
                "notified": notification.get("notified"),
            }
        )
        return {
            "success": True,
            "ticketId": ticket_id,
            "assignedTo": assignee["id"] if assignee else None,
        }

    async def fetch_ticket(self, ticket_id: Optional[str]) -> Dict[str, Any]:
        if not ticket_id:
            raise _ticket_not_found(ticket_id)

        async with self._database.session() as session:
            ticket = await SQLAlchemyTicketRepository(session).get(ticket_id)
            if ticket is None:
                raise _ticket_not_found(ticket_id)

            return {
                "id": str(ticket.id),
                "title": ticket.title,
                "description": ticket.description,
                "createdBy": str(ticket.created_by),
            }

    async def mark_queued(self, ticket_id: str) -> str:
        async with self._database.session() as session:
            ticket = await SQLAlchemyTicketRepository(session).get(ticket_id)
            if ticket is None:
                raise _ticket_not_found(ticket_id)
            ticket.status = TicketStatus.TODO
            ticket.updated_at = _utcnow()
        return TicketStatus.TODO

    async def apply_classification(
        self,
        ticket_id: str,
        analysis: Optional[Dict[str, Any]],
    ) -> List[str]:
        """Persist the classification (or fallback). Returns the skill tags."""
        classification = self._classifier.resolve(analysis)
        if classification.is_fallback:
            logger.warning("Classifier result invalid or missing, storing fallback", extra={"ticket_id": ticket_id})

        async with self._database.session() as session:
            ticket = await SQLAlchemyTicketRepository(session).get(ticket_id)
            if ticket is None:
                raise _ticket_not_found(ticket_id)

            for name, value in classification.ticket_fields().items():
                setattr(ticket, name, value)
            ticket.status = TicketStatus.IN_PROGRESS
            ticket.updated_at = _utcnow()

        return list(classification.related_skills)

    async def assign_moderator(self, ticket_id: str, skills: List[str]) -> Optional[Dict[str, str]]:
        async with self._database.session() as session:
            users = SQLAlchemyUserRepository(session)
            candidates = await users.list_by_roles([Role.MODERATOR, Role.ADMIN])
            chosen = select_moderator(skills, candidates)

            ticket = await SQLAlchemyTicketRepository(session).get(ticket_id)
            if ticket is None:
                raise _ticket_not_found(ticket_id)

            now = _utcnow()
            ticket.assigned_to = chosen.id if chosen else None
            if chosen is not None:
                ticket.assigned_at = now
            ticket.updated_at = now

        if chosen is None:
            logger.warning("No moderator or admin available, ticket left unassigned", extra={"ticket_id": ticket_id})
            return None

        logger.info(
            "Ticket assigned",
            extra={"ticket_id": ticket_id, "assignee_id": str(chosen.id), "assignee_role": chosen.role}
        )
        return {"id": str(chosen.id), "email": chosen.email}

    async def notify_assignee(self, ticket_id: str, assignee: Optional[Dict[str, str]]) -> Dict[str, Any]:
        if not assignee:
            return {"notified": False, "reason": "unassigned"}

        async with self._database.session() as session:
            ticket = await SQLAlchemyTicketRepository(session).get(ticket_id)
            if ticket is None:
                raise _ticket_not_found(ticket_id)
            subject, body = build_assignment_email(
                ticket.title,
                ticket.priority,
                ticket.helpful_notes,
                list(ticket.reply_suggestions or []),
            )

        try:
            await self._mail.send_email(assignee["email"], subject, body)
        except MailException as e:
            logger.error(
                f"Assignment mail failed: {e.message}",
                extra={"ticket_id": ticket_id, "recipient": assignee["email"]}
            )
            return {"notified": False, "to": assignee["email"], "error": e.message}

        return {"notified": True, "to": assignee["email"]}
