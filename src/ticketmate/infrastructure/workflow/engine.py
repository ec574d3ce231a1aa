"""
Workflow Engine
===============

Durable, at-least-once execution of event-triggered functions.

Usage:
    engine = WorkflowEngine(database)

    @engine.function("on-ticket-created", trigger="ticket/created",
                     retries=2, idempotency="data.ticketId")
    async def on_ticket_created(ctx: RunContext, step: Step):
        ticket = await step.run("fetch-ticket", load_ticket, ctx.event.data["ticketId"])
        ...

    await engine.send(Event(name="ticket/created", data={"ticketId": "..."}))
    await engine.run_pending()

Runs live in the `workflow_runs` table. Claiming a run takes a lease; a run
whose lease expires (crashed worker) is claimed again. Every `step.run()`
result is checkpointed in `workflow_steps`, so a retried run returns stored
outputs instead of repeating side effects.

Outcomes:
- handler returns           -> completed
- NonRetriableError raised  -> dead (never retried)
- any other exception       -> queued again until max_attempts, then failed
"""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union
from uuid import UUID, uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketmate.infrastructure.database import Database
from ticketmate.infrastructure.workflow.models import (
    RUN_STATUSES,
    RunStatus,
    WorkflowRunModel,
    WorkflowStepModel,
)
from ticketmate.shared.infrastructure.logging import get_context_logger, get_logger

logger = get_logger(__name__)


class NonRetriableError(Exception):
    """Raised by a workflow function to dead-letter its run."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


@dataclass
class Event:
    """An event that may trigger workflow functions."""
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class RunContext:
    """What a handler knows about the run executing it."""
    event: Event
    run_id: str
    attempt: int
    logger: logging.LoggerAdapter


Handler = Callable[["RunContext", "Step"], Awaitable[Any]]


@dataclass
class WorkflowFunction:
    """
    A registered function.

    `trigger` is one event name or several. `idempotency` is a dotted path
    into the event (e.g. "data.ticketId"); events resolving to an
    already-enqueued key do not start another run.
    """
    id: str
    trigger: Union[str, Sequence[str]]
    handler: Handler
    retries: int = 2
    idempotency: Optional[str] = None

    @property
    def triggers(self) -> List[str]:
        if isinstance(self.trigger, str):
            return [self.trigger]
        return list(self.trigger)

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def idempotency_key(self, event: Event) -> Optional[str]:
        if not self.idempotency:
            return None

        value: Any = {"name": event.name, "data": event.data, "id": event.id}
        for part in self.idempotency.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]

        return None if value is None else str(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Step:
    """
    Checkpointed step runner bound to one run.

    `run(step_id, fn, *args)` returns the stored output when the step already
    finished in an earlier attempt; otherwise it awaits `fn(*args)`, stores
    the (JSON-serializable) result and returns it.
    """

    def __init__(
        self,
        database: Database,
        run_id: UUID,
        checkpoints: Dict[str, Any],
        run_logger: logging.LoggerAdapter,
    ):
        self._database = database
        self._run_id = run_id
        self._checkpoints = checkpoints
        self._logger = run_logger

    async def run(self, step_id: str, fn: Callable[..., Any], *args: Any) -> Any:
        if step_id in self._checkpoints:
            self._logger.debug("Step replayed from checkpoint", extra={"step_id": step_id})
            return self._checkpoints[step_id]

        output = fn(*args)
        if inspect.isawaitable(output):
            output = await output

        async with self._database.session() as session:
            session.add(WorkflowStepModel(run_id=self._run_id, step_id=step_id, output=output))

        self._checkpoints[step_id] = output
        self._logger.info("Step completed", extra={"step_id": step_id})
        return output


class WorkflowEngine:
    """
    In-process workflow engine backed by the application database.

    Explicitly constructed at startup; the scheduler and the execution
    webhook both call `run_pending`.
    """

    def __init__(
        self,
        database: Database,
        lease_seconds: int = 300,
        batch_size: int = 10,
    ):
        self._database = database
        self._lease_seconds = lease_seconds
        self._batch_size = batch_size
        self._functions: Dict[str, WorkflowFunction] = {}

    # ========== Registration ==========

    def register(self, function: WorkflowFunction) -> WorkflowFunction:
        if function.id in self._functions:
            raise ValueError(f"Workflow function '{function.id}' already registered")
        self._functions[function.id] = function
        logger.info(
            "Workflow function registered",
            extra={"function_id": function.id, "triggers": function.triggers}
        )
        return function

    def function(
        self,
        function_id: str,
        trigger: Union[str, Sequence[str]],
        retries: int = 2,
        idempotency: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        """Decorator form of `register`."""

        def decorator(handler: Handler) -> Handler:
            self.register(WorkflowFunction(
                id=function_id,
                trigger=trigger,
                handler=handler,
                retries=retries,
                idempotency=idempotency,
            ))
            return handler

        return decorator

    @property
    def functions(self) -> List[WorkflowFunction]:
        return list(self._functions.values())

    # ========== Sending ==========

    async def send(self, event: Event, session: Optional[AsyncSession] = None) -> List[str]:
        """
        Enqueue a run for every function triggered by `event.name`.

        With `session`, runs are added to that session and commit together
        with the caller's writes (outbox). Without it, each run commits in
        its own session.

        Returns:
            Ids of the runs created (duplicates by idempotency key are skipped)
        """
        run_ids: List[str] = []

        for function in self._functions.values():
            if event.name not in function.triggers:
                continue

            key = function.idempotency_key(event)
            if session is not None:
                run_id = await self._enqueue(session, function, event, key)
            else:
                try:
                    async with self._database.session() as own_session:
                        run_id = await self._enqueue(own_session, function, event, key)
                except IntegrityError:
                    # Lost the race against a concurrent send with the same key
                    logger.info(
                        "Duplicate event skipped by idempotency key",
                        extra={"function_id": function.id, "idempotency_key": key}
                    )
                    run_id = None

            if run_id is not None:
                run_ids.append(run_id)

        if not run_ids:
            logger.debug("Event produced no runs", extra={"event": event.name, "event_id": event.id})

        return run_ids

    async def _enqueue(
        self,
        session: AsyncSession,
        function: WorkflowFunction,
        event: Event,
        key: Optional[str],
    ) -> Optional[str]:
        if key is not None:
            stmt = select(WorkflowRunModel.id).where(
                WorkflowRunModel.function_id == function.id,
                WorkflowRunModel.idempotency_key == key,
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()
            if existing is not None:
                logger.info(
                    "Duplicate event skipped by idempotency key",
                    extra={"function_id": function.id, "idempotency_key": key, "run_id": str(existing)}
                )
                return None

        run = WorkflowRunModel(
            id=uuid4(),
            function_id=function.id,
            event_id=event.id,
            event_name=event.name,
            event_data=event.data,
            idempotency_key=key,
            status=RunStatus.QUEUED,
            attempts=0,
            max_attempts=function.max_attempts,
        )
        session.add(run)
        await session.flush()

        logger.info(
            "Workflow run enqueued",
            extra={"function_id": function.id, "event": event.name, "run_id": str(run.id)}
        )
        return str(run.id)

    # ========== Execution ==========

    async def run_pending(self, limit: Optional[int] = None) -> int:
        """
        Claim and execute queued runs (and runs whose lease expired).

        Returns:
            Number of runs executed
        """
        claimed = await self._claim(limit or self._batch_size)
        for run_id, attempt in claimed:
            await self._execute(run_id, attempt)
        return len(claimed)

    async def _claim(self, limit: int) -> List[tuple[UUID, int]]:
        now = _utcnow()
        lease_expired = and_(
            WorkflowRunModel.status == RunStatus.RUNNING,
            WorkflowRunModel.lease_expires_at < now,
        )

        async with self._database.session() as session:
            # Expired leases with no attempts left will never finish
            exhausted = await session.execute(
                update(WorkflowRunModel)
                .where(lease_expired, WorkflowRunModel.attempts >= WorkflowRunModel.max_attempts)
                .values(
                    status=RunStatus.FAILED,
                    error="Lease expired on final attempt",
                    lease_expires_at=None,
                    finished_at=now,
                    updated_at=now,
                )
            )
            if exhausted.rowcount:
                logger.warning("Abandoned workflow runs failed", extra={"count": exhausted.rowcount})

            stmt = (
                select(WorkflowRunModel.id, WorkflowRunModel.status, WorkflowRunModel.attempts)
                .where(or_(WorkflowRunModel.status == RunStatus.QUEUED, lease_expired))
                .order_by(WorkflowRunModel.created_at.asc())
                .limit(limit)
            )
            candidates = (await session.execute(stmt)).all()

            claimed: List[tuple[UUID, int]] = []
            for run_id, status, attempts in candidates:
                # Conditional update: only one worker wins a given run
                result = await session.execute(
                    update(WorkflowRunModel)
                    .where(
                        WorkflowRunModel.id == run_id,
                        WorkflowRunModel.status == status,
                        WorkflowRunModel.attempts == attempts,
                    )
                    .values(
                        status=RunStatus.RUNNING,
                        attempts=attempts + 1,
                        lease_expires_at=now + timedelta(seconds=self._lease_seconds),
                        updated_at=now,
                    )
                )
                if result.rowcount == 1:
                    if status == RunStatus.RUNNING:
                        logger.warning("Reclaimed workflow run after lease expiry", extra={"run_id": str(run_id)})
                    claimed.append((run_id, attempts + 1))

        return claimed

    async def _execute(self, run_id: UUID, attempt: int) -> None:
        async with self._database.session() as session:
            run = await session.get(WorkflowRunModel, run_id)
            steps = (
                await session.execute(
                    select(WorkflowStepModel.step_id, WorkflowStepModel.output)
                    .where(WorkflowStepModel.run_id == run_id)
                )
            ).all()

        if run is None:
            return

        run_logger = get_context_logger(
            __name__, run_id=str(run_id), function_id=run.function_id, attempt=attempt
        )
        function = self._functions.get(run.function_id)
        if function is None:
            run_logger.error("No workflow function registered for run")
            await self._finish(run_id, attempt, RunStatus.DEAD, error="Function not registered")
            return

        event = Event(name=run.event_name, data=dict(run.event_data or {}), id=run.event_id)
        ctx = RunContext(event=event, run_id=str(run_id), attempt=attempt, logger=run_logger)
        step = Step(self._database, run_id, {step_id: output for step_id, output in steps}, run_logger)

        run_logger.info("Workflow run started", extra={"event": event.name})

        try:
            output = await function.handler(ctx, step)
        except NonRetriableError as e:
            run_logger.error(
                "Workflow run dead-lettered",
                extra={"error": str(e), "code": e.code}
            )
            await self._finish(run_id, attempt, RunStatus.DEAD, error=str(e))
            return
        except Exception as e:
            if attempt < run.max_attempts:
                run_logger.warning(
                    "Workflow run failed, will retry",
                    extra={"error": str(e), "max_attempts": run.max_attempts},
                    exc_info=True,
                )
                await self._finish(run_id, attempt, RunStatus.QUEUED, error=str(e))
            else:
                run_logger.error(
                    "Workflow run failed permanently",
                    extra={"error": str(e), "max_attempts": run.max_attempts},
                    exc_info=True,
                )
                await self._finish(run_id, attempt, RunStatus.FAILED, error=str(e))
            return

        await self._finish(run_id, attempt, RunStatus.COMPLETED, output=output)
        run_logger.info("Workflow run completed")

    async def _finish(
        self,
        run_id: UUID,
        attempt: int,
        status: str,
        output: Any = None,
        error: Optional[str] = None,
    ) -> None:
        now = _utcnow()
        values: Dict[str, Any] = {
            "status": status,
            "error": error,
            "lease_expires_at": None,
            "updated_at": now,
        }
        if status != RunStatus.QUEUED:
            values["finished_at"] = now
        if status == RunStatus.COMPLETED:
            values["output"] = output

        async with self._database.session() as session:
            # A reclaimed run has a higher attempt number; the stale worker loses
            await session.execute(
                update(WorkflowRunModel)
                .where(WorkflowRunModel.id == run_id, WorkflowRunModel.attempts == attempt)
                .values(**values)
            )

    # ========== Introspection ==========

    async def stats(self) -> Dict[str, int]:
        """Run counts by status (every status present, zero when none)."""
        counts = {status: 0 for status in RUN_STATUSES}
        async with self._database.session() as session:
            rows = await session.execute(
                select(WorkflowRunModel.status, func.count()).group_by(WorkflowRunModel.status)
            )
            for status, count in rows.all():
                counts[status] = count
        return counts

    async def get_run(self, run_id: str) -> Optional[WorkflowRunModel]:
        try:
            run_uuid = UUID(str(run_id))
        except ValueError:
            return None

        async with self._database.session() as session:
            return await session.get(WorkflowRunModel, run_uuid)

    async def get_steps(self, run_id: str) -> Dict[str, Any]:
        """Checkpoints of a run keyed by step id."""
        async with self._database.session() as session:
            rows = await session.execute(
                select(WorkflowStepModel.step_id, WorkflowStepModel.output)
                .where(WorkflowStepModel.run_id == UUID(str(run_id)))
                .order_by(WorkflowStepModel.created_at.asc())
            )
            return {step_id: output for step_id, output in rows.all()}

    async def list_runs(self, function_id: Optional[str] = None) -> List[WorkflowRunModel]:
        async with self._database.session() as session:
            stmt = select(WorkflowRunModel).order_by(WorkflowRunModel.created_at.asc())
            if function_id:
                stmt = stmt.where(WorkflowRunModel.function_id == function_id)
            return list((await session.execute(stmt)).scalars().all())


class EventPublisher:
    """
    Event sender handed to application services.

    Bound to the request session so events commit with the write that
    produced them.
    """

    def __init__(self, engine: WorkflowEngine, session: Optional[AsyncSession] = None):
        self._engine = engine
        self._session = session

    async def publish(self, name: str, data: Dict[str, Any]) -> List[str]:
        return await self._engine.send(Event(name=name, data=data), session=self._session)
