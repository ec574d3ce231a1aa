"""
Tests for the workflow engine (runs, steps, retries, leases) and its HTTP
surface (/api/inngest).
"""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy import update

from conftest import API, EVENT_KEY, SIGNING_KEY
from ticketmate.infrastructure.database import Database
from ticketmate.infrastructure.workflow import (
    Event,
    NonRetriableError,
    RunStatus,
    WorkflowEngine,
    WorkflowRunModel,
    WorkflowScheduler,
)
from ticketmate.infrastructure.workflow.serve import SIGNATURE_HEADER, sign_body, verify_signature
from ticketmate.shared.infrastructure.grafana import GrafanaOTLPExporter


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def workflow(database):
    return WorkflowEngine(database, lease_seconds=60)


async def _force_running(database, run_id, attempts, lease_delta):
    async with database.session() as session:
        await session.execute(
            update(WorkflowRunModel)
            .where(WorkflowRunModel.id == UUID(str(run_id)))
            .values(
                status=RunStatus.RUNNING,
                attempts=attempts,
                lease_expires_at=datetime.now(timezone.utc) + lease_delta,
            )
        )


# ========== Engine ==========

@pytest.mark.asyncio
async def test_fan_out_and_completion(workflow):
    seen = []

    @workflow.function("first", trigger="thing/happened")
    async def first(ctx, step):
        seen.append(("first", ctx.event.data["n"]))
        return {"n": ctx.event.data["n"]}

    @workflow.function("second", trigger=["thing/happened", "other/thing"])
    async def second(ctx, step):
        seen.append(("second", ctx.event.data["n"]))

    run_ids = await workflow.send(Event(name="thing/happened", data={"n": 1}))
    assert len(run_ids) == 2
    assert await workflow.send(Event(name="unrelated")) == []

    assert await workflow.run_pending() == 2
    assert sorted(seen) == [("first", 1), ("second", 1)]

    stats = await workflow.stats()
    assert stats == {"queued": 0, "running": 0, "completed": 2, "failed": 0, "dead": 0}

    run = (await workflow.list_runs("first"))[0]
    assert run.output == {"n": 1}
    assert run.attempts == 1
    assert run.finished_at is not None


@pytest.mark.asyncio
async def test_idempotency_key_prevents_second_run(workflow):
    @workflow.function("once", trigger="ticket/created", idempotency="data.ticketId")
    async def once(ctx, step):
        return None

    first = await workflow.send(Event(name="ticket/created", data={"ticketId": "t-1"}))
    second = await workflow.send(Event(name="ticket/created", data={"ticketId": "t-1"}))
    other = await workflow.send(Event(name="ticket/created", data={"ticketId": "t-2"}))

    assert len(first) == 1
    assert second == []
    assert len(other) == 1

    await workflow.run_pending()
    # Completed runs still hold the key
    assert await workflow.send(Event(name="ticket/created", data={"ticketId": "t-1"})) == []


@pytest.mark.asyncio
async def test_non_retriable_error_dead_letters(workflow):
    calls = []

    @workflow.function("doomed", trigger="go", retries=5)
    async def doomed(ctx, step):
        calls.append(ctx.attempt)
        raise NonRetriableError("Ticket not found", code="TICKET_NOT_FOUND")

    [run_id] = await workflow.send(Event(name="go"))
    await workflow.run_pending()
    await workflow.run_pending()

    run = await workflow.get_run(run_id)
    assert run.status == RunStatus.DEAD
    assert run.error == "Ticket not found"
    assert calls == [1]


@pytest.mark.asyncio
async def test_retry_replays_checkpointed_steps(workflow):
    side_effects = []
    attempts = []

    async def charge(amount):
        side_effects.append(amount)
        return {"charged": amount}

    @workflow.function("flaky", trigger="go", retries=2)
    async def flaky(ctx, step):
        attempts.append(ctx.attempt)
        receipt = await step.run("charge", charge, 10)
        if ctx.attempt == 1:
            raise RuntimeError("transient")
        return receipt

    [run_id] = await workflow.send(Event(name="go"))

    await workflow.run_pending()
    run = await workflow.get_run(run_id)
    assert run.status == RunStatus.QUEUED
    assert run.error == "transient"

    await workflow.run_pending()
    run = await workflow.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.output == {"charged": 10}
    assert attempts == [1, 2]
    assert side_effects == [10]
    assert await workflow.get_steps(run_id) == {"charge": {"charged": 10}}


@pytest.mark.asyncio
async def test_exhausted_retries_fail(workflow):
    @workflow.function("broken", trigger="go", retries=1)
    async def broken(ctx, step):
        raise RuntimeError("always")

    [run_id] = await workflow.send(Event(name="go"))
    await workflow.run_pending()
    await workflow.run_pending()
    assert await workflow.run_pending() == 0

    run = await workflow.get_run(run_id)
    assert run.status == RunStatus.FAILED
    assert run.attempts == 2


@pytest.mark.asyncio
async def test_expired_lease_is_reclaimed(workflow, database):
    @workflow.function("resumable", trigger="go", retries=2)
    async def resumable(ctx, step):
        return {"attempt": ctx.attempt}

    [run_id] = await workflow.send(Event(name="go"))
    await _force_running(database, run_id, attempts=1, lease_delta=timedelta(minutes=5))

    # Lease still valid: nothing to claim
    assert await workflow.run_pending() == 0

    await _force_running(database, run_id, attempts=1, lease_delta=timedelta(minutes=-5))
    assert await workflow.run_pending() == 1

    run = await workflow.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.output == {"attempt": 2}


@pytest.mark.asyncio
async def test_expired_lease_on_final_attempt_fails(workflow, database):
    @workflow.function("single-shot", trigger="go", retries=0)
    async def single_shot(ctx, step):
        return None

    [run_id] = await workflow.send(Event(name="go"))
    await _force_running(database, run_id, attempts=1, lease_delta=timedelta(minutes=-5))

    assert await workflow.run_pending() == 0
    run = await workflow.get_run(run_id)
    assert run.status == RunStatus.FAILED
    assert run.error == "Lease expired on final attempt"


@pytest.mark.asyncio
async def test_duplicate_registration_rejected(workflow):
    @workflow.function("dup", trigger="go")
    async def dup(ctx, step):
        return None

    with pytest.raises(ValueError):
        workflow.function("dup", trigger="go")(dup)


@pytest.mark.asyncio
async def test_scheduler_disabled_with_zero_interval(workflow):
    scheduler = WorkflowScheduler(workflow, interval_seconds=0)
    await scheduler.start()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_scheduler_start_stop(workflow):
    scheduler = WorkflowScheduler(workflow, interval_seconds=30)
    await scheduler.start()
    assert scheduler.is_running
    await scheduler.stop()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_scheduler_tick_exports_run_counts(workflow):
    @workflow.function("noop", trigger="go")
    async def noop(ctx, step):
        return None

    metrics = GrafanaOTLPExporter(host="https://otlp.example", api_key="k", instance_id="1")
    await workflow.send(Event(name="go"))

    with patch.object(metrics, "export_workflow_stats", AsyncMock(return_value=True)) as export:
        executed = await WorkflowScheduler(workflow, interval_seconds=0, metrics=metrics).tick()

    assert executed == 1
    export.assert_awaited_once()
    assert export.await_args.args[0]["completed"] == 1


def test_workflow_payload_has_point_per_status():
    metrics = GrafanaOTLPExporter(host="https://otlp.example", api_key="k", instance_id="1")

    payload = metrics.build_workflow_payload({"queued": 2, "dead": 1})

    gauge = payload["resourceMetrics"][0]["scopeMetrics"][0]["metrics"][0]
    assert gauge["name"] == "workflow_runs"
    points = {
        point["attributes"][0]["value"]["stringValue"]: point["asInt"]
        for point in gauge["gauge"]["dataPoints"]
    }
    assert points == {"queued": 2, "dead": 1}


@pytest.mark.asyncio
async def test_disabled_exporter_is_noop():
    metrics = GrafanaOTLPExporter()
    assert not metrics.is_enabled()
    assert await metrics.export_workflow_stats({"queued": 1}) is False


# ========== HTTP surface ==========

@pytest.mark.asyncio
async def test_introspection_lists_functions(client):
    response = await client.get(f"{API}/inngest")

    assert response.status_code == 200
    data = response.json()
    functions = {fn["id"]: fn for fn in data["functions"]}
    assert set(functions) == {"on-ticket-created", "on-user-signup", "on-ticket-activity"}
    assert functions["on-ticket-created"]["triggers"] == [{"event": "ticket/created"}]
    assert functions["on-ticket-created"]["retries"] == 2
    assert functions["on-ticket-created"]["idempotency"] == "data.ticketId"
    assert len(functions["on-ticket-activity"]["triggers"]) == 3
    assert data["runs"]["queued"] == 0
    assert data["hasSigningKey"] is True


@pytest.mark.asyncio
async def test_execution_callback_requires_signature(client, signup):
    await signup("alice@example.com")
    body = json.dumps({"limit": 5}).encode()

    unsigned = await client.post(f"{API}/inngest", content=body)
    assert unsigned.status_code == 401

    forged = await client.post(f"{API}/inngest", content=body, headers={SIGNATURE_HEADER: "00" * 32})
    assert forged.status_code == 401

    signed = await client.post(
        f"{API}/inngest",
        content=body,
        headers={SIGNATURE_HEADER: sign_body(body, SIGNING_KEY), "Content-Type": "application/json"},
    )
    assert signed.status_code == 200
    assert signed.json()["executed"] == 1
    assert signed.json()["runs"]["completed"] == 1


@pytest.mark.asyncio
async def test_event_ingestion(client, engine):
    wrong = await client.post(f"{API}/inngest/e/wrong-key", json={"name": "user/signup", "data": {}})
    assert wrong.status_code == 401

    invalid = await client.post(f"{API}/inngest/e/{EVENT_KEY}", json={"data": {}})
    assert invalid.status_code == 400

    response = await client.post(
        f"{API}/inngest/e/{EVENT_KEY}",
        json=[
            {"name": "user/signup", "data": {"email": "x@example.com", "userId": "u-1"}},
            {"name": "nothing/listens", "data": {}},
        ],
    )
    assert response.status_code == 200
    data = response.json()
    assert len(data["ids"]) == 2
    assert len(data["runIds"]) == 1
    assert (await engine.stats())["queued"] == 1


@pytest.mark.asyncio
async def test_non_ascii_event_key_is_rejected(client):
    response = await client.post(f"{API}/inngest/e/ключ", json={"name": "user/signup", "data": {}})

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"


def test_non_ascii_signature_does_not_verify():
    body = b'{"limit": 5}'

    assert verify_signature(body, sign_body(body, SIGNING_KEY), SIGNING_KEY)
    assert not verify_signature(body, "sïgnature", SIGNING_KEY)
