"""
Workflow HTTP Surface
=====================

Routes mounted at `{api_prefix}/inngest`:

- GET  /inngest                 introspection (functions, run counts)
- POST /inngest                 execution callback, runs pending work now
- POST /inngest/e/{event_key}   event ingestion for external producers

The execution callback must carry `X-Workflow-Signature`, the hex
HMAC-SHA256 of the raw body under the signing key, whenever a signing key
is configured.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request

from ticketmate.config import Settings
from ticketmate.core import AuthenticationException, ValidationException
from ticketmate.infrastructure.workflow.engine import Event, WorkflowEngine
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/inngest", tags=["Workflow Engine"])

SIGNATURE_HEADER = "X-Workflow-Signature"


def sign_body(body: bytes, signing_key: str) -> str:
    """Hex HMAC-SHA256 of a request body."""
    return hmac.new(signing_key.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], signing_key: Optional[str]) -> bool:
    if not signing_key:
        return True
    if not signature:
        return False
    return hmac.compare_digest(sign_body(body, signing_key).encode(), signature.strip().lower().encode())


# ========== Dependencies ==========

def get_workflow_engine(request: Request) -> WorkflowEngine:
    return request.app.state.workflow_engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def _read_json(request: Request, body: bytes) -> Any:
    if not body:
        return {}
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        raise ValidationException("Request body must be valid JSON", field="body")


# ========== Route Handlers ==========

@router.get("")
async def introspect(
    engine: WorkflowEngine = Depends(get_workflow_engine),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """List registered functions and run counts by status."""
    return {
        "appId": settings.app_name,
        "functions": [
            {
                "id": fn.id,
                "triggers": [{"event": name} for name in fn.triggers],
                "retries": fn.retries,
                "idempotency": fn.idempotency,
            }
            for fn in engine.functions
        ],
        "functionCount": len(engine.functions),
        "hasSigningKey": bool(settings.workflow_signing_key),
        "hasEventKey": bool(settings.workflow_event_key),
        "runs": await engine.stats(),
    }


@router.post("")
async def execute(
    request: Request,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """
    Execution callback.

    Body may carry {"limit": n} to cap the batch; defaults to the configured
    batch size.
    """
    body = await request.body()
    if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), settings.workflow_signing_key):
        logger.warning("Rejected workflow callback with bad signature")
        raise AuthenticationException("Invalid workflow signature")

    payload = await _read_json(request, body)
    limit = payload.get("limit") if isinstance(payload, dict) else None
    if limit is not None and (not isinstance(limit, int) or limit < 1):
        raise ValidationException("limit must be a positive integer", field="limit")

    executed = await engine.run_pending(limit)
    return {"executed": executed, "runs": await engine.stats()}


@router.post("/e/{event_key}")
async def ingest_events(
    event_key: str,
    request: Request,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """
    Accept one event or a list of events: {"name": ..., "data": {...}}.

    Without a configured event key any key is accepted outside production.
    """
    expected = settings.workflow_event_key
    if expected:
        if not hmac.compare_digest(event_key.encode(), expected.encode()):
            raise AuthenticationException("Invalid event key")
    elif settings.environment == "production":
        raise AuthenticationException("Event ingestion is not configured")

    payload = await _read_json(request, await request.body())
    items: List[Any] = payload if isinstance(payload, list) else [payload]

    events: List[Event] = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str) or not item["name"]:
            raise ValidationException("Each event needs a non-empty name", field="name")
        data = item.get("data") or {}
        if not isinstance(data, dict):
            raise ValidationException("Event data must be an object", field="data")
        event = Event(name=item["name"], data=data)
        if isinstance(item.get("id"), str) and item["id"]:
            event.id = item["id"]
        events.append(event)

    event_ids: List[str] = []
    run_ids: List[str] = []
    for event in events:
        run_ids.extend(await engine.send(event))
        event_ids.append(event.id)

    logger.info("Events ingested", extra={"count": len(events), "runs": len(run_ids)})
    return {"ids": event_ids, "runIds": run_ids, "status": 200}
