"""
Tests for the application shell: health, root and cross-cutting middleware.
"""
import json
import logging

import pytest

from conftest import API
from ticketmate import config
from ticketmate.accounts.application import IUserRepository
from ticketmate.accounts.infrastructure import SQLAlchemyUserRepository
from ticketmate.shared.infrastructure.logging import (
    CorrelationIdFilter,
    CustomJsonFormatter,
    reset_correlation_id,
    set_correlation_id,
)


@pytest.mark.asyncio
async def test_health_reports_component_checks(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["environment"] == "test"
    assert data["checks"] == {
        "database": "connected",
        "workflow_scheduler": "stopped",
        "llm_client": "available",
        "mail": "not_configured",
    }


@pytest.mark.asyncio
async def test_root_lists_modules(client):
    response = await client.get("/")

    assert response.status_code == 200
    modules = response.json()["modules"]
    assert modules["tickets"]["prefix"] == f"{API}/tickets"
    assert modules["workflows"]["prefix"] == f"{API}/inngest"


@pytest.mark.asyncio
async def test_correlation_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"

    generated = await client.get("/health")
    assert generated.headers["X-Correlation-ID"]


@pytest.mark.asyncio
async def test_unknown_route_is_not_found(client):
    response = await client.get(f"{API}/nope")
    assert response.status_code == 404


def test_log_records_carry_correlation_id_and_redact_secrets():
    record = logging.LogRecord("ticketmate.test", logging.INFO, __file__, 1, "Login attempt", None, None)
    record.password = "hunter2"
    record.access_token = "eyJ..."
    record.max_tokens = "1000"

    token = set_correlation_id("req-42")
    try:
        assert CorrelationIdFilter().filter(record)
    finally:
        reset_correlation_id(token)

    output = json.loads(CustomJsonFormatter(environment="test").format(record))
    assert output["correlation_id"] == "req-42"
    assert output["environment"] == "test"
    assert output["password"] == "***REDACTED***"
    assert output["access_token"] == "***REDACTED***"
    assert output["max_tokens"] == "1000"


def test_settings_are_only_built_on_demand():
    assert not hasattr(config, "settings")
    assert config.get_settings() is config.get_settings()


def test_user_repository_surface():
    assert IUserRepository.__abstractmethods__ == {
        "get_by_id",
        "get_by_email",
        "get_by_provider_id",
        "create",
        "save",
        "list_all",
        "list_by_roles",
    }
    assert not SQLAlchemyUserRepository.__abstractmethods__
