"""
TicketMate - Main Application
=============================

AI-assisted helpdesk: users submit tickets, a background workflow
classifies them with an LLM, assigns a moderator and mails the assignee.

Modules:
- Accounts: signup/login, Google/Facebook OAuth, roles and skills
- Tickets: ticket store, replies, permission rules
- Triage: classification, moderator selection, assignee notification
- Notifications: welcome and ticket-activity mail

Clean Architecture Layers:
- Interfaces: FastAPI controllers, workflow function registration
- Application: Services and DTOs
- Domain: Rules, value objects, pure functions
- Infrastructure: Database, LLM, mail, workflow engine
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

# Configuration
from ticketmate.config import Settings, get_settings

# Infrastructure
from ticketmate.infrastructure.database import Database
from ticketmate.infrastructure.llm import ILLMClient, create_llm_client
from ticketmate.infrastructure.mail import IEmailService, create_email_service
from ticketmate.infrastructure.workflow import WorkflowEngine, WorkflowScheduler
from ticketmate.infrastructure.workflow.serve import router as workflow_router

# Accounts
from ticketmate.accounts.infrastructure import OAuthProvider, TokenService, build_oauth_providers
from ticketmate.accounts.interfaces import accounts_router

# Tickets
from ticketmate.tickets.interfaces import tickets_router

# Triage and notifications
from ticketmate.triage.application import ClassificationService, TriageWorkflow
from ticketmate.triage.infrastructure import TriageConfigManager
from ticketmate.triage.interfaces import register_triage_functions
from ticketmate.notifications import NotificationWorkflows, register_notification_functions

# Shared
from ticketmate.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)
from ticketmate.shared.infrastructure.grafana import GrafanaOTLPExporter
from ticketmate.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)

_UNSET: Any = object()


def create_app(
    settings: Optional[Settings] = None,
    *,
    llm_client: Optional[ILLMClient] = _UNSET,
    email_service: Optional[IEmailService] = None,
    oauth_providers: Optional[Dict[str, OAuthProvider]] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Components are constructed in the lifespan and stored on `app.state`.
    The keyword arguments replace the ones built from settings (tests pass
    mock LLM/mail clients and fake OAuth providers this way).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan manager.

        STARTUP:
        1. Setup structured logging
        2. Initialize database and create tables
        3. Build token service, OAuth providers, metrics exporter
        4. Initialize LLM client and mail service
        5. Load triage configuration
        6. Register workflow functions and start the poller

        SHUTDOWN:
        1. Stop workflow scheduler
        2. Stop config watcher
        3. Close database connections
        """
        # === STARTUP ===
        if configure_logging:
            setup_logging(level=settings.log_level, environment=settings.environment)
        logger.info("Starting TicketMate", extra={
            "version": settings.app_version,
            "environment": settings.environment
        })

        # Database
        database = Database(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        if settings.db_create_tables:
            logger.info("Creating database tables")
            try:
                await database.create_tables()
            except (SQLAlchemyError, OSError) as e:
                logger.warning(f"Database not available - running in degraded mode: {e}")

        # Accounts
        token_service = TokenService.from_settings(settings)
        providers = oauth_providers if oauth_providers is not None else build_oauth_providers(settings)

        # Grafana OTLP metrics (disabled without credentials)
        metrics = GrafanaOTLPExporter(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id,
            service_name=settings.app_name,
            service_version=settings.app_version,
            environment=settings.environment,
        )
        if not metrics.is_enabled():
            logger.info("Grafana OTLP exporter not configured - metrics will not be exported")

        # LLM and mail
        llm = create_llm_client(settings, metrics) if llm_client is _UNSET else llm_client
        mail = email_service or create_email_service(settings)

        # Triage configuration
        triage_config = TriageConfigManager()
        triage_config.load(settings.triage_config_path)
        triage_config.start_watching()

        # Workflow engine
        engine = WorkflowEngine(
            database,
            lease_seconds=settings.workflow_lease_seconds,
            batch_size=settings.workflow_batch_size,
        )
        classifier = ClassificationService.from_settings(llm, triage_config, settings)
        register_triage_functions(engine, TriageWorkflow(database, classifier, mail))
        register_notification_functions(engine, NotificationWorkflows(database, mail))

        scheduler = WorkflowScheduler(
            engine,
            interval_seconds=settings.workflow_poll_interval_seconds,
            metrics=metrics,
        )
        await scheduler.start()

        # Store services in app state for dependency injection
        app.state.settings = settings
        app.state.database = database
        app.state.token_service = token_service
        app.state.oauth_providers = providers
        app.state.metrics = metrics
        app.state.llm_client = llm
        app.state.email_service = mail
        app.state.triage_config = triage_config
        app.state.classification_service = classifier
        app.state.workflow_engine = engine
        app.state.workflow_scheduler = scheduler

        logger.info("TicketMate started successfully")

        yield  # Application runs here

        # === SHUTDOWN ===
        logger.info("Shutting down TicketMate")
        await scheduler.stop()
        triage_config.stop_watching()
        await database.close()
        logger.info("TicketMate shutdown complete")

    app = FastAPI(
        title="TicketMate API",
        description="""
    ## AI-Assisted Helpdesk

    Users submit support tickets; a background workflow summarizes and
    prioritizes each one with an LLM, assigns a moderator by skill and
    mails the assignee suggested replies.

    ### Endpoints
    - `/auth/*` - signup, login, OAuth (Google, Facebook), account admin
    - `/tickets/*` - create, list, view, reply, status, update, delete
    - `/inngest` - workflow introspection, execution callback, event ingestion
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    register_exception_handlers(app)

    # === Include Module Routers ===
    app.include_router(accounts_router, prefix=settings.api_prefix)
    app.include_router(tickets_router, prefix=settings.api_prefix)
    app.include_router(workflow_router, prefix=settings.api_prefix)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service health",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "database": "connected",
                            "workflow_scheduler": "running",
                            "llm_client": "available",
                            "mail": "configured"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request) -> Dict[str, Any]:
        """
        Health check endpoint for load balancers and orchestrators.

        Reports database connectivity, scheduler state, LLM client and
        SMTP availability.
        """
        state = request.app.state
        database: Optional[Database] = getattr(state, "database", None)
        scheduler: Optional[WorkflowScheduler] = getattr(state, "workflow_scheduler", None)
        mail: Optional[IEmailService] = getattr(state, "email_service", None)

        database_ok = database is not None and await database.ping()
        checks = {
            "database": "connected" if database_ok else "unavailable",
            "workflow_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "llm_client": "available" if getattr(state, "llm_client", None) else "not_configured",
            "mail": "configured" if mail and mail.is_configured() else "not_configured",
        }

        return {
            "status": "healthy" if database_ok else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks,
        }

    @app.get("/", tags=["Root"])
    async def root() -> Dict[str, Any]:
        """Root endpoint with API information."""
        prefix = settings.api_prefix
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "accounts": {"prefix": f"{prefix}/auth"},
                "tickets": {"prefix": f"{prefix}/tickets"},
                "workflows": {"prefix": f"{prefix}/inngest"},
            },
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "ticketmate.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.environment == "development",
        log_level="info"
    )
