"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticketmate", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    api_prefix: str = Field(default="/api", description="Prefix for business routes")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/ticketmate",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    db_create_tables: bool = Field(
        default=True,
        description="Create missing tables on startup"
    )

    # ========== Tokens ==========
    access_token_secret: str = Field(
        default="change-me",
        description="Secret used to sign access tokens"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(
        default=1440,
        description="Access token lifetime in minutes",
        ge=1
    )
    oauth_state_expire_minutes: int = Field(
        default=10,
        description="Lifetime of the signed OAuth state parameter",
        ge=1
    )

    # ========== OAuth ==========
    google_client_id: Optional[str] = Field(default=None, description="Google OAuth client ID")
    google_client_secret: Optional[str] = Field(default=None, description="Google OAuth client secret")
    facebook_app_id: Optional[str] = Field(default=None, description="Facebook app ID")
    facebook_app_secret: Optional[str] = Field(default=None, description="Facebook app secret")
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Public URL of this API, used to build OAuth callback URLs"
    )
    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Front-end origin that receives the OAuth result"
    )

    # ========== LLM Classifier ==========
    llm_provider: str = Field(
        default="openai",
        description="Classifier backend: openai (any OpenAI-compatible API), zai or mock"
    )
    llm_api_key: Optional[str] = Field(default=None, description="Classifier API key")
    llm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for OpenAI-compatible providers (Gemini, Groq, ...)"
    )
    llm_model: str = Field(default="gpt-4o-mini", description="Model used for ticket analysis")
    llm_temperature: float = Field(
        default=0.3,
        description="Default temperature for LLM",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=1000,
        description="Default max tokens for LLM generation",
        ge=1,
        le=8000
    )

    # ========== SMTP ==========
    smtp_host: Optional[str] = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port", ge=1, le=65535)
    smtp_user: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Upgrade the SMTP connection with STARTTLS")
    smtp_timeout_seconds: float = Field(default=10.0, description="SMTP socket timeout", gt=0)
    mail_from: str = Field(
        default='"TicketMate" <no-reply@ticketmate.local>',
        description="From header for outbound mail"
    )

    # ========== Workflow Engine ==========
    workflow_signing_key: Optional[str] = Field(
        default=None,
        description="HMAC key that signs execution callbacks"
    )
    workflow_event_key: Optional[str] = Field(
        default=None,
        description="Key external producers use to send events"
    )
    workflow_poll_interval_seconds: int = Field(
        default=5,
        description="Seconds between workflow polls (0 disables the scheduler)",
        ge=0
    )
    workflow_batch_size: int = Field(default=10, description="Runs claimed per poll", ge=1)
    workflow_lease_seconds: int = Field(
        default=300,
        description="Seconds a claimed run stays leased before it is reclaimed",
        ge=10
    )

    # ========== Triage Configuration ==========
    triage_config_path: Path = Field(
        default=Path("triage_config.yaml"),
        description="Path to triage fallback/prompt YAML file"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Ensure the classifier backend is supported."""
        allowed = {"openai", "zai", "mock"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"llm_provider must be one of {allowed}")
        return v

    @field_validator("api_prefix")
    @classmethod
    def normalize_api_prefix(cls, v: str) -> str:
        """Strip trailing slashes; an empty prefix mounts routes at the root."""
        v = v.rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class Role(str):
    """Account roles."""
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Priority(str):
    """Ticket priority levels assigned by triage."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TicketStatus(str):
    """Conventional ticket statuses. Status itself is a free string."""
    TODO = "TODO"
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class EventName(str):
    """Workflow event names."""
    TICKET_CREATED = "ticket/created"
    TICKET_REPLY_ADDED = "ticket/reply-added"
    TICKET_STATUS_UPDATED = "ticket/status-updated"
    TICKET_UPDATED = "ticket/updated"
    USER_SIGNUP = "user/signup"


# ========== Lists for validation ==========

VALID_ROLES = [Role.USER, Role.MODERATOR, Role.ADMIN]
SELF_SIGNUP_ROLES = [Role.USER, Role.MODERATOR]
VALID_PRIORITIES = [Priority.LOW, Priority.MEDIUM, Priority.HIGH]
