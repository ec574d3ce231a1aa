"""
Core Exceptions
================

Application error hierarchy. Each class carries the HTTP status and a
stable error code the API answers with when it escapes a request handler;
workflow code raises the same types and lets the run retry or fail.
"""

from typing import Any, Dict, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Response body: {"message", "code", "details"?}."""
        body: Dict[str, Any] = {"message": self.message, "code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationException(ApplicationException):
    """Missing or malformed input (empty title, unknown priority, bad skills)."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.field = field
        details = details or {}
        if field:
            details.setdefault("field", field)
        super().__init__(message, details)


class AuthenticationException(ApplicationException):
    """Missing, malformed, expired or otherwise invalid credentials."""

    status_code = 401
    error_code = "UNAUTHENTICATED"


class PermissionDeniedException(ApplicationException):
    """Authenticated caller lacks the role or ownership for the operation."""

    status_code = 403
    error_code = "FORBIDDEN"


class ResourceNotFoundException(ApplicationException):
    """
    A user, ticket or OAuth provider that does not exist, or a ticket the
    caller may not see.
    """

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = resource_type
        if resource_id:
            message += f" with id '{resource_id}'"
        super().__init__(f"{message} not found", details)


class ConflictException(ApplicationException):
    """A write collides with existing state (duplicate email)."""

    status_code = 409
    error_code = "CONFLICT"


class ConfigurationException(ApplicationException):
    """Settings that cannot produce a working component (unknown LLM provider)."""

    error_code = "CONFIGURATION_ERROR"


class ExternalServiceException(ApplicationException):
    """Base exception for LLM, SMTP and OAuth provider failures."""

    status_code = 502
    error_code = "UPSTREAM_ERROR"

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class MailException(ExternalServiceException):
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Mail Service", message, details)


class OAuthException(ExternalServiceException):
    def __init__(self, provider: str, message: str, details: Optional[dict] = None):
        self.provider = provider
        super().__init__(f"OAuth ({provider})", message, details)
