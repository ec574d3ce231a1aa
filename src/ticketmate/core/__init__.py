"""
Core Module
============

Exception hierarchy shared by every module; framework-agnostic apart from
the HTTP status each exception maps to.
"""

from ticketmate.core.exceptions import (
    ApplicationException,
    ValidationException,
    AuthenticationException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ConflictException,
    ConfigurationException,
    ExternalServiceException,
    LLMException,
    MailException,
    OAuthException,
)

__all__ = [
    "ApplicationException",
    "ValidationException",
    "AuthenticationException",
    "PermissionDeniedException",
    "ResourceNotFoundException",
    "ConflictException",
    "ConfigurationException",
    "ExternalServiceException",
    "LLMException",
    "MailException",
    "OAuthException",
]
