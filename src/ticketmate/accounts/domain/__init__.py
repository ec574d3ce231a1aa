"""
Accounts Domain Layer
=====================

Pure validation rules for accounts; no framework or database imports.
"""

from ticketmate.accounts.domain.rules import (
    EMAIL_PATTERN,
    MIN_PASSWORD_LENGTH,
    normalize_email,
    normalize_skills,
    validate_password,
    validate_signup_role,
    validate_role,
)

__all__ = [
    "EMAIL_PATTERN",
    "MIN_PASSWORD_LENGTH",
    "normalize_email",
    "normalize_skills",
    "validate_password",
    "validate_signup_role",
    "validate_role",
]
