"""
Account Rules
=============

Signup and profile validation.

Every function raises ValidationException (400) with the offending field.
"""

import re
from typing import Any, List, Optional

from ticketmate.config import Role, SELF_SIGNUP_ROLES, VALID_ROLES
from ticketmate.core import ValidationException

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def normalize_email(email: Optional[str]) -> str:
    """Trim, check the format and lower-case an email address."""
    if not email or not email.strip():
        raise ValidationException("Email is required", field="email")

    email = email.strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationException("Please provide a valid email address", field="email")

    return email.lower()


def validate_password(password: Optional[str]) -> str:
    if not password:
        raise ValidationException("Password is required", field="password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationException(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            field="password"
        )
    return password


def validate_signup_role(role: Optional[str]) -> str:
    """Admin accounts cannot be self-registered."""
    role = role or Role.USER
    if role not in SELF_SIGNUP_ROLES:
        raise ValidationException(
            f"Invalid role. Allowed roles are: {', '.join(SELF_SIGNUP_ROLES)}",
            field="role"
        )
    return role


def validate_role(role: str) -> str:
    if role not in VALID_ROLES:
        raise ValidationException(
            f"Invalid role. Allowed roles are: {', '.join(VALID_ROLES)}",
            field="role"
        )
    return role


def normalize_skills(skills: Any) -> List[str]:
    """
    Skills must be a list of non-empty strings; each is trimmed.

    None means no skills.
    """
    if skills is None:
        return []
    if not isinstance(skills, list):
        raise ValidationException("Skills must be an array", field="skills")

    normalized: List[str] = []
    for skill in skills:
        if not isinstance(skill, str) or not skill.strip():
            raise ValidationException("All skills must be non-empty strings", field="skills")
        normalized.append(skill.strip())
    return normalized
