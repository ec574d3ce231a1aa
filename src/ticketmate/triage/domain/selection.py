"""
Moderator Selection
===================

Rule-based choice of the assignee for a triaged ticket.
"""

import re
from typing import Any, Optional, Sequence

from ticketmate.config import Role


def select_moderator(skill_tags: Optional[Sequence[str]], users: Sequence[Any]) -> Optional[Any]:
    """
    Pick the assignee for a ticket.

    `users` must be in storage order and expose `role` and `skills`.

    1. With skill tags: the first moderator having any skill that contains
       any tag (case-insensitive substring).
    2. Otherwise the first moderator.
    3. Otherwise the first admin.
    4. Otherwise None.

    No ranking by overlap, workload or recency.
    """
    moderators = [user for user in users if user.role == Role.MODERATOR]
    tags = [tag for tag in (skill_tags or []) if isinstance(tag, str) and tag]

    if tags:
        pattern = re.compile("|".join(re.escape(tag) for tag in tags), re.IGNORECASE)
        for moderator in moderators:
            if any(pattern.search(skill) for skill in (moderator.skills or []) if isinstance(skill, str)):
                return moderator

    if moderators:
        return moderators[0]

    for user in users:
        if user.role == Role.ADMIN:
            return user

    return None
