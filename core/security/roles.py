"""
Role hierarchy.

Each role grants itself and every role below it:
admin -> admin, mentor, student; mentor -> mentor, student;
student -> student. Unknown roles grant nothing.
"""

from typing import Iterable, Optional

from core.models.user import ROLE_ADMIN, ROLE_MENTOR, ROLE_STUDENT

ROLE_GRANTS: dict[str, frozenset[str]] = {
    ROLE_ADMIN: frozenset({ROLE_ADMIN, ROLE_MENTOR, ROLE_STUDENT}),
    ROLE_MENTOR: frozenset({ROLE_MENTOR, ROLE_STUDENT}),
    ROLE_STUDENT: frozenset({ROLE_STUDENT}),
}


def granted_roles(role: Optional[str]) -> frozenset[str]:
    return ROLE_GRANTS.get(role or "", frozenset())


def has_any_role(role: Optional[str], required: Iterable[str]) -> bool:
    """True if ``role`` grants at least one of ``required``."""
    return not granted_roles(role).isdisjoint(required)


__all__ = ["ROLE_GRANTS", "granted_roles", "has_any_role"]
