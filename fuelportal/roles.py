"""Assign roles to user accounts by natural keys."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .database import Database, DatabaseError, DuplicateRecordError
from .models import Role, User

logger = logging.getLogger("fuelportal.roles")

SUPER_ADMIN_ROLE = "Super Admin"

DEFAULT_ROLES: Tuple[Tuple[str, str], ...] = (
    (SUPER_ADMIN_ROLE, "System administrator with full access"),
    ("Vehicle Owner", "Vehicle owner with access to vehicle management"),
    ("Fuel Station Owner", "Fuel station owner with station management access"),
    ("Fuel Station Operator", "Fuel station operator with transaction access"),
)


class RoleAssignmentOutcome(str, enum.Enum):
    ASSIGNED = "assigned"
    ALREADY_ASSIGNED = "already_assigned"
    USER_NOT_FOUND = "user_not_found"
    ROLE_NOT_FOUND = "role_not_found"
    USER_AND_ROLE_NOT_FOUND = "user_and_role_not_found"


@dataclass(frozen=True)
class RoleAssignmentResult:
    """What happened when a role was assigned to a user."""

    outcome: RoleAssignmentOutcome
    email: str
    role_name: str
    user: Optional[User] = None
    role: Optional[Role] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in {RoleAssignmentOutcome.ASSIGNED, RoleAssignmentOutcome.ALREADY_ASSIGNED}

    @property
    def message(self) -> str:
        if self.outcome is RoleAssignmentOutcome.ASSIGNED:
            return f"{self.role_name} role assigned to {self.email}."
        if self.outcome is RoleAssignmentOutcome.ALREADY_ASSIGNED:
            return f"{self.role_name} role is already assigned to {self.email}."
        if self.outcome is RoleAssignmentOutcome.USER_NOT_FOUND:
            return f"No user with email {self.email!r} was found."
        if self.outcome is RoleAssignmentOutcome.ROLE_NOT_FOUND:
            return f"No role named {self.role_name!r} was found."
        return f"Neither a user with email {self.email!r} nor a role named {self.role_name!r} was found."


def _missing_outcome(user: Optional[User], role: Optional[Role]) -> RoleAssignmentOutcome:
    if user is None and role is None:
        return RoleAssignmentOutcome.USER_AND_ROLE_NOT_FOUND
    if user is None:
        return RoleAssignmentOutcome.USER_NOT_FOUND
    return RoleAssignmentOutcome.ROLE_NOT_FOUND


def assign_role(database: Database, email: str, role_name: str) -> RoleAssignmentResult:
    """Ensure exactly one assignment links the user ``email`` to ``role_name``.

    The email is compared after stripping whitespace and lower-casing, the
    same normalisation applied when users are stored. The role name must
    match exactly, including case.

    Missing users or roles are reported through the result, never raised.
    :class:`DatabaseError` propagates when the database cannot be queried.
    """

    try:
        user = database.get_user_by_email(email)
        role = database.get_role_by_name(role_name)

        if user is None or role is None:
            missing = _missing_outcome(user, role)
            logger.info("Role assignment skipped for %s / %s: %s", email, role_name, missing.value)
            return RoleAssignmentResult(outcome=missing, email=email, role_name=role_name, user=user, role=role)

        if database.get_role_assignment(user.id, role.id) is not None:
            return RoleAssignmentResult(
                outcome=RoleAssignmentOutcome.ALREADY_ASSIGNED,
                email=user.email,
                role_name=role.name,
                user=user,
                role=role,
            )

        try:
            database.create_role_assignment(user.id, role.id)
        except DuplicateRecordError:
            # Another invocation inserted the same pair after our existence check.
            outcome = RoleAssignmentOutcome.ALREADY_ASSIGNED
        else:
            outcome = RoleAssignmentOutcome.ASSIGNED
            logger.info("Assigned role %s to %s", role.name, user.email)
    except DatabaseError:
        logger.exception("Failed to assign role %s to %s", role_name, email)
        raise

    return RoleAssignmentResult(outcome=outcome, email=user.email, role_name=role.name, user=user, role=role)


def ensure_default_roles(
    database: Database,
    roles: Sequence[Tuple[str, str]] = DEFAULT_ROLES,
) -> List[Role]:
    """Create any missing default roles and return every stored role."""

    for name, description in roles:
        if database.get_role_by_name(name) is not None:
            continue
        try:
            database.create_role(name, description)
        except DuplicateRecordError:
            continue
        logger.info("Created role %s", name)
    return database.list_roles()


__all__ = [
    "DEFAULT_ROLES",
    "RoleAssignmentOutcome",
    "RoleAssignmentResult",
    "SUPER_ADMIN_ROLE",
    "assign_role",
    "ensure_default_roles",
]
