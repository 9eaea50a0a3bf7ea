"""Team-role hierarchy used for approver eligibility."""

from __future__ import annotations

from ..models.enums import TeamRole

# APPROVER < MANAGER < OWNER; REQUESTER is never an approver
ROLE_RANK: dict[str, int] = {
    TeamRole.APPROVER.value: 0,
    TeamRole.MANAGER.value: 1,
    TeamRole.OWNER.value: 2,
}

APPROVER_ROLES: tuple[str, ...] = tuple(ROLE_RANK)


def role_rank(role: str | TeamRole) -> int | None:
    value = role.value if isinstance(role, TeamRole) else str(role).upper()
    return ROLE_RANK.get(value)


def roles_at_or_above(role: str | TeamRole | None) -> list[str]:
    """
    Team roles that satisfy a minimum approver role.

    An unknown or missing minimum falls back to the full approver set, so a
    misconfigured policy widens the pool instead of emptying it.
    """
    floor = role_rank(role) if role is not None else None
    if floor is None:
        return list(APPROVER_ROLES)
    return [name for name, rank in ROLE_RANK.items() if rank >= floor]


def is_approver_role(role: str | None) -> bool:
    return role is not None and role_rank(role) is not None
