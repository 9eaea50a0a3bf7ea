"""
Organization directory.

Resolves users to organizations (creating a company organization on first use)
and enumerates approver candidates in a stable order.
"""

from __future__ import annotations

import random
import re
import string

from sqlalchemy import case
from sqlalchemy.orm import Session

from ..core.logging import get_logger
from ..models.enums import AccountType, PlatformRole, TeamRole
from ..models.organizations import Organization, User
from .policies import PolicyStore
from .team_roles import ROLE_RANK, roles_at_or_above

logger = get_logger(__name__)

_SLUG_MAX = 48
_SLUG_ATTEMPTS = 5


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    slug = slug.strip("-")[:_SLUG_MAX]
    return slug or "organization"


def _random_suffix(length: int = 5) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


class OrganizationDirectory:
    def __init__(self, session: Session, policies: PolicyStore | None = None) -> None:
        self._session = session
        self._policies = policies or PolicyStore(session)

    def get_user(self, user_id: int) -> User | None:
        return self._session.get(User, user_id)

    def resolve_organization(self, user_id: int) -> int | None:
        """
        Return the user's organization id, creating one for company accounts.

        Creation attaches the user, promotes a REQUESTER to OWNER and seeds the
        tier-default approval policies. Flushes, does not commit.
        """
        user = self.get_user(user_id)
        if user is None:
            return None
        if user.organization_id is not None:
            return user.organization_id
        if user.account_type != AccountType.COMPANY.value:
            return None

        base_name = (user.company_name or "").strip() or f"{user.name.strip()} Organization"
        base_slug = slugify(base_name)
        slug = base_slug
        for _ in range(_SLUG_ATTEMPTS):
            taken = (
                self._session.query(Organization.id)
                .filter(Organization.slug == slug)
                .first()
            )
            if taken is None:
                break
            slug = f"{base_slug}-{_random_suffix()}"

        organization = Organization(name=base_name, slug=slug)
        self._session.add(organization)
        self._session.flush()

        user.organization_id = organization.id
        if user.team_role == TeamRole.REQUESTER.value:
            user.team_role = TeamRole.OWNER.value
        self._policies.seed_defaults(organization.id)

        logger.info(
            "organization.created",
            organization_id=organization.id,
            slug=slug,
            owner_id=user.id,
        )
        return organization.id

    def list_members(
        self,
        organization_id: int,
        min_team_role: str | TeamRole | None,
        *,
        exclude_user_id: int | None = None,
        limit: int | None = None,
    ) -> list[User]:
        """Members at or above ``min_team_role``, ordered by role rank then creation time."""
        rank = case(ROLE_RANK, value=User.team_role, else_=len(ROLE_RANK))
        query = self._session.query(User).filter(
            User.organization_id == organization_id,
            User.team_role.in_(roles_at_or_above(min_team_role)),
        )
        if exclude_user_id is not None:
            query = query.filter(User.id != exclude_user_id)
        query = query.order_by(rank.asc(), User.created_at.asc(), User.id.asc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_all_members(self, organization_id: int) -> list[User]:
        return (
            self._session.query(User)
            .filter(User.organization_id == organization_id)
            .order_by(User.team_role.asc(), User.name.asc())
            .all()
        )

    def list_admins(
        self, *, exclude_user_id: int | None = None, limit: int | None = None
    ) -> list[User]:
        query = self._session.query(User).filter(User.role == PlatformRole.ADMIN.value)
        if exclude_user_id is not None:
            query = query.filter(User.id != exclude_user_id)
        query = query.order_by(User.created_at.asc(), User.id.asc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get_organization(self, organization_id: int) -> Organization | None:
        return self._session.get(Organization, organization_id)
