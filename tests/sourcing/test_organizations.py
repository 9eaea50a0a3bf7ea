"""Tests for organization resolution and approver pool queries."""

from datetime import datetime

import pytest
from sqlalchemy.orm import Session

from services.sourcing.app.models.enums import AccountType, TeamRole
from services.sourcing.app.models.organizations import Organization
from services.sourcing.app.models.policies import ApprovalPolicy
from services.sourcing.app.services.organizations import OrganizationDirectory, slugify
from tests.sourcing.factories import make_admin, make_organization, make_user


@pytest.mark.unit
class TestSlugify:
    def test_collapses_non_alphanumerics(self):
        assert slugify("  Acme Fleet & Co. ") == "acme-fleet-co"

    def test_empty_falls_back(self):
        assert slugify("!!!") == "organization"

    def test_truncates(self):
        assert len(slugify("x" * 100)) == 48


class TestResolveOrganization:
    def test_returns_existing_membership(self, db_session: Session):
        org = make_organization(db_session)
        user = make_user(db_session, organization=org)

        assert OrganizationDirectory(db_session).resolve_organization(user.id) == org.id

    def test_creates_organization_for_company_account(self, db_session: Session):
        user = make_user(db_session, company_name=" Nordic Haulage ")

        org_id = OrganizationDirectory(db_session).resolve_organization(user.id)

        org = db_session.get(Organization, org_id)
        assert org.name == "Nordic Haulage"
        assert org.slug == "nordic-haulage"
        assert user.organization_id == org_id
        # Creator is promoted so they can approve within their own org
        assert user.team_role == TeamRole.OWNER.value
        tiers = {
            p.service_tier
            for p in db_session.query(ApprovalPolicy).filter_by(organization_id=org_id)
        }
        assert tiers == {"STANDARD", "PRIORITY", "ENTERPRISE"}

    def test_name_falls_back_to_user_name(self, db_session: Session):
        user = make_user(db_session, name="Dana Park")

        org_id = OrganizationDirectory(db_session).resolve_organization(user.id)

        assert db_session.get(Organization, org_id).name == "Dana Park Organization"

    def test_slug_collision_gets_suffix(self, db_session: Session):
        db_session.add(Organization(name="Taken", slug="nordic-haulage"))
        db_session.flush()
        user = make_user(db_session, company_name="Nordic Haulage")

        org_id = OrganizationDirectory(db_session).resolve_organization(user.id)

        slug = db_session.get(Organization, org_id).slug
        assert slug.startswith("nordic-haulage-")
        assert len(slug) == len("nordic-haulage-") + 5

    def test_manager_keeps_team_role(self, db_session: Session):
        user = make_user(db_session, team_role=TeamRole.MANAGER)

        OrganizationDirectory(db_session).resolve_organization(user.id)

        assert user.team_role == TeamRole.MANAGER.value

    def test_individual_account_has_no_organization(self, db_session: Session):
        user = make_user(db_session, account_type=AccountType.INDIVIDUAL)

        assert OrganizationDirectory(db_session).resolve_organization(user.id) is None
        assert db_session.query(Organization).count() == 0

    def test_unknown_user(self, db_session: Session):
        assert OrganizationDirectory(db_session).resolve_organization(9999) is None


class TestListMembers:
    def test_orders_by_role_rank_then_creation(self, db_session: Session):
        org = make_organization(db_session)
        owner = make_user(db_session, organization=org, team_role=TeamRole.OWNER,
                          created_at=datetime(2026, 1, 1))
        late_approver = make_user(db_session, organization=org, team_role=TeamRole.APPROVER,
                                  created_at=datetime(2026, 1, 3))
        early_approver = make_user(db_session, organization=org, team_role=TeamRole.APPROVER,
                                   created_at=datetime(2026, 1, 2))
        manager = make_user(db_session, organization=org, team_role=TeamRole.MANAGER,
                            created_at=datetime(2025, 12, 1))
        make_user(db_session, organization=org, team_role=TeamRole.REQUESTER)

        directory = OrganizationDirectory(db_session)
        members = directory.list_members(org.id, TeamRole.APPROVER)

        assert [m.id for m in members] == [early_approver.id, late_approver.id, manager.id, owner.id]
        # Identical inputs give identical order
        assert [m.id for m in directory.list_members(org.id, "APPROVER")] == [m.id for m in members]

    def test_minimum_role_filters(self, db_session: Session):
        org = make_organization(db_session)
        make_user(db_session, organization=org, team_role=TeamRole.APPROVER)
        manager = make_user(db_session, organization=org, team_role=TeamRole.MANAGER)
        owner = make_user(db_session, organization=org, team_role=TeamRole.OWNER)

        members = OrganizationDirectory(db_session).list_members(org.id, "MANAGER")

        assert [m.id for m in members] == [manager.id, owner.id]

    def test_excludes_user_and_limits(self, db_session: Session):
        org = make_organization(db_session)
        users = [
            make_user(db_session, organization=org, team_role=TeamRole.APPROVER)
            for _ in range(4)
        ]

        members = OrganizationDirectory(db_session).list_members(
            org.id, "APPROVER", exclude_user_id=users[0].id, limit=2
        )

        assert [m.id for m in members] == [users[1].id, users[2].id]

    def test_list_admins_ordered_by_creation(self, db_session: Session):
        second = make_admin(db_session, created_at=datetime(2026, 1, 5))
        first = make_admin(db_session, created_at=datetime(2026, 1, 1))
        make_user(db_session)

        admins = OrganizationDirectory(db_session).list_admins()

        assert [a.id for a in admins] == [first.id, second.id]
        assert OrganizationDirectory(db_session).list_admins(exclude_user_id=first.id)[0].id == second.id
