"""
Approval routing.

Given a requester and a service tier, decide how many approvals an RFQ needs
and who may give them. Precedence for the quorum is caller override, then the
organization's active policy, then the tier default. The candidate pool comes
from the organization when its policy auto-assigns, otherwise from the
platform admins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from ..core.config import get_settings
from ..core.logging import get_logger
from ..models.enums import ServiceTier
from .organizations import OrganizationDirectory
from .policies import PolicyStore, parse_tier

logger = get_logger(__name__)

PolicySource = Literal["organization", "default"]


def default_approvals_for_tier(tier: ServiceTier) -> int:
    return 2 if tier == ServiceTier.ENTERPRISE else 1


def clamp_required_approvals(required: int, pool_size: int) -> int:
    """At least one approval, and never more than there are eligible approvers."""
    required = max(1, required)
    if pool_size > 0:
        required = min(required, pool_size)
    return required


@dataclass
class RoutingDecision:
    organization_id: int | None
    policy_id: int | None
    required_approvals: int
    approver_ids: list[int] = field(default_factory=list)
    policy_source: PolicySource = "default"

    @property
    def primary_approver_id(self) -> int | None:
        return self.approver_ids[0] if self.approver_ids else None

    def to_dict(self) -> dict:
        return {
            "organizationId": self.organization_id,
            "policyId": self.policy_id,
            "requiredApprovals": self.required_approvals,
            "approverIds": list(self.approver_ids),
            "primaryApproverId": self.primary_approver_id,
            "policySource": self.policy_source,
        }


class ApprovalRouter:
    def __init__(
        self,
        directory: OrganizationDirectory,
        policies: PolicyStore,
        *,
        pool_limit: int | None = None,
    ) -> None:
        self._directory = directory
        self._policies = policies
        self._pool_limit = pool_limit or get_settings().approval_pool_limit

    def resolve_routing(
        self,
        requester_id: int,
        service_tier: str | ServiceTier,
        required_approvals_override: int | None = None,
    ) -> RoutingDecision:
        """
        Resolve quorum and approver pool for a new approval request.

        Never raises for a missing organization or an empty pool; the result
        always carries a quorum of at least one.
        """
        tier = parse_tier(service_tier)
        organization_id = self._directory.resolve_organization(requester_id)

        required = (
            required_approvals_override
            if required_approvals_override is not None
            else default_approvals_for_tier(tier)
        )
        decision = RoutingDecision(
            organization_id=organization_id,
            policy_id=None,
            required_approvals=required,
        )

        if organization_id is not None:
            policy = self._policies.find_active_policy(organization_id, tier)
            if policy is not None:
                decision.policy_id = policy.id
                decision.policy_source = "organization"
                if required_approvals_override is None:
                    decision.required_approvals = policy.required_approvals
                if policy.auto_assign_enabled:
                    members = self._directory.list_members(
                        organization_id,
                        policy.approver_team_role,
                        exclude_user_id=requester_id,
                        limit=self._pool_limit,
                    )
                    decision.approver_ids = [member.id for member in members]

        if not decision.approver_ids:
            admins = self._directory.list_admins(
                exclude_user_id=requester_id, limit=self._pool_limit
            )
            decision.approver_ids = [admin.id for admin in admins]
            decision.policy_source = "default"

        decision.required_approvals = clamp_required_approvals(
            decision.required_approvals, len(decision.approver_ids)
        )

        logger.info(
            "approval.routing.resolved",
            requester_id=requester_id,
            service_tier=tier.value,
            organization_id=organization_id,
            policy_id=decision.policy_id,
            policy_source=decision.policy_source,
            required_approvals=decision.required_approvals,
            pool_size=len(decision.approver_ids),
        )
        return decision
