"""
Approval policy store.

Policies are scoped to (organization, service tier). Several rows may exist for
the same pair; the most recently updated active row is the effective one.
Rows are deactivated, never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import InvalidInputError
from ..core.logging import get_logger
from ..models.enums import ServiceTier, TeamRole
from ..models.policies import ApprovalPolicy

logger = get_logger(__name__)

MIN_REQUIRED_APPROVALS = 1
MAX_REQUIRED_APPROVALS = 5
WARNING_RATIO_RANGE = (0.5, 3.0)
CRITICAL_RATIO_RANGE = (1.0, 4.0)


@dataclass(frozen=True)
class TierDefault:
    required_approvals: int
    approver_team_role: TeamRole


TIER_DEFAULTS: dict[ServiceTier, TierDefault] = {
    ServiceTier.STANDARD: TierDefault(1, TeamRole.APPROVER),
    ServiceTier.PRIORITY: TierDefault(1, TeamRole.MANAGER),
    ServiceTier.ENTERPRISE: TierDefault(2, TeamRole.OWNER),
}


def parse_tier(value: str | ServiceTier) -> ServiceTier:
    if isinstance(value, ServiceTier):
        return value
    try:
        return ServiceTier(str(value).strip().upper())
    except ValueError:
        raise InvalidInputError(f"Unknown service tier: {value!r}")


def parse_team_role(value: str | TeamRole) -> TeamRole:
    if isinstance(value, TeamRole):
        role = value
    else:
        try:
            role = TeamRole(str(value).strip().upper())
        except ValueError:
            raise InvalidInputError(f"Unknown team role: {value!r}")
    if role == TeamRole.REQUESTER:
        raise InvalidInputError("approverTeamRole must be APPROVER, MANAGER or OWNER")
    return role


def validate_thresholds(warning: float, critical: float) -> None:
    lo, hi = WARNING_RATIO_RANGE
    if not lo <= warning <= hi:
        raise InvalidInputError(f"warningThresholdRatio must be between {lo} and {hi}")
    lo, hi = CRITICAL_RATIO_RANGE
    if not lo <= critical <= hi:
        raise InvalidInputError(f"criticalThresholdRatio must be between {lo} and {hi}")
    if critical < warning:
        raise InvalidInputError(
            "Critical threshold must be greater than or equal to warning threshold"
        )


class PolicyStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def find_active_policy(
        self, organization_id: int, tier: str | ServiceTier
    ) -> ApprovalPolicy | None:
        tier = parse_tier(tier)
        return (
            self._session.query(ApprovalPolicy)
            .filter(
                ApprovalPolicy.organization_id == organization_id,
                ApprovalPolicy.service_tier == tier.value,
                ApprovalPolicy.active.is_(True),
            )
            .order_by(ApprovalPolicy.updated_at.desc(), ApprovalPolicy.id.desc())
            .first()
        )

    def list_policies(self, organization_id: int) -> list[ApprovalPolicy]:
        return (
            self._session.query(ApprovalPolicy)
            .filter(ApprovalPolicy.organization_id == organization_id)
            .order_by(ApprovalPolicy.service_tier.asc(), ApprovalPolicy.updated_at.desc())
            .all()
        )

    def thresholds_for(
        self, organization_id: int | None, tier: str | ServiceTier
    ) -> tuple[float, float]:
        """(warning, critical) ratios of the active policy, or the configured defaults."""
        settings = get_settings()
        policy = (
            self.find_active_policy(organization_id, tier)
            if organization_id is not None
            else None
        )
        if policy is None:
            return settings.sla_warning_ratio_default, settings.sla_critical_ratio_default
        return policy.warning_threshold_ratio, policy.critical_threshold_ratio

    def upsert_policy(
        self,
        organization_id: int,
        tier: str | ServiceTier,
        *,
        required_approvals: int,
        approver_team_role: str | TeamRole = TeamRole.APPROVER,
        auto_assign_enabled: bool = True,
        warning_threshold_ratio: float = 1.0,
        critical_threshold_ratio: float = 1.5,
        active: bool = True,
        actor_id: int | None = None,
    ) -> ApprovalPolicy:
        """Update the newest row for (organization, tier) or create one. Flushes, does not commit."""
        tier = parse_tier(tier)
        role = parse_team_role(approver_team_role)
        if not MIN_REQUIRED_APPROVALS <= required_approvals <= MAX_REQUIRED_APPROVALS:
            raise InvalidInputError(
                f"requiredApprovals must be between {MIN_REQUIRED_APPROVALS} and {MAX_REQUIRED_APPROVALS}"
            )
        validate_thresholds(warning_threshold_ratio, critical_threshold_ratio)

        policy = (
            self._session.query(ApprovalPolicy)
            .filter(
                ApprovalPolicy.organization_id == organization_id,
                ApprovalPolicy.service_tier == tier.value,
            )
            .order_by(ApprovalPolicy.updated_at.desc(), ApprovalPolicy.id.desc())
            .first()
        )
        if policy is None:
            policy = ApprovalPolicy(
                organization_id=organization_id,
                service_tier=tier.value,
                created_by_id=actor_id,
            )
            self._session.add(policy)

        policy.required_approvals = required_approvals
        policy.approver_team_role = role.value
        policy.auto_assign_enabled = auto_assign_enabled
        policy.warning_threshold_ratio = warning_threshold_ratio
        policy.critical_threshold_ratio = critical_threshold_ratio
        policy.active = active
        self._session.flush()

        logger.info(
            "policy.upserted",
            policy_id=policy.id,
            organization_id=organization_id,
            service_tier=tier.value,
            required_approvals=required_approvals,
            active=active,
        )
        return policy

    def seed_defaults(self, organization_id: int) -> list[ApprovalPolicy]:
        settings = get_settings()
        rows = [
            ApprovalPolicy(
                organization_id=organization_id,
                service_tier=tier.value,
                required_approvals=default.required_approvals,
                approver_team_role=default.approver_team_role.value,
                auto_assign_enabled=True,
                warning_threshold_ratio=settings.sla_warning_ratio_default,
                critical_threshold_ratio=settings.sla_critical_ratio_default,
                active=True,
            )
            for tier, default in TIER_DEFAULTS.items()
        ]
        self._session.add_all(rows)
        self._session.flush()
        return rows
