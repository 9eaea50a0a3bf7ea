from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...deps import get_clock, get_db_session, require_admin
from ....core.clock import Clock
from ....core.errors import InvalidInputError
from ....core.logging import get_logger
from ....models.organizations import User
from ....schemas.policies import (
    ApprovalPolicyOut,
    ApprovalPolicyUpsert,
    MemberOut,
    OrganizationOut,
    PolicyImpactOut,
    PolicyOverviewOut,
    PolicySimulationOut,
)
from ....services.organizations import OrganizationDirectory
from ....services.policies import PolicyStore
from ....services.sla import SlaService

router = APIRouter(prefix="/v1/admin/approval-policies", tags=["policies"])
logger = get_logger(__name__)


def _require_organization(session: Session, actor: User) -> int:
    organization_id = OrganizationDirectory(session).resolve_organization(actor.id)
    # Persist a freshly created organization before anything reads it back
    session.commit()
    if organization_id is None:
        raise InvalidInputError("Organization not found")
    return organization_id


@router.get("", response_model=PolicyOverviewOut)
def get_policies(
    actor: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> PolicyOverviewOut:
    """The admin's organization, its members and all of its approval policies."""
    policies = PolicyStore(session)
    directory = OrganizationDirectory(session, policies)
    organization_id = directory.resolve_organization(actor.id)
    session.commit()
    if organization_id is None:
        return PolicyOverviewOut()

    return PolicyOverviewOut(
        organization=OrganizationOut.model_validate(
            directory.get_organization(organization_id)
        ),
        members=[
            MemberOut.model_validate(member)
            for member in directory.list_all_members(organization_id)
        ],
        policies=[
            ApprovalPolicyOut.model_validate(policy)
            for policy in policies.list_policies(organization_id)
        ],
    )


@router.post("", response_model=ApprovalPolicyOut, status_code=status.HTTP_201_CREATED)
def upsert_policy(
    payload: ApprovalPolicyUpsert,
    actor: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> ApprovalPolicyOut:
    organization_id = _require_organization(session, actor)
    policy = PolicyStore(session).upsert_policy(
        organization_id,
        payload.service_tier,
        required_approvals=payload.required_approvals,
        approver_team_role=payload.approver_team_role,
        auto_assign_enabled=payload.auto_assign_enabled,
        warning_threshold_ratio=payload.warning_threshold_ratio,
        critical_threshold_ratio=payload.critical_threshold_ratio,
        active=payload.active,
        actor_id=actor.id,
    )
    session.commit()
    return ApprovalPolicyOut.model_validate(policy)


@router.get("/impact", response_model=PolicyImpactOut)
def policy_impact(
    service_tier: str = Query(..., alias="serviceTier"),
    warning_threshold_ratio: float | None = Query(None, alias="warningThresholdRatio"),
    critical_threshold_ratio: float | None = Query(None, alias="criticalThresholdRatio"),
    actor: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
) -> PolicyImpactOut:
    """Warning/critical counts over the organization's open RFQs of one tier."""
    organization_id = _require_organization(session, actor)
    result = SlaService(session, clock=clock).policy_impact(
        organization_id,
        service_tier,
        warning_threshold_ratio,
        critical_threshold_ratio,
    )
    return PolicyImpactOut.model_validate(result)


@router.get("/simulate", response_model=PolicySimulationOut)
def simulate_policy(
    service_tier: str = Query(..., alias="serviceTier"),
    warning_threshold_ratio: float = Query(..., alias="warningThresholdRatio"),
    critical_threshold_ratio: float = Query(..., alias="criticalThresholdRatio"),
    actor: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
) -> PolicySimulationOut:
    """Preview a threshold change against current data without saving it."""
    organization_id = _require_organization(session, actor)
    result = SlaService(session, clock=clock).simulate_thresholds(
        organization_id,
        service_tier,
        warning_threshold_ratio,
        critical_threshold_ratio,
    )
    return PolicySimulationOut.model_validate(result)
