from datetime import datetime

from pydantic import Field

from .common import CamelModel


class ApprovalPolicyUpsert(CamelModel):
    service_tier: str = Field(..., description="STANDARD, PRIORITY or ENTERPRISE")
    required_approvals: int = Field(1, description="Quorum, 1-5")
    approver_team_role: str = Field("APPROVER", description="Minimum team role in the pool")
    auto_assign_enabled: bool = True
    warning_threshold_ratio: float = 1.0
    critical_threshold_ratio: float = 1.5
    active: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "serviceTier": "ENTERPRISE",
                "requiredApprovals": 2,
                "approverTeamRole": "MANAGER",
                "autoAssignEnabled": True,
                "warningThresholdRatio": 0.8,
                "criticalThresholdRatio": 1.2,
                "active": True,
            }
        }


class ApprovalPolicyOut(CamelModel):
    id: int
    organization_id: int
    service_tier: str
    required_approvals: int
    approver_team_role: str
    auto_assign_enabled: bool
    warning_threshold_ratio: float
    critical_threshold_ratio: float
    active: bool
    created_by_id: int | None = None
    created_at: datetime
    updated_at: datetime


class OrganizationOut(CamelModel):
    id: int
    name: str
    slug: str


class MemberOut(CamelModel):
    id: int
    name: str | None = None
    email: str
    team_role: str
    created_at: datetime


class PolicyOverviewOut(CamelModel):
    organization: OrganizationOut | None = None
    members: list[MemberOut] = Field(default_factory=list)
    policies: list[ApprovalPolicyOut] = Field(default_factory=list)


class PolicyImpactOut(CamelModel):
    service_tier: str
    warning_threshold_ratio: float
    critical_threshold_ratio: float
    total_active_rfqs: int
    warning_count: int
    critical_count: int


class ThresholdCountsOut(CamelModel):
    warning_threshold_ratio: float
    critical_threshold_ratio: float
    warning_count: int
    critical_count: int


class CountDeltaOut(CamelModel):
    warning_count: int
    critical_count: int


class PolicySimulationOut(CamelModel):
    service_tier: str
    sample_size: int
    current: ThresholdCountsOut
    proposed: ThresholdCountsOut
    delta: CountDeltaOut
