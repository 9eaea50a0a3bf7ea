"""
Pydantic schemas for RFQ approval endpoints.

Range and enum checks on these bodies happen in the approval workflow so that
every domain validation failure surfaces as the same 400 ``invalid_input``
error; the schemas only enforce shape and types.
"""

from datetime import datetime

from pydantic import Field, field_validator

from .common import CamelModel


class ApprovalRequestCreate(CamelModel):
    note: str | None = Field(None, max_length=2000, description="Context for approvers")
    required_approvals: int | None = Field(
        None, description="Override the policy quorum (1-5)"
    )

    @field_validator("note")
    @classmethod
    def strip_note(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    class Config:
        json_schema_extra = {
            "example": {"note": "Budget signed off by finance", "requiredApprovals": 2}
        }


class ApprovalDecisionCreate(CamelModel):
    status: str = Field(..., description="APPROVED or REJECTED")
    decision_note: str | None = Field(None, max_length=2000)

    class Config:
        json_schema_extra = {
            "example": {"status": "APPROVED", "decisionNote": "Pricing within range"}
        }


class ApprovalDecisionOut(CamelModel):
    id: int
    approver_id: int
    status: str
    note: str | None = None
    created_at: datetime
    updated_at: datetime


class ApprovalRequestOut(CamelModel):
    id: int
    rfq_id: int
    requester_id: int
    organization_id: int | None = None
    policy_id: int | None = None
    status: str
    required_approvals: int
    candidate_approver_ids: list[int] = Field(default_factory=list)
    approver_id: int | None = None
    note: str | None = None
    decision_note: str | None = None
    decided_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    decisions: list[ApprovalDecisionOut] = Field(default_factory=list)


class RoutingOut(CamelModel):
    required_approvals: int
    policy_id: int | None = None
    policy_source: str
    assignee_count: int


class ApprovalCreatedOut(CamelModel):
    approval: ApprovalRequestOut
    routing: RoutingOut


class ApprovalListOut(CamelModel):
    approvals: list[ApprovalRequestOut]


class ApprovalDecisionResultOut(CamelModel):
    approval: ApprovalRequestOut
    approved_count: int
    rejected_count: int
