from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base
from .enums import TeamRole
from .mixins import TimestampMixin


class ApprovalPolicy(TimestampMixin, Base):
    """Approval and SLA threshold configuration for one organization and service tier."""

    __tablename__ = "approval_policies"
    __table_args__ = (
        # Active policy lookup, most recently updated first
        Index(
            "ix_approval_policies_org_tier_active",
            "organization_id",
            "service_tier",
            "active",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    service_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    required_approvals: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    approver_team_role: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TeamRole.APPROVER.value
    )
    auto_assign_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    warning_threshold_ratio: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    critical_threshold_ratio: Mapped[float] = mapped_column(Float, nullable=False, default=1.5)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
