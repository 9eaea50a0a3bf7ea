from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db import Base
from .enums import ApprovalStatus
from .mixins import TimestampMixin


class ApprovalRequest(TimestampMixin, Base):
    """
    One approval cycle for an RFQ.

    ``required_approvals`` and ``candidate_approver_ids`` are snapshots taken
    from the routing decision at creation; later policy edits never touch them.
    """

    __tablename__ = "approval_requests"
    __table_args__ = (
        # At most one PENDING approval per RFQ, enforced by the database
        Index(
            "uix_approval_requests_rfq_pending",
            "rfq_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index("ix_approval_requests_rfq_created", "rfq_id", "created_at"),
        Index("ix_approval_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rfq_id: Mapped[int] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    requester_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    organization_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("organizations.id"), nullable=True
    )
    policy_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("approval_policies.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ApprovalStatus.PENDING.value
    )
    required_approvals: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    candidate_approver_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # Primary approver while pending, last decider once terminal
    approver_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decision_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    decisions: Mapped[list[ApprovalDecision]] = relationship(
        "ApprovalDecision",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ApprovalDecision.id",
    )

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING.value


class ApprovalDecision(TimestampMixin, Base):
    """The latest decision of one approver on one approval request."""

    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint(
            "approval_request_id", "approver_id", name="uq_approval_decisions_request_approver"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    approval_request_id: Mapped[int] = mapped_column(
        ForeignKey("approval_requests.id"), nullable=False, index=True
    )
    approver_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    request: Mapped[ApprovalRequest] = relationship(
        "ApprovalRequest", back_populates="decisions"
    )
