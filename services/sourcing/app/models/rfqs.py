from __future__ import annotations

from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db import Base
from .enums import OfferStatus, RfqStatus, ServiceTier


class Rfq(Base):
    """A sourcing request (request for quote) submitted by a buyer."""

    __tablename__ = "rfqs"
    __table_args__ = (
        # Open-queue scans filter by status and order by recency
        Index("ix_rfqs_status_created", "status", "created_at"),
        Index("ix_rfqs_user_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    service_tier: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ServiceTier.STANDARD.value
    )
    sla_target_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=RfqStatus.RECEIVED.value
    )
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    urgency: Mapped[str] = mapped_column(String(16), nullable=False, default="Normal")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    offers: Mapped[list[Offer]] = relationship(
        "Offer", back_populates="rfq", cascade="all, delete-orphan"
    )
    events: Mapped[list[RfqEvent]] = relationship(
        "RfqEvent", back_populates="rfq", cascade="all, delete-orphan"
    )

    @property
    def has_active_offer(self) -> bool:
        return any(offer.status == OfferStatus.SENT.value for offer in self.offers)


class Offer(Base):
    __tablename__ = "offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rfq_id: Mapped[int] = mapped_column(ForeignKey("rfqs.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OfferStatus.DRAFT.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    rfq: Mapped[Rfq] = relationship("Rfq", back_populates="offers")


class RfqEvent(Base):
    """Append-only event log entry for an RFQ (status changes, payload snapshots)."""

    __tablename__ = "rfq_events"
    __table_args__ = (
        Index("ix_rfq_events_rfq_type", "rfq_id", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rfq_id: Mapped[int] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    rfq: Mapped[Rfq] = relationship("Rfq", back_populates="events")
