from __future__ import annotations

from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db import Base
from .enums import AccountType, PlatformRole, TeamRole


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    members: Mapped[list[User]] = relationship("User", back_populates="organization")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        # Approver pool lookups: members of an org by team role
        Index("ix_users_org_team_role", "organization_id", "team_role"),
        # Admin fallback pool
        Index("ix_users_role_created", "role", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    account_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=AccountType.COMPANY.value
    )
    role: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PlatformRole.MEMBER.value
    )
    team_role: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TeamRole.REQUESTER.value
    )
    organization_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("organizations.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    organization: Mapped[Optional[Organization]] = relationship(
        "Organization", back_populates="members"
    )

    @property
    def is_admin(self) -> bool:
        return (self.role or "").upper() == PlatformRole.ADMIN.value
