"""Enumerations shared by the ORM models and the approval/SLA services."""

from enum import Enum


class ServiceTier(str, Enum):
    STANDARD = "STANDARD"
    PRIORITY = "PRIORITY"
    ENTERPRISE = "ENTERPRISE"


class TeamRole(str, Enum):
    REQUESTER = "REQUESTER"
    APPROVER = "APPROVER"
    MANAGER = "MANAGER"
    OWNER = "OWNER"


class PlatformRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class AccountType(str, Enum):
    COMPANY = "COMPANY"
    INDIVIDUAL = "INDIVIDUAL"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DecisionStatus(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RfqStatus(str, Enum):
    RECEIVED = "RECEIVED"
    REVIEWING = "REVIEWING"
    OFFER_SENT = "OFFER_SENT"
    PENDING_EXECUTION = "PENDING_EXECUTION"
    WON = "WON"
    LOST = "LOST"


class OfferStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class NotificationKind(str, Enum):
    RFQ = "RFQ"
    SLA = "SLA"


OPEN_RFQ_STATUSES = (
    RfqStatus.RECEIVED,
    RfqStatus.REVIEWING,
    RfqStatus.OFFER_SENT,
    RfqStatus.PENDING_EXECUTION,
)
