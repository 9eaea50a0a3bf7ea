from datetime import datetime

from .common import CamelModel


class PriorityQueueItem(CamelModel):
    id: int
    status: str
    service_tier: str
    sla_target_hours: int
    age_hours: int
    overdue: bool
    has_offer: bool
    score: int
    category: str | None = None
    urgency: str | None = None
    created_at: datetime


class PriorityQueueOut(CamelModel):
    queue: list[PriorityQueueItem]


class EscalationItem(CamelModel):
    rfq_id: int
    service_tier: str
    status: str
    age_hours: int
    sla_target_hours: int
    escalation_level: str
    has_offer: bool


class EscalationSummaryItem(CamelModel):
    service_tier: str
    warning_threshold_ratio: float
    critical_threshold_ratio: float
    warning_count: int
    critical_count: int


class EscalationQueueOut(CamelModel):
    items: list[EscalationItem]
    summary: list[EscalationSummaryItem]


class EscalationRunOut(CamelModel):
    success: bool = True
    matched: int
    sent: int


class SlaSweepOut(CamelModel):
    success: bool = True
    matched: int
    created: int
