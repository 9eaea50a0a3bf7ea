"""
SLA scoring for open RFQs.

Scoring is a pure function of an RFQ's creation time, its target response
hours and the current clock, so every queue below is recomputed on each call.
The only persisted state is the notification dedupe key written by the
reminder and escalation sweeps.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, selectinload

from ..core.clock import Clock, as_utc, utcnow
from ..core.config import get_settings
from ..core.errors import InvalidInputError
from ..core.logging import get_logger
from ..core.metrics import observe
from ..models.action_log import ActionLog
from ..models.enums import OPEN_RFQ_STATUSES, NotificationKind, ServiceTier
from ..models.organizations import User
from ..models.rfqs import Rfq
from .notifications import Notifier
from .policies import PolicyStore, parse_tier, validate_thresholds
from .rfq_events import RFQ_PAYLOAD, latest_by_type

logger = get_logger(__name__)

TIER_TARGET_HOURS: dict[ServiceTier, int] = {
    ServiceTier.ENTERPRISE: 8,
    ServiceTier.PRIORITY: 24,
    ServiceTier.STANDARD: 72,
}

TIER_WEIGHTS: dict[ServiceTier, int] = {
    ServiceTier.ENTERPRISE: 30,
    ServiceTier.PRIORITY: 20,
    ServiceTier.STANDARD: 10,
}

RATIO_WEIGHT = 50
OFFER_COVERAGE_PENALTY = 20


@dataclass(frozen=True)
class SlaSnapshot:
    age_hours: float
    target_hours: int
    ratio: float
    warning: bool
    critical: bool

    @property
    def overdue(self) -> bool:
        return self.age_hours > self.target_hours

    def to_dict(self) -> dict[str, Any]:
        return {
            "ageHours": self.age_hours,
            "targetHours": self.target_hours,
            "ratio": self.ratio,
            "warning": self.warning,
            "critical": self.critical,
        }


def _coerce_tier(tier: str | ServiceTier) -> ServiceTier | None:
    try:
        return parse_tier(tier)
    except InvalidInputError:
        return None


def target_hours_for_tier(tier: str | ServiceTier) -> int:
    parsed = _coerce_tier(tier)
    if parsed is None:
        return get_settings().sla_default_target_hours
    return TIER_TARGET_HOURS[parsed]


def resolve_target_hours(rfq: Rfq) -> int:
    """Explicit column, then the latest payload snapshot, then the tier default; at least 1."""
    target = rfq.sla_target_hours
    if not target:
        payload_target = latest_by_type(rfq.events, RFQ_PAYLOAD).get("slaTargetHours")
        if isinstance(payload_target, (int, float)) and not isinstance(payload_target, bool):
            target = int(payload_target)
    if not target:
        target = target_hours_for_tier(rfq.service_tier)
    return max(1, int(target))


def score(
    created_at: datetime,
    target_hours: int,
    now: datetime,
    warning_ratio: float | None = None,
    critical_ratio: float | None = None,
) -> SlaSnapshot:
    settings = get_settings()
    if warning_ratio is None:
        warning_ratio = settings.sla_warning_ratio_default
    if critical_ratio is None:
        critical_ratio = settings.sla_critical_ratio_default

    target_hours = max(1, int(target_hours))
    age_hours = max(0.0, (as_utc(now) - as_utc(created_at)).total_seconds() / 3600)
    ratio = age_hours / target_hours
    return SlaSnapshot(
        age_hours=age_hours,
        target_hours=target_hours,
        ratio=ratio,
        warning=ratio >= warning_ratio,
        critical=ratio >= critical_ratio,
    )


def tier_weight(tier: str | ServiceTier) -> int:
    parsed = _coerce_tier(tier)
    return TIER_WEIGHTS[parsed] if parsed is not None else TIER_WEIGHTS[ServiceTier.STANDARD]


def priority_score(snapshot: SlaSnapshot, tier: str | ServiceTier, has_active_offer: bool) -> int:
    penalty = 0 if has_active_offer else OFFER_COVERAGE_PENALTY
    # Halves round up, not to even
    return math.floor(snapshot.ratio * RATIO_WEIGHT + tier_weight(tier) + penalty + 0.5)


def escalation_level(snapshot: SlaSnapshot) -> str | None:
    if snapshot.critical:
        return "critical"
    if snapshot.warning:
        return "warning"
    return None


def validate_priority_limit(limit: int) -> int:
    settings = get_settings()
    if not 1 <= limit <= settings.priority_queue_max_limit:
        raise InvalidInputError(
            f"limit must be between 1 and {settings.priority_queue_max_limit}"
        )
    return limit


class SlaService:
    def __init__(
        self,
        session: Session,
        notifier: Notifier | None = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session = session
        self._notifier = notifier
        self._clock = clock
        self._policies = PolicyStore(session)
        self._settings = get_settings()

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    def priority_queue(self, limit: int | None = None) -> list[dict[str, Any]]:
        limit = validate_priority_limit(
            limit if limit is not None else self._settings.priority_queue_default_limit
        )
        now = self._clock()
        ranked = []
        for rfq in self._open_rfqs(limit=self._settings.priority_queue_scan_limit):
            snapshot = score(rfq.created_at, resolve_target_hours(rfq), now)
            has_offer = rfq.has_active_offer
            item = {
                "id": rfq.id,
                "status": rfq.status,
                "serviceTier": rfq.service_tier,
                "slaTargetHours": snapshot.target_hours,
                "ageHours": math.floor(snapshot.age_hours),
                "overdue": snapshot.overdue,
                "hasOffer": has_offer,
                "score": priority_score(snapshot, rfq.service_tier, has_offer),
                "category": rfq.category,
                "urgency": rfq.urgency,
                "createdAt": as_utc(rfq.created_at),
            }
            ranked.append((item["score"], snapshot.age_hours, item))
        # Score first, raw (unfloored) age breaks ties
        ranked.sort(key=lambda entry: (entry[0], entry[1]), reverse=True)
        return [item for _, _, item in ranked[:limit]]

    def escalation_queue(self, organization_id: int | None = None) -> dict[str, Any]:
        thresholds = self._tier_thresholds(organization_id)
        items = self._escalations(organization_id, thresholds)
        summary = []
        for tier in ServiceTier:
            warning, critical = thresholds[tier]
            tier_items = [item for item in items if item["serviceTier"] == tier.value]
            summary.append(
                {
                    "serviceTier": tier.value,
                    "warningThresholdRatio": warning,
                    "criticalThresholdRatio": critical,
                    "warningCount": sum(
                        1 for item in tier_items if item["escalationLevel"] == "warning"
                    ),
                    "criticalCount": sum(
                        1 for item in tier_items if item["escalationLevel"] == "critical"
                    ),
                }
            )
        return {"items": items, "summary": summary}

    # ------------------------------------------------------------------
    # Notification sweeps
    # ------------------------------------------------------------------

    def run_escalation_notifications(
        self, organization_id: int | None = None, actor_id: int | None = None
    ) -> dict[str, int]:
        """
        Alert admins about every escalated RFQ, once per day per RFQ per level.

        Each run is recorded in the action log with its counts, including runs
        that matched nothing or only hit already-sent alerts.
        """
        items = self._escalations(organization_id, self._tier_thresholds(organization_id))
        day = self._clock().date().isoformat()
        admin_ids = self._notifier.admin_ids() if self._notifier is not None else []
        sent = 0
        for item in items if self._notifier is not None else []:
            level = item["escalationLevel"]
            title = "Critical SLA escalation" if level == "critical" else "SLA escalation warning"
            message = (
                f"RFQ {item['rfqId']} is {item['ageHours']}h old "
                f"(target {item['slaTargetHours']}h)."
            )
            sent += self._notifier.notify_admins(
                NotificationKind.SLA,
                title,
                message,
                {
                    "rfqId": item["rfqId"],
                    "ageHours": item["ageHours"],
                    "targetHours": item["slaTargetHours"],
                    "level": level,
                    "tier": item["serviceTier"],
                },
                dedupe_key=f"escalation:{day}:{item['rfqId']}:{level}",
                admin_ids=admin_ids,
            )

        levels = [item["escalationLevel"] for item in items]
        self._session.add(
            ActionLog(
                rule_name="sla.escalation.run",
                subject=(
                    f"organization:{organization_id}"
                    if organization_id is not None
                    else "organization:all"
                ),
                action="notified" if sent else "noop",
                actor_id=actor_id,
                payload=json.dumps(
                    {
                        "day": day,
                        "matched": len(items),
                        "sent": sent,
                        "critical": levels.count("critical"),
                        "warning": levels.count("warning"),
                    }
                ),
            )
        )
        self._session.commit()

        logger.info(
            "sla.escalation.completed",
            organization_id=organization_id,
            matched=len(items),
            sent=sent,
        )
        return {"matched": len(items), "sent": sent}

    def run_reminder_sweep(self) -> dict[str, int]:
        """
        Remind admins about open RFQs that have reached their target without an offer.

        Idempotent within a calendar day: the per-admin dedupe key
        ``sla:<day>:<rfq>:<admin>`` makes a re-run create nothing new.
        """
        admin_ids = self._notifier.admin_ids() if self._notifier is not None else []
        if not admin_ids:
            logger.info("sla.sweep.skipped", reason="no_admins")
            return {"matched": 0, "created": 0}

        now = self._clock()
        day = now.date().isoformat()
        matched = created = 0
        for rfq in self._open_rfqs():
            if rfq.has_active_offer:
                continue
            snapshot = score(rfq.created_at, resolve_target_hours(rfq), now)
            if snapshot.age_hours < snapshot.target_hours:
                continue

            matched += 1
            overdue = snapshot.age_hours >= 2 * snapshot.target_hours
            age = math.floor(snapshot.age_hours)
            created += self._notifier.notify_admins(
                NotificationKind.SLA,
                "RFQ overdue for offer" if overdue else "RFQ nearing SLA breach",
                f"RFQ {rfq.id} has no offer after {age}h (target {snapshot.target_hours}h).",
                {
                    "rfqId": rfq.id,
                    "ageHours": age,
                    "targetHours": snapshot.target_hours,
                    "urgency": "High" if overdue else "Medium",
                },
                dedupe_key=f"sla:{day}:{rfq.id}",
                admin_ids=admin_ids,
            )

        observe("sla_sweep_runs_total")
        logger.info("sla.sweep.completed", matched=matched, created=created, admins=len(admin_ids))
        return {"matched": matched, "created": created}

    # ------------------------------------------------------------------
    # What-if analysis
    # ------------------------------------------------------------------

    def policy_impact(
        self,
        organization_id: int,
        tier: str | ServiceTier,
        warning: float | None = None,
        critical: float | None = None,
    ) -> dict[str, Any]:
        tier = parse_tier(tier)
        policy_warning, policy_critical = self._policies.thresholds_for(organization_id, tier)
        warning = policy_warning if warning is None else warning
        critical = policy_critical if critical is None else critical
        validate_thresholds(warning, critical)

        sample = self._sample(organization_id, tier)
        warning_count, critical_count = self._count(sample, warning, critical)
        return {
            "serviceTier": tier.value,
            "warningThresholdRatio": warning,
            "criticalThresholdRatio": critical,
            "totalActiveRfqs": len(sample),
            "warningCount": warning_count,
            "criticalCount": critical_count,
        }

    def simulate_thresholds(
        self,
        organization_id: int,
        tier: str | ServiceTier,
        warning: float,
        critical: float,
    ) -> dict[str, Any]:
        """Compare the current thresholds with a proposed pair. Nothing is persisted."""
        tier = parse_tier(tier)
        validate_thresholds(warning, critical)
        baseline_warning, baseline_critical = self._policies.thresholds_for(organization_id, tier)

        sample = self._sample(organization_id, tier)
        current = self._count(sample, baseline_warning, baseline_critical)
        proposed = self._count(sample, warning, critical)
        return {
            "serviceTier": tier.value,
            "sampleSize": len(sample),
            "current": {
                "warningThresholdRatio": baseline_warning,
                "criticalThresholdRatio": baseline_critical,
                "warningCount": current[0],
                "criticalCount": current[1],
            },
            "proposed": {
                "warningThresholdRatio": warning,
                "criticalThresholdRatio": critical,
                "warningCount": proposed[0],
                "criticalCount": proposed[1],
            },
            "delta": {
                "warningCount": proposed[0] - current[0],
                "criticalCount": proposed[1] - current[1],
            },
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_rfqs(
        self,
        organization_id: int | None = None,
        tier: ServiceTier | None = None,
        limit: int | None = None,
    ) -> list[Rfq]:
        query = (
            self._session.query(Rfq)
            .options(selectinload(Rfq.offers), selectinload(Rfq.events))
            .filter(Rfq.status.in_([status.value for status in OPEN_RFQ_STATUSES]))
        )
        if organization_id is not None:
            query = query.join(User, User.id == Rfq.user_id).filter(
                User.organization_id == organization_id
            )
        if tier is not None:
            query = query.filter(Rfq.service_tier == tier.value)
        query = query.order_by(Rfq.created_at.desc(), Rfq.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def _tier_thresholds(
        self, organization_id: int | None
    ) -> dict[ServiceTier, tuple[float, float]]:
        return {tier: self._policies.thresholds_for(organization_id, tier) for tier in ServiceTier}

    def _escalations(
        self,
        organization_id: int | None,
        thresholds: dict[ServiceTier, tuple[float, float]],
    ) -> list[dict[str, Any]]:
        now = self._clock()
        items = []
        for rfq in self._open_rfqs(
            organization_id, limit=self._settings.priority_queue_scan_limit
        ):
            tier = _coerce_tier(rfq.service_tier) or ServiceTier.STANDARD
            warning, critical = thresholds[tier]
            snapshot = score(rfq.created_at, resolve_target_hours(rfq), now, warning, critical)
            level = escalation_level(snapshot)
            if level is None:
                continue
            items.append(
                {
                    "rfqId": rfq.id,
                    "serviceTier": rfq.service_tier,
                    "status": rfq.status,
                    "ageHours": math.floor(snapshot.age_hours),
                    "slaTargetHours": snapshot.target_hours,
                    "escalationLevel": level,
                    "hasOffer": rfq.has_active_offer,
                }
            )
        items.sort(key=lambda item: item["ageHours"], reverse=True)
        return items[: self._settings.escalation_queue_limit]

    def _sample(self, organization_id: int, tier: ServiceTier) -> list[SlaSnapshot]:
        now = self._clock()
        return [
            score(rfq.created_at, resolve_target_hours(rfq), now)
            for rfq in self._open_rfqs(
                organization_id, tier, limit=self._settings.simulation_sample_limit
            )
        ]

    @staticmethod
    def _count(sample: list[SlaSnapshot], warning: float, critical: float) -> tuple[int, int]:
        warning_count = sum(1 for snapshot in sample if snapshot.ratio >= warning)
        critical_count = sum(1 for snapshot in sample if snapshot.ratio >= critical)
        return warning_count, critical_count
