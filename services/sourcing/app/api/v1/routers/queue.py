from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...deps import get_clock, get_db_session, get_notifier, require_admin
from ....core.clock import Clock
from ....core.logging import get_logger
from ....models.organizations import User
from ....schemas.queue import (
    EscalationQueueOut,
    EscalationRunOut,
    PriorityQueueOut,
    SlaSweepOut,
)
from ....services.notifications import Notifier
from ....services.organizations import OrganizationDirectory
from ....services.sla import SlaService

router = APIRouter(prefix="/v1/admin", tags=["queue"])
logger = get_logger(__name__)


def _organization_scope(session: Session, actor: User) -> int | None:
    organization_id = OrganizationDirectory(session).resolve_organization(actor.id)
    session.commit()
    return organization_id


@router.get("/queue/priority", response_model=PriorityQueueOut)
def priority_queue(
    limit: int | None = Query(None),
    _: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
) -> PriorityQueueOut:
    """Open RFQs ranked by SLA pressure, tier and offer coverage."""
    queue = SlaService(session, clock=clock).priority_queue(limit)
    return PriorityQueueOut.model_validate({"queue": queue})


@router.get("/queue/escalations", response_model=EscalationQueueOut)
def escalation_queue(
    actor: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
) -> EscalationQueueOut:
    organization_id = _organization_scope(session, actor)
    result = SlaService(session, clock=clock).escalation_queue(organization_id)
    return EscalationQueueOut.model_validate(result)


@router.post("/queue/escalations", response_model=EscalationRunOut)
def run_escalations(
    actor: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> EscalationRunOut:
    """Notify admins about escalated RFQs; safe to re-run within a day."""
    organization_id = _organization_scope(session, actor)
    result = SlaService(session, notifier, clock=clock).run_escalation_notifications(
        organization_id, actor_id=actor.id
    )
    logger.info("sla.escalation.triggered", actor_id=actor.id, **result)
    return EscalationRunOut(**result)


@router.post("/notifications/sla-check", response_model=SlaSweepOut)
def sla_check(
    actor: User = Depends(require_admin),
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> SlaSweepOut:
    result = SlaService(session, notifier, clock=clock).run_reminder_sweep()
    logger.info("sla.sweep.triggered", actor_id=actor.id, **result)
    return SlaSweepOut(**result)
