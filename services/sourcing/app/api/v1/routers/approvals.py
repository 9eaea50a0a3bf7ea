"""
RFQ approval endpoints.

- Request approval for an RFQ (owner only); routing is resolved and snapshotted
- Record an approver's decision; the request converges on every submission
- List the approval history of an RFQ (owner or admin)
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ...deps import get_clock, get_current_actor, get_db_session, get_notifier
from ....core.clock import Clock
from ....core.logging import get_logger
from ....models.organizations import User
from ....schemas.approvals import (
    ApprovalCreatedOut,
    ApprovalDecisionCreate,
    ApprovalDecisionResultOut,
    ApprovalListOut,
    ApprovalRequestCreate,
    ApprovalRequestOut,
    RoutingOut,
)
from ....services.approvals import ApprovalWorkflow
from ....services.notifications import Notifier

router = APIRouter(prefix="/v1/rfqs/{rfq_id}/approvals", tags=["approvals"])
logger = get_logger(__name__)


def _db_unavailable(event: str, exc: Exception) -> HTTPException:
    logger.error(event, error=str(exc), exc_info=True)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Database temporarily unavailable",
    )


@router.get("", response_model=ApprovalListOut)
def list_approvals(
    rfq_id: int,
    actor: User = Depends(get_current_actor),
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> ApprovalListOut:
    """Most recent approval requests for the RFQ, newest first (at most 20)."""
    try:
        rows = ApprovalWorkflow(session, notifier).list_for_rfq(rfq_id, actor.id)
        return ApprovalListOut(
            approvals=[ApprovalRequestOut.model_validate(row) for row in rows]
        )
    except OperationalError as e:
        raise _db_unavailable("approval.list.db_error", e)


@router.post(
    "",
    response_model=ApprovalCreatedOut,
    status_code=status.HTTP_201_CREATED,
)
def request_approval(
    rfq_id: int,
    payload: ApprovalRequestCreate,
    actor: User = Depends(get_current_actor),
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> ApprovalCreatedOut:
    """
    Open an approval request for the RFQ.

    Fails with 409 while another request for the same RFQ is still pending.
    """
    try:
        workflow = ApprovalWorkflow(session, notifier, clock=clock)
        approval, routing = workflow.request_approval(
            rfq_id,
            actor.id,
            note=payload.note,
            required_approvals=payload.required_approvals,
        )
    except OperationalError as e:
        raise _db_unavailable("approval.request.db_error", e)

    return ApprovalCreatedOut(
        approval=ApprovalRequestOut.model_validate(approval),
        routing=RoutingOut(
            required_approvals=routing.required_approvals,
            policy_id=routing.policy_id,
            policy_source=routing.policy_source,
            assignee_count=len(routing.approver_ids),
        ),
    )


@router.post("/{approval_id}/decision", response_model=ApprovalDecisionResultOut)
def decide(
    rfq_id: int,
    approval_id: int,
    payload: ApprovalDecisionCreate,
    actor: User = Depends(get_current_actor),
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> ApprovalDecisionResultOut:
    try:
        outcome = ApprovalWorkflow(session, notifier, clock=clock).submit_decision(
            approval_id,
            actor.id,
            payload.status,
            note=payload.decision_note,
            rfq_id=rfq_id,
        )
    except OperationalError as e:
        raise _db_unavailable("approval.decision.db_error", e)

    return ApprovalDecisionResultOut(
        approval=ApprovalRequestOut.model_validate(outcome.approval),
        approved_count=outcome.approved_count,
        rejected_count=outcome.rejected_count,
    )
