"""
Approval state machine for RFQ approval requests.

    PENDING ──► APPROVED
       │
       └──────► REJECTED

Both outcomes are terminal. Each eligible approver holds exactly one decision
per request (a resubmission overwrites it). After every submission the status
is recomputed from all decisions on the request: a single REJECTED decision
vetoes, otherwise the request converges to APPROVED once the approved count
reaches the snapshotted quorum.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.clock import Clock, as_utc, utcnow
from ..core.config import get_settings
from ..core.errors import (
    ConflictError,
    InvalidInputError,
    NotAuthorizedError,
    NotFoundError,
)
from ..core.logging import get_logger
from ..core.metrics import observe
from ..models.action_log import ActionLog
from ..models.approvals import ApprovalDecision, ApprovalRequest
from ..models.enums import ApprovalStatus, DecisionStatus, NotificationKind
from ..models.organizations import User
from ..models.rfqs import Rfq
from .approval_router import ApprovalRouter, RoutingDecision
from .notifications import Notifier
from .organizations import OrganizationDirectory
from .policies import PolicyStore
from .team_roles import is_approver_role

logger = get_logger(__name__)

LIST_LIMIT = 20


def parse_decision_status(value: str | DecisionStatus) -> DecisionStatus:
    if isinstance(value, DecisionStatus):
        return value
    try:
        return DecisionStatus(str(value).strip().upper())
    except ValueError:
        raise InvalidInputError(f"Decision status must be APPROVED or REJECTED, got {value!r}")


def compute_final_status(
    decisions: Iterable[str | DecisionStatus], required_approvals: int
) -> ApprovalStatus:
    """Converge a request from the full set of current decisions (veto dominates)."""
    approved = rejected = 0
    for status in decisions:
        value = status.value if isinstance(status, DecisionStatus) else status
        if value == DecisionStatus.REJECTED.value:
            rejected += 1
        elif value == DecisionStatus.APPROVED.value:
            approved += 1
    if rejected > 0:
        return ApprovalStatus.REJECTED
    if approved >= required_approvals:
        return ApprovalStatus.APPROVED
    return ApprovalStatus.PENDING


@dataclass
class DecisionOutcome:
    approval: ApprovalRequest
    status: ApprovalStatus
    approved_count: int
    rejected_count: int


class ApprovalWorkflow:
    def __init__(
        self,
        session: Session,
        notifier: Notifier,
        *,
        clock: Clock = utcnow,
        router: ApprovalRouter | None = None,
    ) -> None:
        self._session = session
        self._notifier = notifier
        self._clock = clock
        policies = PolicyStore(session)
        self._directory = OrganizationDirectory(session, policies)
        self._router = router or ApprovalRouter(self._directory, policies)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def request_approval(
        self,
        rfq_id: int,
        requester_id: int,
        *,
        note: str | None = None,
        required_approvals: int | None = None,
    ) -> tuple[ApprovalRequest, RoutingDecision]:
        rfq = self._session.get(Rfq, rfq_id)
        if rfq is None:
            raise NotFoundError("RFQ not found")
        if rfq.user_id != requester_id:
            raise NotAuthorizedError("Only the RFQ owner can request approval")

        max_override = get_settings().approval_override_max
        if required_approvals is not None and not 1 <= required_approvals <= max_override:
            raise InvalidInputError(f"requiredApprovals must be between 1 and {max_override}")

        if self._pending_for(rfq_id) is not None:
            raise ConflictError("There is already a pending approval for this RFQ.")

        routing = self._router.resolve_routing(
            requester_id, rfq.service_tier, required_approvals
        )

        approval = ApprovalRequest(
            rfq_id=rfq_id,
            requester_id=requester_id,
            organization_id=routing.organization_id,
            policy_id=routing.policy_id,
            status=ApprovalStatus.PENDING.value,
            required_approvals=routing.required_approvals,
            candidate_approver_ids=list(routing.approver_ids),
            approver_id=routing.primary_approver_id,
            note=note or None,
        )
        self._session.add(approval)
        try:
            self._session.flush()
            self._audit(
                "rfq.approval.requested",
                rfq_id,
                "request",
                requester_id,
                {
                    "approvalId": approval.id,
                    "requiredApprovals": routing.required_approvals,
                    "assignedApproverIds": routing.approver_ids,
                    "policyId": routing.policy_id,
                    "policySource": routing.policy_source,
                },
            )
            self._session.commit()
        except IntegrityError:
            # Lost a race against a concurrent request for the same RFQ
            self._session.rollback()
            raise ConflictError("There is already a pending approval for this RFQ.")

        logger.info(
            "approval.requested",
            approval_id=approval.id,
            rfq_id=rfq_id,
            requester_id=requester_id,
            required_approvals=routing.required_approvals,
            pool_size=len(routing.approver_ids),
            policy_source=routing.policy_source,
        )
        observe("approvals_requested_total", routing.policy_source)

        self._notifier.notify_admins(
            NotificationKind.RFQ,
            "Approval requested",
            f"RFQ {rfq_id} has a new approval request.",
            {
                "rfqId": rfq_id,
                "approvalId": approval.id,
                "requiredApprovals": routing.required_approvals,
                "assigneeCount": len(routing.approver_ids),
                "policySource": routing.policy_source,
            },
        )
        return approval, routing

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def can_decide(self, approval: ApprovalRequest, actor: User) -> bool:
        if actor.is_admin:
            return True
        if actor.id == approval.approver_id or actor.id in (approval.candidate_approver_ids or []):
            return True
        return (
            approval.organization_id is not None
            and approval.organization_id == actor.organization_id
            and is_approver_role(actor.team_role)
        )

    def submit_decision(
        self,
        approval_id: int,
        approver_id: int,
        status: str | DecisionStatus,
        *,
        note: str | None = None,
        rfq_id: int | None = None,
    ) -> DecisionOutcome:
        """
        Record one approver's decision and recompute the request status.

        The request row is locked for the whole upsert, re-read and converge
        sequence so concurrent approvers always converge on a consistent
        decision set.

        Raises:
            InvalidInputError: status is not APPROVED/REJECTED
            NotFoundError: unknown approval (or it belongs to another RFQ)
            ConflictError: the approval is already decided
            NotAuthorizedError: the approver is not eligible
        """
        decision_status = parse_decision_status(status)

        approval = (
            self._session.query(ApprovalRequest)
            .filter(ApprovalRequest.id == approval_id)
            .with_for_update()
            .first()
        )
        if approval is None or (rfq_id is not None and approval.rfq_id != rfq_id):
            raise NotFoundError("Approval request not found")
        if not approval.is_pending:
            raise ConflictError("Approval already decided")

        actor = self._session.get(User, approver_id)
        if actor is None or not self.can_decide(approval, actor):
            raise NotAuthorizedError("Not allowed to decide this approval request")

        note = note or None
        existing = (
            self._session.query(ApprovalDecision)
            .filter(
                ApprovalDecision.approval_request_id == approval.id,
                ApprovalDecision.approver_id == approver_id,
            )
            .first()
        )
        if existing is None:
            self._session.add(
                ApprovalDecision(
                    approval_request_id=approval.id,
                    approver_id=approver_id,
                    status=decision_status.value,
                    note=note,
                )
            )
        else:
            existing.status = decision_status.value
            existing.note = note

        try:
            self._session.flush()
            statuses = [
                row[0]
                for row in self._session.query(ApprovalDecision.status)
                .filter(ApprovalDecision.approval_request_id == approval.id)
                .all()
            ]
            final = compute_final_status(statuses, approval.required_approvals)
            approved = statuses.count(DecisionStatus.APPROVED.value)
            rejected = statuses.count(DecisionStatus.REJECTED.value)

            if final != ApprovalStatus.PENDING:
                approval.status = final.value
                approval.approver_id = approver_id
                approval.decided_at = self._clock()
                approval.decision_note = note or approval.decision_note

            self._audit(
                "rfq.approval.decided",
                approval.rfq_id,
                final.value.lower(),
                approver_id,
                {
                    "approvalId": approval.id,
                    "decision": decision_status.value,
                    "status": final.value,
                    "approvedCount": approved,
                    "requiredApprovals": approval.required_approvals,
                },
            )
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            raise ConflictError("Concurrent decision from the same approver, retry")

        # Decisions were added by foreign key, not through the collection
        self._session.expire(approval, ["decisions"])

        logger.info(
            "approval.decision.recorded",
            approval_id=approval.id,
            approver_id=approver_id,
            decision=decision_status.value,
            status=final.value,
            approved_count=approved,
            rejected_count=rejected,
            required_approvals=approval.required_approvals,
        )
        observe("approvals_decisions_total", final.value)
        if final != ApprovalStatus.PENDING and approval.decided_at and approval.created_at:
            latency = (as_utc(approval.decided_at) - as_utc(approval.created_at)).total_seconds()
            observe("approvals_latency_seconds", value=max(latency, 0.0))

        self._notify_requester(approval, final, approved)
        return DecisionOutcome(approval, final, approved, rejected)

    def list_for_rfq(self, rfq_id: int, viewer_id: int) -> list[ApprovalRequest]:
        rfq = self._session.get(Rfq, rfq_id)
        if rfq is None:
            raise NotFoundError("RFQ not found")
        viewer = self._session.get(User, viewer_id)
        if viewer is None or (not viewer.is_admin and rfq.user_id != viewer_id):
            raise NotAuthorizedError("Not allowed to view approvals for this RFQ")
        return (
            self._session.query(ApprovalRequest)
            .filter(ApprovalRequest.rfq_id == rfq_id)
            .order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc())
            .limit(LIST_LIMIT)
            .all()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pending_for(self, rfq_id: int) -> ApprovalRequest | None:
        return (
            self._session.query(ApprovalRequest)
            .filter(
                ApprovalRequest.rfq_id == rfq_id,
                ApprovalRequest.status == ApprovalStatus.PENDING.value,
            )
            .first()
        )

    def _audit(
        self, rule_name: str, rfq_id: int, action: str, actor_id: int, payload: dict
    ) -> None:
        self._session.add(
            ActionLog(
                rule_name=rule_name,
                subject=f"rfq:{rfq_id}",
                action=action,
                actor_id=actor_id,
                payload=json.dumps(payload),
            )
        )

    def _notify_requester(
        self, approval: ApprovalRequest, final: ApprovalStatus, approved: int
    ) -> None:
        rfq = self._session.get(Rfq, approval.rfq_id)
        if rfq is None:
            return
        metadata = {
            "rfqId": rfq.id,
            "approvalId": approval.id,
            "status": final.value,
            "approvedCount": approved,
            "requiredApprovals": approval.required_approvals,
        }
        if final == ApprovalStatus.PENDING:
            title = "Approval step recorded"
            message = (
                f"RFQ {rfq.id} approval progress: {approved}/{approval.required_approvals}."
            )
        else:
            title = "RFQ approved" if final == ApprovalStatus.APPROVED else "RFQ rejected"
            message = f"Approval request for RFQ {rfq.id} was {final.value.lower()}."
        self._notifier.notify(rfq.user_id, NotificationKind.RFQ, title, message, metadata)
