"""
HTTP tests for the RFQ approval endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from services.sourcing.app.models.enums import ServiceTier, TeamRole
from tests.sourcing.factories import make_organization, make_policy, make_rfq, make_user


@pytest.fixture
def setup(db_session: Session):
    org = make_organization(db_session)
    owner = make_user(db_session, organization=org)
    approvers = [
        make_user(db_session, organization=org, team_role=TeamRole.APPROVER)
        for _ in range(2)
    ]
    outsider = make_user(db_session)
    make_policy(db_session, org, ServiceTier.ENTERPRISE, required_approvals=2)
    rfq = make_rfq(db_session, owner, tier=ServiceTier.ENTERPRISE)
    db_session.commit()
    return {"org": org, "owner": owner, "approvers": approvers, "outsider": outsider, "rfq": rfq}


def _request(client: TestClient, rfq_id: int, headers: dict, **body):
    return client.post(f"/v1/rfqs/{rfq_id}/approvals", json=body, headers=headers)


class TestRequestApproval:
    def test_owner_opens_request(self, client: TestClient, auth_headers, setup):
        response = _request(
            client, setup["rfq"].id, auth_headers(setup["owner"]), note="  Sign-off please  "
        )

        assert response.status_code == 201
        body = response.json()
        assert body["approval"]["status"] == "PENDING"
        assert body["approval"]["note"] == "Sign-off please"
        assert body["approval"]["requiredApprovals"] == 2
        assert body["approval"]["candidateApproverIds"] == [a.id for a in setup["approvers"]]
        assert body["routing"] == {
            "requiredApprovals": 2,
            "policyId": body["routing"]["policyId"],
            "policySource": "organization",
            "assigneeCount": 2,
        }

    def test_requires_authentication(self, client: TestClient, setup):
        response = client.post(f"/v1/rfqs/{setup['rfq'].id}/approvals", json={})

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_rejects_garbage_token(self, client: TestClient, setup):
        response = _request(client, setup["rfq"].id, {"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_non_owner_forbidden(self, client: TestClient, auth_headers, setup):
        response = _request(client, setup["rfq"].id, auth_headers(setup["outsider"]))

        assert response.status_code == 403
        assert response.json()["error_code"] == "forbidden"

    def test_unknown_rfq(self, client: TestClient, auth_headers, setup):
        response = _request(client, 999_999, auth_headers(setup["owner"]))

        assert response.status_code == 404
        assert response.json() == {"detail": "RFQ not found", "error_code": "not_found"}

    @pytest.mark.parametrize("override", [0, 6])
    def test_override_out_of_range(self, client: TestClient, auth_headers, setup, override):
        response = _request(
            client, setup["rfq"].id, auth_headers(setup["owner"]), requiredApprovals=override
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "invalid_input"

    def test_override_must_be_integer(self, client: TestClient, auth_headers, setup):
        response = _request(
            client, setup["rfq"].id, auth_headers(setup["owner"]), requiredApprovals="lots"
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    def test_second_pending_request_conflicts(self, client: TestClient, auth_headers, setup):
        headers = auth_headers(setup["owner"])
        assert _request(client, setup["rfq"].id, headers).status_code == 201

        response = _request(client, setup["rfq"].id, headers)

        assert response.status_code == 409
        assert response.json()["detail"] == "There is already a pending approval for this RFQ."


class TestDecision:
    @pytest.fixture
    def approval_id(self, client: TestClient, auth_headers, setup):
        response = _request(client, setup["rfq"].id, auth_headers(setup["owner"]))
        return response.json()["approval"]["id"]

    def _decide(self, client, setup, approval_id, headers, **body):
        return client.post(
            f"/v1/rfqs/{setup['rfq'].id}/approvals/{approval_id}/decision",
            json=body,
            headers=headers,
        )

    def test_quorum_reached_after_second_approval(self, client, auth_headers, setup, approval_id):
        a1, a2 = setup["approvers"]

        first = self._decide(client, setup, approval_id, auth_headers(a1), status="APPROVED")
        assert first.status_code == 200
        assert first.json()["approval"]["status"] == "PENDING"
        assert first.json()["approvedCount"] == 1

        second = self._decide(
            client, setup, approval_id, auth_headers(a2),
            status="approved", decisionNote="Looks good",
        )

        body = second.json()
        assert second.status_code == 200
        assert body["approval"]["status"] == "APPROVED"
        assert body["approval"]["approverId"] == a2.id
        assert body["approval"]["decisionNote"] == "Looks good"
        assert body["approval"]["decidedAt"].startswith("2026-03-02T12:00:00")
        assert body["approvedCount"] == 2
        assert body["rejectedCount"] == 0
        assert len(body["approval"]["decisions"]) == 2

    def test_single_rejection_vetoes(self, client, auth_headers, setup, approval_id):
        response = self._decide(
            client, setup, approval_id, auth_headers(setup["approvers"][0]), status="REJECTED"
        )

        assert response.json()["approval"]["status"] == "REJECTED"
        assert response.json()["rejectedCount"] == 1

    def test_decided_request_conflicts(self, client, auth_headers, setup, approval_id):
        a1, a2 = setup["approvers"]
        self._decide(client, setup, approval_id, auth_headers(a1), status="REJECTED")

        response = self._decide(client, setup, approval_id, auth_headers(a2), status="APPROVED")

        assert response.status_code == 409

    def test_invalid_status(self, client, auth_headers, setup, approval_id):
        response = self._decide(
            client, setup, approval_id, auth_headers(setup["approvers"][0]), status="MAYBE"
        )

        assert response.status_code == 400

    def test_missing_status(self, client, auth_headers, setup, approval_id):
        response = self._decide(client, setup, approval_id, auth_headers(setup["approvers"][0]))
        assert response.status_code == 422

    def test_ineligible_approver(self, client, auth_headers, setup, approval_id):
        response = self._decide(
            client, setup, approval_id, auth_headers(setup["outsider"]), status="APPROVED"
        )
        assert response.status_code == 403

    def test_approval_of_another_rfq_not_found(self, client, auth_headers, setup, db_session, approval_id):
        other = make_rfq(db_session, setup["owner"])
        db_session.commit()

        response = client.post(
            f"/v1/rfqs/{other.id}/approvals/{approval_id}/decision",
            json={"status": "APPROVED"},
            headers=auth_headers(setup["approvers"][0]),
        )

        assert response.status_code == 404


class TestListApprovals:
    def test_owner_sees_history(self, client, auth_headers, setup):
        headers = auth_headers(setup["owner"])
        _request(client, setup["rfq"].id, headers)

        response = client.get(f"/v1/rfqs/{setup['rfq'].id}/approvals", headers=headers)

        assert response.status_code == 200
        approvals = response.json()["approvals"]
        assert len(approvals) == 1
        assert approvals[0]["rfqId"] == setup["rfq"].id

    def test_outsider_forbidden(self, client, auth_headers, setup):
        response = client.get(
            f"/v1/rfqs/{setup['rfq'].id}/approvals", headers=auth_headers(setup["outsider"])
        )
        assert response.status_code == 403
