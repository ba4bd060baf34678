"""审批流水线测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime
import pytest

from config.constants import RequestStatus, StepStatus
from core.approval import next_statuses, transition_request_status
from core.exceptions import InvalidStatusTransition, RequestNotFound, ValidationError

LATER = datetime(2026, 3, 15, 11, 0)


@pytest.fixture
def request_id(small_loan, store, ready_session):
    return ready_session(small_loan, store).submit("officer-1").request["id"]


def _step(store, request_id, name):
    return next(s for s in store.list_workflow_steps(request_id) if s["step_name"] == name)


class TestNextStatuses:
    def test_pipeline(self):
        assert next_statuses("pending_credit_review") == [
            RequestStatus.PENDING_SUPERVISOR, RequestStatus.REJECTED,
        ]
        assert next_statuses("approved") == [RequestStatus.DISBURSED, RequestStatus.REJECTED]

    def test_terminal(self):
        assert next_statuses("disbursed") == []
        assert next_statuses("rejected") == []


class TestTransition:
    def test_credit_review_passes(self, store, request_id):
        request = transition_request_status(
            store, request_id, "pending_supervisor", "analyst-2", "Docs verified", now=LATER,
        )
        assert request["status"] == "pending_supervisor"
        assert store.get_request(request_id)["updated_at"] == LATER
        step = _step(store, request_id, "supervisor_approval")
        assert step["status"] == StepStatus.APPROVED.value
        assert step["reviewed_by"] == "analyst-2"
        assert step["comments"] == "Docs verified"
        assert _step(store, request_id, "credit_officer_review")["status"] == "pending"

    def test_full_pipeline(self, store, request_id):
        for status in ("pending_supervisor", "pending_committee", "approved", "disbursed"):
            transition_request_status(store, request_id, status, "manager-1", now=LATER)
        request = store.get_request(request_id)
        assert request["status"] == "disbursed"
        assert request["approved_by"] == "manager-1"
        assert request["approved_at"] == LATER
        assert request["disbursed_at"] == LATER
        statuses = {s["step_name"]: s["status"] for s in store.list_workflow_steps(request_id)}
        assert statuses == {
            "credit_officer_review": "pending",
            "supervisor_approval": "approved",
            "committee_approval": "approved",
            "disbursement": "approved",
        }

    def test_reject_leaves_steps_untouched(self, store, request_id):
        transition_request_status(store, request_id, "pending_supervisor", "analyst-2")
        transition_request_status(store, request_id, "rejected", "supervisor-3", "Income unverified", now=LATER)
        request = store.get_request(request_id)
        assert request["status"] == "rejected"
        assert request["rejected_at"] == LATER
        steps = store.list_workflow_steps(request_id)
        assert [s["status"] for s in steps if s["step_name"] != "supervisor_approval"] == ["pending"] * 3
        assert _step(store, request_id, "supervisor_approval")["comments"] is None

    def test_cannot_skip_stage(self, store, request_id):
        with pytest.raises(InvalidStatusTransition):
            transition_request_status(store, request_id, "approved", "manager-1")

    def test_terminal_is_final(self, store, request_id):
        transition_request_status(store, request_id, "rejected", "analyst-2")
        with pytest.raises(InvalidStatusTransition):
            transition_request_status(store, request_id, "pending_supervisor", "analyst-2")

    def test_unknown_status(self, store, request_id):
        with pytest.raises(ValidationError):
            transition_request_status(store, request_id, "on_hold", "analyst-2")

    def test_requires_actor(self, store, request_id):
        with pytest.raises(ValidationError):
            transition_request_status(store, request_id, "pending_supervisor", "")

    def test_missing_request(self, store):
        with pytest.raises(RequestNotFound):
            transition_request_status(store, "nope", "pending_supervisor", "analyst-2")
