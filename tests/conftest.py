import sys
import pytest
from pathlib import Path

# 确保项目根目录在 sys.path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from core.exceptions import RequestNotFound
from data_manager.schema import Loan


class FakeStore:
    """内存存储，可注入失败与回调"""

    def __init__(self):
        self.requests = {}
        self.steps = []
        self.calls = {"insert_request": 0, "insert_workflow_steps": 0}
        self.failures = {"insert_request": 0, "insert_workflow_steps": 0}
        self.on_insert_request = None

    def _maybe_fail(self, op):
        self.calls[op] += 1
        if self.failures[op] > 0:
            self.failures[op] -= 1
            raise IOError(f"{op} unavailable")

    def insert_request(self, record):
        if self.on_insert_request is not None:
            self.on_insert_request(record)
        self._maybe_fail("insert_request")
        self.requests[record["id"]] = dict(record)
        return dict(record)

    def insert_workflow_steps(self, steps):
        self._maybe_fail("insert_workflow_steps")
        self.steps.extend(dict(s) for s in steps)

    def update_request(self, request_id, updates):
        if request_id not in self.requests:
            raise RequestNotFound(request_id)
        self.requests[request_id].update(updates)

    def update_workflow_step(self, request_id, step_name, updates):
        matched = [
            s for s in self.steps
            if s["topup_request_id"] == request_id and s["step_name"] == step_name
        ]
        if not matched:
            raise RequestNotFound(f"{request_id}/{step_name}")
        for step in matched:
            step.update(updates)

    def get_request(self, request_id):
        record = self.requests.get(request_id)
        return dict(record) if record is not None else None

    def list_requests(self, status=None, client_id=None):
        return [
            dict(r) for r in self.requests.values()
            if (status is None or r["status"] == status)
            and (client_id is None or r["client_id"] == client_id)
        ]

    def list_workflow_steps(self, request_id):
        steps = [dict(s) for s in self.steps if s["topup_request_id"] == request_id]
        return sorted(steps, key=lambda s: s["step_order"])


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def large_loan():
    """剩余本金 100 万，月收入 50 万"""
    return Loan(
        loan_id="L-1001",
        client_id="C-1001",
        outstanding_balance=1_000_000,
        interest_rate=12.5,
        remaining_months=12,
        monthly_payment=50_000,
        monthly_income=500_000,
        payment_history_percentage=95,
    )


@pytest.fixture
def small_loan():
    """剩余本金 2 万，DTI 18%"""
    return Loan(
        loan_id="L-2001",
        client_id="C-2001",
        outstanding_balance=20_000,
        interest_rate=12,
        remaining_months=12,
        monthly_payment=1_800,
        monthly_income=10_000,
        payment_history_percentage=100,
    )


@pytest.fixture
def high_dti_loan():
    """收入较低，合并后 DTI 超过 40%"""
    return Loan(
        loan_id="L-3001",
        client_id="C-3001",
        outstanding_balance=20_000,
        interest_rate=12,
        remaining_months=12,
        monthly_payment=1_800,
        monthly_income=5_000,
        payment_history_percentage=90,
    )


@pytest.fixture
def ready_session():
    """返回一个函数：把向导推进到确认页"""
    from datetime import datetime
    from config.constants import StrategyKind
    from core.submission import TopUpWizardSession
    from data_manager.schema import RequirementsChecklist, SubmissionDetails

    def _ready(loan, store, kind=StrategyKind.CONSOLIDATION, applied=None,
               now=datetime(2026, 3, 14, 9, 30)):
        session = TopUpWizardSession(loan, store, run_id="run-1", clock=lambda: now)
        assert session.next().accepted
        if applied is not None:
            session.set_allocation(applied)
        assert session.select(kind).accepted
        assert session.next().accepted
        session.set_details(SubmissionDetails(
            disbursement_method="mpesa",
            disbursement_details={"phone": "0712345678"},
            requirements_checklist=RequirementsChecklist(client_informed=True, consent_obtained=True),
            staff_notes="Walk-in client",
        ))
        assert session.next().accepted
        return session

    return _ready
