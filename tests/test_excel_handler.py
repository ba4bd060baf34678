"""Excel 数据层测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import pandas as pd

from config.constants import SHEET_TOPUP_REQUESTS, SHEET_WORKFLOW_STEPS, SHEET_CONFIG
from config.policy import load_policy, DEFAULT_POLICY
from core.approval import transition_request_status
from core.exceptions import RequestNotFound
from data_manager.excel_handler import (
    init_excel, read_sheet,
    get_config, set_config, get_all_config,
    ExcelRequestStore,
)


@pytest.fixture
def temp_excel(tmp_path):
    """创建临时 Excel 文件"""
    filepath = tmp_path / "test_data.xlsx"
    init_excel(filepath)
    return filepath


class TestInitExcel:
    def test_creates_file(self, temp_excel):
        assert temp_excel.exists()

    def test_has_all_sheets(self, temp_excel):
        xls = pd.ExcelFile(temp_excel, engine="openpyxl")
        assert SHEET_TOPUP_REQUESTS in xls.sheet_names
        assert SHEET_WORKFLOW_STEPS in xls.sheet_names
        assert SHEET_CONFIG in xls.sheet_names

    def test_default_config(self, temp_excel):
        val = get_config("processing_fee_rate", temp_excel)
        assert float(val) == 0.01


class TestConfig:
    def test_set_and_get(self, temp_excel):
        set_config("stacking_max_dti", "35", "lower stacking limit", temp_excel)
        assert get_config("stacking_max_dti", temp_excel) == "35"

    def test_new_key(self, temp_excel):
        set_config("min_topup_amount", "1000", filepath=temp_excel)
        assert "min_topup_amount" in get_all_config(temp_excel)["key"].values

    def test_missing_key(self, temp_excel):
        assert get_config("nope", temp_excel) is None

    def test_load_policy_overlays_config(self, temp_excel):
        set_config("stacking_max_dti", "35", filepath=temp_excel)
        set_config("default_new_loan_tenure", "24", filepath=temp_excel)
        policy = load_policy(temp_excel)
        assert policy.stacking_max_dti == 35.0
        assert policy.default_new_loan_tenure == 24
        assert policy.processing_fee_rate == DEFAULT_POLICY.processing_fee_rate


class TestRequestStore:
    def test_empty_store(self, temp_excel):
        store = ExcelRequestStore(temp_excel)
        assert store.list_requests() == []
        assert store.get_request("missing") is None

    def test_submit_round_trip(self, temp_excel, small_loan, ready_session):
        store = ExcelRequestStore(temp_excel)
        request = ready_session(small_loan, store).submit("officer-1").request

        saved = store.get_request(request["id"])
        assert saved["request_number"] == request["request_number"]
        assert saved["requested_amount"] == 10_000
        assert saved["strategy_details"]["new_loan_amount"] == 30_000
        assert saved["disbursement_details"] == {"phone": "0712345678"}
        assert saved["requirements_checklist"]["client_informed"] is True
        assert saved["dti_override_reason"] is None
        assert saved["status"] == "pending_credit_review"

        steps = store.list_workflow_steps(request["id"])
        assert [s["step_order"] for s in steps] == [1, 2, 3, 4]
        assert steps[0]["assigned_to"] is None

    def test_filters(self, temp_excel, small_loan, high_dti_loan, ready_session):
        store = ExcelRequestStore(temp_excel)
        ready_session(small_loan, store).submit("officer-1")
        ready_session(high_dti_loan, store).submit("officer-1")
        assert len(store.list_requests()) == 2
        assert len(store.list_requests(client_id=small_loan.client_id)) == 1
        assert store.list_requests(status="approved") == []

    def test_status_transition_persists(self, temp_excel, small_loan, ready_session):
        store = ExcelRequestStore(temp_excel)
        request_id = ready_session(small_loan, store).submit("officer-1").request["id"]
        transition_request_status(store, request_id, "pending_supervisor", "analyst-2", "ok")

        assert store.get_request(request_id)["status"] == "pending_supervisor"
        steps = store.list_workflow_steps(request_id)
        assert steps[0]["status"] == "pending"
        step = steps[1]
        assert step["step_name"] == "supervisor_approval"
        assert step["status"] == "approved"
        assert step["reviewed_by"] == "analyst-2"
        assert step["comments"] == "ok"

    def test_update_missing_request_raises(self, temp_excel, small_loan, ready_session):
        store = ExcelRequestStore(temp_excel)
        request_id = ready_session(small_loan, store).submit("officer-1").request["id"]
        with pytest.raises(RequestNotFound):
            store.update_request("missing", {"status": "approved"})
        with pytest.raises(RequestNotFound):
            store.update_workflow_step("missing", "supervisor_approval", {"status": "approved"})
        with pytest.raises(RequestNotFound):
            store.update_workflow_step(request_id, "site_visit", {"status": "approved"})
        assert store.get_request(request_id)["status"] == "pending_credit_review"

    def test_backups_are_capped(self, temp_excel, small_loan, ready_session):
        store = ExcelRequestStore(temp_excel)
        for _ in range(4):
            ready_session(small_loan, store).submit("officer-1")
        backups = list(temp_excel.parent.glob("test_data.xlsx.bak_*"))
        assert 0 < len(backups) <= 5
        assert len(read_sheet(SHEET_TOPUP_REQUESTS, temp_excel)) == 4
