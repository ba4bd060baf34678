"""方案对比测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.comparison import build_comparison_matrix, calc_percentage_change
from core.statistics import has_pending_request, summarize_requests
from core.strategies import generate_strategies


class TestComparisonMatrix:
    def test_current_row_first(self, small_loan):
        df = build_comparison_matrix(small_loan, generate_strategies(small_loan, 10_000))
        current = df.iloc[0]
        assert current["option"] == "current"
        assert current["monthly_payment"] == 1_800
        assert current["dti_ratio"] == 18
        assert current["affordability"] == "excellent"
        assert list(df["option"]) == ["current", "consolidation", "net_topup", "stacking"]

    def test_changes_against_current(self, small_loan):
        df = build_comparison_matrix(small_loan, generate_strategies(small_loan, 10_000)).set_index("option")
        assert df.loc["consolidation", "payment_change_pct"] == 48
        assert not df.loc["consolidation", "is_improvement"]
        assert df.loc["consolidation", "debt_change_pct"] == 50
        assert df.loc["consolidation", "loan_status"] == "closed"
        assert df.loc["net_topup", "payment_change_pct"] == -16
        assert df.loc["net_topup", "is_improvement"]
        assert df.loc["net_topup", "is_debt_reduction"]
        assert df.loc["net_topup", "loan_status"] == "reduced"
        assert df.loc["stacking", "loan_status"] == "active"

    def test_unavailable_strategies_excluded(self, high_dti_loan):
        df = build_comparison_matrix(high_dti_loan, generate_strategies(high_dti_loan, 10_000))
        assert "stacking" not in list(df["option"])


class TestPercentageChange:
    def test_basic(self):
        assert calc_percentage_change(100, 150) == 50
        assert calc_percentage_change(200, 150) == -25

    def test_zero_base(self):
        assert calc_percentage_change(0, 500) == 0


class TestStatistics:
    REQUESTS = [
        {"client_id": "C-1", "status": "pending_credit_review"},
        {"client_id": "C-1", "status": "rejected"},
        {"client_id": "C-2", "status": "pending_committee"},
        {"client_id": "C-3", "status": "approved"},
        {"client_id": "C-4", "status": "disbursed"},
    ]

    def test_summary(self):
        assert summarize_requests(self.REQUESTS) == {
            "total": 5, "pending": 2, "approved": 1, "disbursed": 1, "rejected": 1,
        }

    def test_empty(self):
        assert summarize_requests([])["total"] == 0

    def test_pending_check(self):
        assert has_pending_request(self.REQUESTS, "C-1")
        assert has_pending_request(self.REQUESTS, "C-2")
        assert not has_pending_request(self.REQUESTS, "C-3")
        assert not has_pending_request([], "C-1")
