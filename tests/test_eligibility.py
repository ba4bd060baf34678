"""资格审核测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dataclasses import replace
import pytest

from config.constants import StrategyKind
from config.policy import DEFAULT_POLICY
from core.eligibility import (
    check_topup_eligibility,
    recommend_strategy,
    max_exposure,
    ELIGIBLE_REASON,
)


class TestEligibleLoan:
    def test_large_loan_limits(self, large_loan):
        verdict = check_topup_eligibility(large_loan)
        assert verdict.is_eligible
        assert verdict.reason == ELIGIBLE_REASON
        assert max_exposure(large_loan) == 3_000_000
        assert verdict.max_topup_amount == 2_000_000
        assert verdict.failed_criteria == []

    def test_income_cap_applies(self, small_loan):
        """上限取 敞口余量 与 6 个月收入 的较小者"""
        loan = replace(small_loan, outstanding_balance=1_000)
        verdict = check_topup_eligibility(loan)
        assert verdict.max_topup_amount == 59_000
        loan = replace(small_loan, monthly_income=20_000, monthly_payment=1_000)
        verdict = check_topup_eligibility(loan)
        assert verdict.max_topup_amount == min(120_000 - 20_000, 6 * 20_000)

    def test_recommendation_present_when_eligible(self, small_loan):
        verdict = check_topup_eligibility(small_loan)
        assert verdict.recommended_strategy == StrategyKind.NET_TOPUP


class TestIneligibleLoan:
    def test_payment_history(self, small_loan):
        verdict = check_topup_eligibility(replace(small_loan, payment_history_percentage=79))
        assert not verdict.is_eligible
        assert verdict.reason == "Payment history below 80%"
        assert verdict.max_topup_amount == 0
        assert verdict.recommended_strategy is None

    def test_past_due(self, small_loan):
        verdict = check_topup_eligibility(replace(small_loan, days_past_due=1))
        assert verdict.reason == "Loan is past due"

    def test_dti_at_limit_fails(self, small_loan):
        verdict = check_topup_eligibility(replace(small_loan, monthly_payment=8_000))
        assert verdict.reason == "DTI ratio exceeds 80%"

    def test_exposure_limit(self, small_loan):
        verdict = check_topup_eligibility(replace(small_loan, outstanding_balance=60_000))
        assert verdict.reason == "Exceeds maximum exposure limit"

    def test_first_failure_wins(self, small_loan):
        loan = replace(small_loan, payment_history_percentage=50, days_past_due=10)
        verdict = check_topup_eligibility(loan)
        assert verdict.reason == "Payment history below 80%"
        assert verdict.failed_criteria == ["payment_history", "days_overdue"]

    def test_thresholds_follow_policy(self, small_loan):
        policy = replace(DEFAULT_POLICY, min_payment_history_pct=99)
        verdict = check_topup_eligibility(replace(small_loan, payment_history_percentage=98), policy)
        assert verdict.reason == "Payment history below 99%"


class TestRecommendStrategy:
    @pytest.mark.parametrize("amount,expected", [
        (1_500_000, StrategyKind.SETTLEMENT_PLUS_NEW),
        (1_000_000, StrategyKind.CONSOLIDATION),
        (900_000, StrategyKind.CONSOLIDATION),
        (500_000, StrategyKind.CONSOLIDATION),
        (400_000, StrategyKind.NET_TOPUP),
    ])
    def test_by_ratio(self, large_loan, amount, expected):
        assert recommend_strategy(large_loan, amount) == expected

    def test_zero_balance(self, small_loan):
        loan = replace(small_loan, outstanding_balance=0)
        assert recommend_strategy(loan, 1_000) == StrategyKind.SETTLEMENT_PLUS_NEW
        assert recommend_strategy(loan, 0) == StrategyKind.NET_TOPUP
