"""还款计划与真实年化率测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date
import pytest

from config.constants import StrategyKind
from core.exceptions import InvariantViolation
from core.schedule import (
    generate_schedule,
    generate_strategy_schedule,
    calc_irr,
    calc_effective_rate,
)
from core.strategies import find_strategy, generate_strategies


class TestGenerateSchedule:
    def test_amortizes_to_zero(self):
        df = generate_schedule(10_000, 12, 12, date(2026, 1, 15), repayment_day=15)
        assert len(df) == 12
        assert df.iloc[0]["monthly_payment"] == 888.49
        assert df.iloc[0]["due_date"] == "2026-02-15"
        assert df.iloc[-1]["remaining_principal"] == 0
        assert df.iloc[-1]["cumulative_principal"] == pytest.approx(10_000, abs=0.01)

    def test_month_end_clamp(self):
        df = generate_schedule(10_000, 12, 3, date(2026, 1, 31), repayment_day=31)
        assert list(df["due_date"]) == ["2026-02-28", "2026-03-31", "2026-04-30"]

    def test_zero_rate(self):
        df = generate_schedule(12_000, 0, 12, date(2026, 1, 1))
        assert df["interest"].sum() == 0
        assert df.iloc[0]["monthly_payment"] == 1_000

    def test_zero_rate_longer_than_a_year(self):
        df = generate_schedule(12_000, 0, 24, date(2026, 1, 1))
        assert df["principal"].sum() == pytest.approx(12_000)
        assert df.iloc[0]["monthly_payment"] == 500
        assert (df["remaining_principal"] >= 0).all()
        assert df.iloc[-1]["remaining_principal"] == 0

    def test_requires_tenure(self):
        with pytest.raises(InvariantViolation):
            generate_schedule(10_000, 12, 0, date(2026, 1, 1))


class TestStrategySchedule:
    def test_uses_new_principal(self, small_loan):
        consolidation = generate_strategies(small_loan, 10_000)[0]
        df = generate_strategy_schedule(small_loan, consolidation, date(2026, 1, 1))
        assert len(df) == 12
        assert df.iloc[0]["monthly_payment"] == 2665.46

    def test_empty_when_no_new_loan(self, large_loan):
        settlement = find_strategy(
            generate_strategies(large_loan, 900_000), StrategyKind.SETTLEMENT_PLUS_NEW,
        )
        assert generate_strategy_schedule(large_loan, settlement, date(2026, 1, 1)).empty


class TestIrr:
    def test_matches_nominal_rate_without_fees(self):
        schedule = generate_schedule(10_000, 12, 12, date(2026, 1, 1))
        assert calc_irr(10_000, schedule) == pytest.approx(12.68, abs=0.01)

    def test_fees_raise_effective_rate(self, small_loan):
        consolidation = generate_strategies(small_loan, 10_000)[0]
        plain = calc_effective_rate(small_loan, consolidation, 0, date(2026, 1, 1))
        with_fees = calc_effective_rate(small_loan, consolidation, 150, date(2026, 1, 1))
        assert with_fees > plain

    def test_empty_schedule(self):
        schedule = generate_schedule(10_000, 12, 12, date(2026, 1, 1)).iloc[0:0]
        assert calc_irr(10_000, schedule) == 0.0
