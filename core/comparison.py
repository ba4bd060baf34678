"""现有贷款与各策略对比"""
from typing import List

import pandas as pd

from config.constants import StrategyKind
from core.calculator import affordability_band
from core.strategies import Strategy
from data_manager.schema import Loan

COMPARISON_COLUMNS = [
    "option", "label", "monthly_payment", "total_debt", "tenure",
    "dti_ratio", "affordability", "loan_status", "net_cash_to_client",
    "payment_change_pct", "is_improvement", "debt_change_pct", "is_debt_reduction",
]

# 各策略执行后旧贷款的状态
OLD_LOAN_STATUS = {
    StrategyKind.CONSOLIDATION: "closed",
    StrategyKind.SETTLEMENT_PLUS_NEW: "closed",
    StrategyKind.NET_TOPUP: "reduced",
    StrategyKind.STACKING: "active",
}


def calc_percentage_change(old_value: float, new_value: float) -> float:
    """变化百分比，取整；原值为 0 时返回 0"""
    if old_value == 0:
        return 0.0
    return float(round((new_value - old_value) / old_value * 100))


def build_comparison_matrix(loan: Loan, strategies: List[Strategy]) -> pd.DataFrame:
    """
    对比现有贷款与可选策略的关键指标。
    第一行为现有贷款，其后每个可用策略一行；不可用策略不参与对比。
    """
    current_payment = loan.monthly_payment
    current_debt = loan.outstanding_balance

    rows = [{
        "option": "current",
        "label": "Current Loan",
        "monthly_payment": current_payment,
        "total_debt": current_debt,
        "tenure": loan.remaining_months,
        "dti_ratio": loan.current_dti,
        "affordability": affordability_band(loan.current_dti),
        "loan_status": loan.status,
        "net_cash_to_client": 0.0,
        "payment_change_pct": 0.0,
        "is_improvement": False,
        "debt_change_pct": 0.0,
        "is_debt_reduction": False,
    }]

    for strategy in strategies:
        if not strategy.is_available:
            continue
        calc = strategy.calculations
        rows.append({
            "option": strategy.kind.value,
            "label": strategy.name,
            "monthly_payment": calc.new_monthly_payment,
            "total_debt": calc.total_debt,
            "tenure": calc.tenure,
            "dti_ratio": calc.dti_ratio,
            "affordability": affordability_band(calc.dti_ratio),
            "loan_status": OLD_LOAN_STATUS[strategy.kind],
            "net_cash_to_client": calc.net_cash_to_client,
            "payment_change_pct": calc_percentage_change(current_payment, calc.new_monthly_payment),
            "is_improvement": calc.new_monthly_payment < current_payment,
            "debt_change_pct": calc_percentage_change(current_debt, calc.total_debt),
            "is_debt_reduction": calc.total_debt < current_debt,
        })

    return pd.DataFrame(rows, columns=COMPARISON_COLUMNS)
