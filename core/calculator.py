"""核心计算：月供、DTI、提前结清金额、期限分档"""
from dataclasses import dataclass
from typing import Tuple

from config.policy import TopUpPolicy, DEFAULT_POLICY
from config.settings import TENURE_TIERS, FALLBACK_TIER_TENURE
from data_manager.schema import Loan


def calc_monthly_payment(
    principal: float,
    term_months: int,
    annual_rate: float,
) -> float:
    """等额本息月供。无期限或零利率时按 12 期平摊"""
    if term_months == 0 or annual_rate == 0:
        return principal / 12
    r = annual_rate / 12 / 100
    monthly = principal * r * (1 + r) ** term_months / ((1 + r) ** term_months - 1)
    return round(monthly, 2)


def calc_total_repayment(
    principal: float,
    term_months: int,
    annual_rate: float,
) -> Tuple[float, float]:
    """返回 (总还款额, 总利息)"""
    monthly = calc_monthly_payment(principal, term_months, annual_rate)
    total = monthly * term_months
    return round(total, 2), round(total - principal, 2)


def calc_dti(monthly_income: float, monthly_payment: float) -> int:
    """月供占月收入百分比，取整"""
    if monthly_income == 0:
        return 0
    return round(monthly_payment / monthly_income * 100)


def determine_optimal_tenure(amount: float) -> int:
    for ceiling, tenure in TENURE_TIERS:
        if amount <= ceiling:
            return tenure
    return FALLBACK_TIER_TENURE


def affordability_band(dti_ratio: float) -> str:
    if dti_ratio <= 30:
        return "excellent"
    if dti_ratio <= 40:
        return "good"
    if dti_ratio <= 50:
        return "warning"
    return "critical"


@dataclass(frozen=True)
class SettlementBreakdown:
    principal_balance: float
    accrued_interest: float
    unearned_interest: float
    interest_rebate: float
    prepayment_penalty: float
    settlement_amount: float


def calc_settlement(loan: Loan, policy: TopUpPolicy = DEFAULT_POLICY) -> SettlementBreakdown:
    """提前结清金额 = 本金 + 应计利息 - 未到期利息返还"""
    balance = loan.outstanding_balance
    rate = loan.interest_rate / 100
    accrued = balance * rate * (loan.days_past_due / 30)
    unearned = balance * rate * (loan.remaining_months / 12) - accrued
    rebate = unearned * policy.interest_rebate_share
    penalty = policy.prepayment_penalty
    return SettlementBreakdown(
        principal_balance=balance,
        accrued_interest=accrued,
        unearned_interest=unearned,
        interest_rebate=rebate,
        prepayment_penalty=penalty,
        settlement_amount=balance + accrued - rebate + penalty,
    )


def calc_interest_savings(
    loan: Loan,
    new_principal: float,
    new_tenure: int,
) -> float:
    """旧贷款剩余单利 - 新贷款单利，不低于 0"""
    rate = loan.interest_rate / 100
    remaining_interest = loan.outstanding_balance * rate * (loan.remaining_months / 12)
    new_interest = new_principal * rate * (new_tenure / 12)
    return round(max(0.0, remaining_interest - new_interest), 2)
