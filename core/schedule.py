"""新贷款还款计划与真实年化率"""
import calendar
from datetime import date
from typing import Optional

import pandas as pd
from dateutil.relativedelta import relativedelta
from scipy import optimize

from config.constants import REPAYMENT_SCHEDULE_COLUMNS
from core.calculator import calc_monthly_payment
from core.exceptions import InvariantViolation
from core.strategies import Strategy, strategy_principal
from data_manager.schema import Loan


def _due_date(start_date: date, period: int, repayment_day: int) -> date:
    """第 period 期还款日，超过当月天数取月末"""
    target = start_date + relativedelta(months=period)
    max_day = calendar.monthrange(target.year, target.month)[1]
    return target.replace(day=min(repayment_day, max_day))


def generate_schedule(
    principal: float,
    annual_rate: float,
    term_months: int,
    start_date: date,
    repayment_day: int = 1,
) -> pd.DataFrame:
    """生成等额本息还款计划表，最后一期吸收尾差"""
    if term_months <= 0:
        raise InvariantViolation("Cannot build a repayment schedule without a tenure")

    r = annual_rate / 100 / 12
    if r == 0:
        # 零利率按实际期数平摊本金
        monthly_payment = principal / term_months
    else:
        monthly_payment = calc_monthly_payment(principal, term_months, annual_rate)
    records = []
    remaining = principal
    cum_principal = 0.0
    cum_interest = 0.0

    for i in range(term_months):
        interest = remaining * r
        prin = min(monthly_payment - interest, remaining)
        payment = prin + interest

        # 最后一期尾差调整
        if i == term_months - 1:
            prin = remaining
            payment = prin + interest

        remaining -= prin
        if remaining < 0.005:
            remaining = 0.0

        cum_principal += prin
        cum_interest += interest

        records.append({
            "period": i + 1,
            "due_date": _due_date(start_date, i + 1, repayment_day).strftime("%Y-%m-%d"),
            "monthly_payment": round(payment, 2),
            "principal": round(prin, 2),
            "interest": round(interest, 2),
            "remaining_principal": round(remaining, 2),
            "cumulative_principal": round(cum_principal, 2),
            "cumulative_interest": round(cum_interest, 2),
        })

    return pd.DataFrame(records, columns=REPAYMENT_SCHEDULE_COLUMNS)


def generate_strategy_schedule(
    loan: Loan,
    strategy: Strategy,
    start_date: date,
    repayment_day: int = 1,
) -> pd.DataFrame:
    """按所选策略的新贷款本金生成还款计划"""
    principal = strategy_principal(strategy)
    if principal <= 0:
        return pd.DataFrame(columns=REPAYMENT_SCHEDULE_COLUMNS)
    return generate_schedule(
        principal, loan.interest_rate, strategy.calculations.tenure,
        start_date, repayment_day,
    )


def calc_irr(amount_received: float, schedule: pd.DataFrame) -> float:
    """用 IRR 法计算真实年化率 (%)，到手金额为期初现金流"""
    if schedule.empty or amount_received <= 0:
        return 0.0
    cash_flows = [-amount_received]
    cash_flows.extend(schedule["monthly_payment"].tolist())

    def npv(rate):
        return sum(cf / (1 + rate) ** i for i, cf in enumerate(cash_flows))

    try:
        monthly_irr = optimize.brentq(npv, -0.5, 1.0)
    except (ValueError, RuntimeError):
        return 0.0
    annual_irr = (1 + monthly_irr) ** 12 - 1
    return round(annual_irr * 100, 4)


def calc_effective_rate(
    loan: Loan,
    strategy: Strategy,
    fees_total: float = 0.0,
    start_date: Optional[date] = None,
) -> float:
    """扣除手续费后按到手金额计算真实年化率"""
    schedule = generate_strategy_schedule(loan, strategy, start_date or date.today())
    return calc_irr(strategy_principal(strategy) - fees_total, schedule)
