"""追加贷款资格审核"""
from dataclasses import dataclass
from typing import Dict, Optional

from config.constants import StrategyKind
from config.policy import TopUpPolicy, DEFAULT_POLICY
from data_manager.schema import Loan

# 审核顺序固定，首个未通过项决定原因
CRITERIA_ORDER = ["payment_history", "days_overdue", "dti_ratio", "exposure_limit"]
ELIGIBLE_REASON = "Eligible for top-up"


def _failure_reason(criterion: str, policy: TopUpPolicy) -> str:
    return {
        "payment_history": f"Payment history below {policy.min_payment_history_pct:g}%",
        "days_overdue": "Loan is past due",
        "dti_ratio": f"DTI ratio exceeds {policy.max_eligible_dti:g}%",
        "exposure_limit": "Exceeds maximum exposure limit",
    }[criterion]


@dataclass(frozen=True)
class CriterionResult:
    passed: bool
    value: float
    limit: Optional[float] = None


@dataclass(frozen=True)
class EligibilityVerdict:
    is_eligible: bool
    reason: str
    max_topup_amount: float
    criteria: Dict[str, CriterionResult]
    recommended_strategy: Optional[StrategyKind] = None

    @property
    def failed_criteria(self):
        return [name for name in CRITERIA_ORDER if not self.criteria[name].passed]


def recommend_strategy(
    loan: Loan,
    topup_amount: float,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> StrategyKind:
    """按追加额与剩余本金之比给出建议策略，仅供参考"""
    if loan.outstanding_balance == 0:
        ratio = float("inf") if topup_amount > 0 else 0.0
    else:
        ratio = topup_amount / loan.outstanding_balance

    if ratio > policy.settlement_preferred_ratio:
        return StrategyKind.SETTLEMENT_PLUS_NEW
    if ratio >= policy.consolidation_min_ratio:
        return StrategyKind.CONSOLIDATION
    return StrategyKind.NET_TOPUP


def max_exposure(loan: Loan, policy: TopUpPolicy = DEFAULT_POLICY) -> float:
    return loan.monthly_income * 12 * policy.exposure_income_share


def check_topup_eligibility(
    loan: Loan,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> EligibilityVerdict:
    ceiling = max_exposure(loan, policy)
    balance = loan.outstanding_balance
    dti = loan.current_dti

    criteria = {
        "payment_history": CriterionResult(
            passed=loan.payment_history_percentage >= policy.min_payment_history_pct,
            value=loan.payment_history_percentage,
            limit=policy.min_payment_history_pct,
        ),
        "days_overdue": CriterionResult(
            passed=loan.days_past_due <= policy.max_days_past_due,
            value=loan.days_past_due,
            limit=policy.max_days_past_due,
        ),
        "dti_ratio": CriterionResult(
            passed=dti < policy.max_eligible_dti,
            value=dti,
            limit=policy.max_eligible_dti,
        ),
        "exposure_limit": CriterionResult(
            passed=balance < ceiling,
            value=balance,
            limit=ceiling,
        ),
    }

    failed = [name for name in CRITERIA_ORDER if not criteria[name].passed]
    if failed:
        return EligibilityVerdict(
            is_eligible=False,
            reason=_failure_reason(failed[0], policy),
            max_topup_amount=0.0,
            criteria=criteria,
        )

    max_topup = min(ceiling - balance, loan.monthly_income * policy.max_topup_income_months)
    return EligibilityVerdict(
        is_eligible=True,
        reason=ELIGIBLE_REASON,
        max_topup_amount=max_topup,
        criteria=criteria,
        recommended_strategy=recommend_strategy(loan, 0, policy),
    )
