"""追加贷款策略生成：全额再融资、结清+新贷、净额追加、叠加贷款"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from config.constants import StrategyKind
from config.policy import TopUpPolicy, DEFAULT_POLICY
from core.calculator import (
    calc_monthly_payment,
    calc_dti,
    calc_settlement,
    calc_interest_savings,
    determine_optimal_tenure,
    SettlementBreakdown,
)
from core.exceptions import InvariantViolation, ValidationError
from data_manager.data_validator import validate_allocation
from data_manager.schema import Loan, NetTopUpAllocation


@dataclass(frozen=True)
class ConsolidationCalculation:
    new_loan_amount: float
    net_cash_to_client: float
    new_monthly_payment: float
    tenure: int
    total_debt: float
    dti_ratio: int
    interest_savings: Optional[float] = None


@dataclass(frozen=True)
class SettlementCalculation:
    settlement_amount: float
    new_loan_amount: float
    net_cash_to_client: float
    new_monthly_payment: float
    tenure: int
    total_debt: float
    dti_ratio: int
    breakdown: SettlementBreakdown
    interest_savings: Optional[float] = None


@dataclass(frozen=True)
class NetTopUpCalculation:
    loan_reduction_amount: float
    net_cash_to_client: float
    new_monthly_payment: float
    tenure: int
    total_debt: float
    dti_ratio: int
    interest_savings: Optional[float] = None


@dataclass(frozen=True)
class StackingCalculation:
    second_loan_amount: float
    second_loan_payment: float
    net_cash_to_client: float
    new_monthly_payment: float  # 两笔贷款合计月供
    tenure: int
    total_debt: float
    dti_ratio: int
    interest_savings: Optional[float] = None


Calculation = Union[
    ConsolidationCalculation,
    SettlementCalculation,
    NetTopUpCalculation,
    StackingCalculation,
]


@dataclass(frozen=True)
class Strategy:
    kind: StrategyKind
    calculations: Calculation
    is_available: bool
    is_recommended: bool
    benefits: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    unavailable_reason: Optional[str] = None

    @property
    def name(self) -> str:
        return self.kind.label

    @property
    def description(self) -> str:
        return self.kind.description


def default_allocation(
    topup_amount: float,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> NetTopUpAllocation:
    """未指定分配时：30% 冲减本金，其余给客户现金"""
    return NetTopUpAllocation.split(topup_amount, topup_amount * policy.default_applied_share)


def _rate_line(loan: Loan) -> str:
    return f"Uses loan interest rate: {loan.interest_rate:g}%"


def _build_consolidation(
    loan: Loan,
    amount: float,
    tenure: Optional[int],
    allocation: NetTopUpAllocation,
    policy: TopUpPolicy,
) -> Strategy:
    term = policy.default_new_loan_tenure if tenure is None else tenure
    principal = loan.outstanding_balance + amount
    payment = calc_monthly_payment(principal, term, loan.interest_rate)

    warnings = [f"Resets loan tenure to {term} months"]
    if amount > loan.outstanding_balance:
        warnings.append("Highest total debt")

    return Strategy(
        kind=StrategyKind.CONSOLIDATION,
        calculations=ConsolidationCalculation(
            new_loan_amount=principal,
            net_cash_to_client=amount,
            new_monthly_payment=payment,
            tenure=term,
            total_debt=principal,
            dti_ratio=calc_dti(loan.monthly_income, payment),
        ),
        is_available=True,
        is_recommended=amount >= loan.outstanding_balance * policy.consolidation_min_ratio,
        benefits=(
            "One simple payment",
            "Full cash disbursement",
            f"Extended repayment period to {term} months",
            _rate_line(loan),
        ),
        warnings=tuple(warnings),
    )


def _build_settlement_plus_new(
    loan: Loan,
    amount: float,
    tenure: Optional[int],
    allocation: NetTopUpAllocation,
    policy: TopUpPolicy,
) -> Optional[Strategy]:
    # 追加额不足剩余本金 80% 时不提供该策略
    if amount < loan.outstanding_balance * policy.settlement_min_ratio:
        return None

    breakdown = calc_settlement(loan, policy)
    settlement_amount = round(breakdown.settlement_amount, 2)
    new_principal = round(amount - settlement_amount, 2)
    term = determine_optimal_tenure(new_principal) if tenure is None else tenure
    covers_settlement = new_principal > 0

    payment = calc_monthly_payment(new_principal, term, loan.interest_rate) if covers_settlement else 0.0
    savings = calc_interest_savings(loan, max(new_principal, 0.0), term)

    warnings = ["Less cash to client (only excess amount)"]
    if not covers_settlement:
        warnings.append(
            f"Top-up amount does not cover the settlement amount ({settlement_amount:,.2f})"
        )

    return Strategy(
        kind=StrategyKind.SETTLEMENT_PLUS_NEW,
        calculations=SettlementCalculation(
            settlement_amount=settlement_amount,
            new_loan_amount=new_principal,
            net_cash_to_client=new_principal,
            new_monthly_payment=payment,
            tenure=term,
            total_debt=new_principal,
            dti_ratio=calc_dti(loan.monthly_income, payment),
            breakdown=breakdown,
            interest_savings=savings,
        ),
        is_available=True,
        is_recommended=covers_settlement and amount > loan.outstanding_balance,
        benefits=(
            "Clean slate - old loan completely paid off",
            "Lowest monthly payment",
            f"{term} months tenure",
            "Lowest total debt",
            "Improves credit history (loan closure)",
            _rate_line(loan),
        ),
        warnings=tuple(warnings),
    )


def _build_net_topup(
    loan: Loan,
    amount: float,
    tenure: Optional[int],
    allocation: NetTopUpAllocation,
    policy: TopUpPolicy,
) -> Strategy:
    term = loan.remaining_months if tenure is None else tenure
    new_balance = round(loan.outstanding_balance - allocation.applied_to_loan, 2)
    payment = calc_monthly_payment(new_balance, term, loan.interest_rate)
    change = round(loan.monthly_payment - payment, 2)

    benefits = [
        "Flexible - you choose the split",
        "Reduces debt burden",
        f"Tenure: {term} months",
    ]
    warnings = []
    if change > 0:
        benefits.append(f"Reduces monthly payment by {change:,.2f}")
    elif change < 0:
        warnings.append(f"Monthly payment increases by {-change:,.2f}")
    benefits.append(_rate_line(loan))

    return Strategy(
        kind=StrategyKind.NET_TOPUP,
        calculations=NetTopUpCalculation(
            loan_reduction_amount=allocation.applied_to_loan,
            net_cash_to_client=allocation.cash_to_client,
            new_monthly_payment=payment,
            tenure=term,
            total_debt=new_balance,
            dti_ratio=calc_dti(loan.monthly_income, payment),
        ),
        is_available=True,
        is_recommended=amount < loan.outstanding_balance * policy.consolidation_min_ratio,
        benefits=tuple(benefits),
        warnings=tuple(warnings),
    )


def _build_stacking(
    loan: Loan,
    amount: float,
    tenure: Optional[int],
    allocation: NetTopUpAllocation,
    policy: TopUpPolicy,
) -> Strategy:
    term = policy.default_new_loan_tenure if tenure is None else tenure
    if term <= 0:
        raise InvariantViolation("Stacking requires a positive tenure for the second loan")

    second_payment = calc_monthly_payment(amount, term, loan.interest_rate)
    combined_payment = round(loan.monthly_payment + second_payment, 2)
    dti = calc_dti(loan.monthly_income, combined_payment)
    affordable = dti <= policy.stacking_max_dti

    warnings = [
        "Higher monthly payment (two loans)",
        "More complex tracking",
        "Increased default risk",
    ]
    unavailable_reason = None
    if not affordable:
        warnings.append(f"DTI ({dti}%) exceeds limit")
        unavailable_reason = (
            f"Fails affordability check (DTI {dti}% exceeds {policy.stacking_max_dti:g}%)"
        )

    return Strategy(
        kind=StrategyKind.STACKING,
        calculations=StackingCalculation(
            second_loan_amount=amount,
            second_loan_payment=second_payment,
            net_cash_to_client=amount,
            new_monthly_payment=combined_payment,
            tenure=term,
            total_debt=loan.outstanding_balance + amount,
            dti_ratio=dti,
        ),
        is_available=affordable,
        is_recommended=False,
        benefits=(
            "Full cash disbursement",
            "Existing loan unchanged",
            f"New loan tenure: {term} months",
            _rate_line(loan),
        ),
        warnings=tuple(warnings),
        unavailable_reason=unavailable_reason,
    )


Builder = Callable[
    [Loan, float, Optional[int], NetTopUpAllocation, TopUpPolicy],
    Optional[Strategy],
]

_BUILDERS: Dict[StrategyKind, Builder] = {
    StrategyKind.CONSOLIDATION: _build_consolidation,
    StrategyKind.SETTLEMENT_PLUS_NEW: _build_settlement_plus_new,
    StrategyKind.NET_TOPUP: _build_net_topup,
    StrategyKind.STACKING: _build_stacking,
}

if set(_BUILDERS) != set(StrategyKind):
    raise InvariantViolation("Every strategy kind needs a builder")


def generate_strategies(
    loan: Loan,
    topup_amount: float,
    requested_tenure: Optional[int] = None,
    allocation: Optional[NetTopUpAllocation] = None,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> List[Strategy]:
    """按固定顺序生成各策略，叠加贷款始终在最后"""
    if topup_amount <= 0:
        raise ValidationError("Top-up amount must be greater than 0")

    if allocation is None:
        allocation = default_allocation(topup_amount, policy)
    ok, msg = validate_allocation(allocation, topup_amount, loan.outstanding_balance)
    if not ok:
        raise ValidationError(msg)

    strategies = []
    for kind in StrategyKind:
        strategy = _BUILDERS[kind](loan, topup_amount, requested_tenure, allocation, policy)
        if strategy is not None:
            strategies.append(strategy)
    return strategies


def find_strategy(strategies: List[Strategy], kind: StrategyKind) -> Optional[Strategy]:
    for strategy in strategies:
        if strategy.kind == kind:
            return strategy
    return None


def strategy_principal(strategy: Strategy) -> float:
    """策略产生的新贷款本金"""
    calc = strategy.calculations
    if isinstance(calc, (ConsolidationCalculation, SettlementCalculation)):
        return calc.new_loan_amount
    if isinstance(calc, NetTopUpCalculation):
        return calc.total_debt
    if isinstance(calc, StackingCalculation):
        return calc.second_loan_amount
    raise InvariantViolation(f"Unknown calculation type: {type(calc).__name__}")


def strategy_details(strategy: Strategy) -> dict:
    """提交时保存的关键数字快照"""
    calc = strategy.calculations
    return {
        "settlement_amount": getattr(calc, "settlement_amount", None),
        "new_loan_amount": getattr(calc, "new_loan_amount", None),
        "net_cash_amount": calc.net_cash_to_client,
        "loan_reduction_amount": getattr(calc, "loan_reduction_amount", None),
    }


class StrategyCache:
    """缓存最近一次生成结果，键为 (loan_id, 金额, 期限, 分配)"""

    def __init__(self, policy: TopUpPolicy = DEFAULT_POLICY):
        self.policy = policy
        self._key = None
        self._strategies: List[Strategy] = []
        self.hits = 0
        self.misses = 0

    def get(
        self,
        loan: Loan,
        topup_amount: float,
        requested_tenure: Optional[int] = None,
        allocation: Optional[NetTopUpAllocation] = None,
    ) -> List[Strategy]:
        key = (loan.loan_id, topup_amount, requested_tenure, allocation)
        if key == self._key:
            self.hits += 1
            return list(self._strategies)

        self.misses += 1
        strategies = generate_strategies(
            loan, topup_amount, requested_tenure, allocation, self.policy,
        )
        self._key = key
        self._strategies = strategies
        return list(strategies)

    def clear(self):
        self._key = None
        self._strategies = []
