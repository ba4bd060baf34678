from typing import Optional, Tuple

from config.constants import DisbursementMethod, RequestStatus, StrategyKind
from config.policy import TopUpPolicy, DEFAULT_POLICY
from data_manager.schema import NetTopUpAllocation


def validate_topup_amount(
    amount: float,
    max_topup_amount: Optional[float] = None,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> Tuple[bool, str]:
    """校验追加金额，返回 (是否合法, 错误信息)"""
    if amount < policy.min_topup_amount:
        return False, f"Top-up amount must be at least {policy.min_topup_amount:,.2f}"

    if max_topup_amount is not None and amount > max_topup_amount:
        return False, f"Top-up amount exceeds the maximum of {max_topup_amount:,.2f}"

    return True, ""


def validate_tenure(
    tenure: int,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> Tuple[bool, str]:
    if not policy.min_tenure_months <= tenure <= policy.max_tenure_months:
        return False, (
            f"Tenure must be between {policy.min_tenure_months} "
            f"and {policy.max_tenure_months} months"
        )
    return True, ""


def validate_allocation(
    allocation: NetTopUpAllocation,
    topup_amount: float,
    outstanding_balance: float,
) -> Tuple[bool, str]:
    """冲减本金 + 客户现金必须等于追加总额"""
    if allocation.applied_to_loan < 0 or allocation.cash_to_client < 0:
        return False, "Allocation parts must not be negative"

    if abs(allocation.total - topup_amount) > 0.005:
        return False, "Amount applied to loan + cash to client must equal the top-up amount"

    if allocation.applied_to_loan > outstanding_balance:
        return False, "Amount applied to loan exceeds the outstanding balance"

    return True, ""


def validate_disbursement_method(method: str) -> Tuple[bool, str]:
    if method not in [e.value for e in DisbursementMethod]:
        return False, f"Invalid disbursement method: {method}"
    return True, ""


def validate_strategy_kind(kind: str) -> Tuple[bool, str]:
    if kind not in [e.value for e in StrategyKind]:
        return False, f"Invalid strategy: {kind}"
    return True, ""


def validate_request_status(status: str) -> Tuple[bool, str]:
    if status not in [e.value for e in RequestStatus]:
        return False, f"Invalid request status: {status}"
    return True, ""
