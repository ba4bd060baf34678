"""追加贷款申请向导：资格 → 策略 → 详情 → 确认

状态为不可变值，所有转换函数返回新状态或拒绝原因，不修改入参。
策略重算按输入版本号生效：只接受与当前输入版本一致的结果。
"""
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Tuple

from config.constants import StrategyKind, WizardStep, WIZARD_SEQUENCE
from config.policy import TopUpPolicy, DEFAULT_POLICY
from core.eligibility import EligibilityVerdict, check_topup_eligibility, recommend_strategy
from core.exceptions import ValidationError
from core.strategies import Strategy, find_strategy, generate_strategies
from data_manager.data_validator import (
    validate_disbursement_method,
    validate_tenure,
    validate_topup_amount,
)
from data_manager.schema import Loan, NetTopUpAllocation, SubmissionDetails

UNSET = object()

Generator = Callable[..., List[Strategy]]


@dataclass(frozen=True)
class WizardState:
    run_id: str
    loan: Loan
    verdict: EligibilityVerdict
    step: WizardStep = WizardStep.ELIGIBILITY
    topup_amount: float = 0.0
    requested_tenure: Optional[int] = None
    allocation: Optional[NetTopUpAllocation] = None
    strategies: Tuple[Strategy, ...] = ()
    selected: Optional[StrategyKind] = None
    details: SubmissionDetails = field(default_factory=SubmissionDetails)
    input_version: int = 0
    strategies_version: int = 0
    cancelled: bool = False
    policy: TopUpPolicy = DEFAULT_POLICY

    @property
    def step_index(self) -> int:
        return WIZARD_SEQUENCE.index(self.step)

    @property
    def is_stale(self) -> bool:
        """策略结果落后于最新输入"""
        return self.strategies_version != self.input_version

    @property
    def selected_strategy(self) -> Optional[Strategy]:
        if self.selected is None:
            return None
        return find_strategy(list(self.strategies), self.selected)

    @property
    def effective_tenure(self) -> Optional[int]:
        """提交时记录的期限"""
        if self.requested_tenure is not None:
            return self.requested_tenure
        strategy = self.selected_strategy
        return strategy.calculations.tenure if strategy is not None else None

    @property
    def suggested_strategy(self) -> StrategyKind:
        return recommend_strategy(self.loan, self.topup_amount, self.policy)


@dataclass(frozen=True)
class Transition:
    accepted: bool
    state: "WizardState"
    reason: str = ""


def _accept(state: WizardState) -> Transition:
    return Transition(True, state)


def _reject(state: WizardState, reason: str) -> Transition:
    return Transition(False, state, reason)


def _default_tenure(loan: Loan, policy: TopUpPolicy) -> int:
    tenure = loan.remaining_months or policy.default_new_loan_tenure
    return min(max(tenure, policy.min_tenure_months), policy.max_tenure_months)


def start_wizard(
    loan: Loan,
    policy: TopUpPolicy = DEFAULT_POLICY,
    run_id: Optional[str] = None,
    generate: Generator = generate_strategies,
) -> WizardState:
    """初始化向导；资格通过时预填金额与期限并生成策略"""
    verdict = check_topup_eligibility(loan, policy)
    state = WizardState(
        run_id=run_id or uuid.uuid4().hex,
        loan=loan,
        verdict=verdict,
        policy=policy,
    )
    if not verdict.is_eligible:
        return state

    amount = min(verdict.max_topup_amount, policy.default_wizard_amount)
    state = replace(
        state,
        topup_amount=amount,
        requested_tenure=_default_tenure(loan, policy),
    )
    if amount <= 0:
        return state
    strategies = generate(loan, amount, state.requested_tenure, None, policy)
    return apply_strategies(state, state.input_version, strategies).state


def with_inputs(
    state: WizardState,
    topup_amount=UNSET,
    requested_tenure=UNSET,
    allocation=UNSET,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> WizardState:
    """校验并记录新输入，版本号加一；策略待重算"""
    if state.step not in (WizardStep.ELIGIBILITY, WizardStep.STRATEGY):
        raise ValidationError("Top-up inputs can only change before the strategy is confirmed")

    amount = state.topup_amount if topup_amount is UNSET else topup_amount
    tenure = state.requested_tenure if requested_tenure is UNSET else requested_tenure
    new_allocation = state.allocation if allocation is UNSET else allocation

    ok, msg = validate_topup_amount(amount, state.verdict.max_topup_amount, policy)
    if not ok:
        raise ValidationError(msg)
    if tenure is not None:
        ok, msg = validate_tenure(tenure, policy)
        if not ok:
            raise ValidationError(msg)

    # 金额变化且未重新指定分配：保留冲减本金额，不够时回到默认分配
    if allocation is UNSET and new_allocation is not None and amount != state.topup_amount:
        if new_allocation.applied_to_loan <= amount:
            new_allocation = NetTopUpAllocation.split(amount, new_allocation.applied_to_loan)
        else:
            new_allocation = None

    return replace(
        state,
        topup_amount=amount,
        requested_tenure=tenure,
        allocation=new_allocation,
        input_version=state.input_version + 1,
    )


def apply_strategies(
    state: WizardState,
    version: int,
    strategies: List[Strategy],
) -> Transition:
    """整体替换策略列表；过期版本的结果直接丢弃"""
    if version != state.input_version:
        return _reject(state, f"Stale strategy set (version {version}, current {state.input_version})")

    selected = state.selected
    if selected is not None:
        fresh = find_strategy(strategies, selected)
        if fresh is None or not fresh.is_available:
            selected = None

    return _accept(replace(
        state,
        strategies=tuple(strategies),
        strategies_version=version,
        selected=selected,
    ))


def update_inputs(
    state: WizardState,
    topup_amount=UNSET,
    requested_tenure=UNSET,
    allocation=UNSET,
    policy: TopUpPolicy = DEFAULT_POLICY,
    generate: Generator = generate_strategies,
) -> WizardState:
    """输入变化后同步重算策略"""
    state = with_inputs(state, topup_amount, requested_tenure, allocation, policy)
    strategies = generate(
        state.loan, state.topup_amount, state.requested_tenure, state.allocation, policy,
    )
    return apply_strategies(state, state.input_version, strategies).state


def select_strategy(state: WizardState, kind) -> Transition:
    if state.step != WizardStep.STRATEGY:
        return _reject(state, "Strategies can only be selected on the strategy step")

    kind = StrategyKind(kind)
    strategy = find_strategy(list(state.strategies), kind)
    if strategy is None:
        return _reject(state, f"{kind.label} is not offered for this amount")
    if not strategy.is_available:
        return _reject(state, strategy.unavailable_reason or f"{kind.label} is unavailable")
    return _accept(replace(state, selected=kind))


def update_details(state: WizardState, details: SubmissionDetails) -> WizardState:
    if state.step != WizardStep.DETAILS:
        raise ValidationError("Submission details can only be edited on the details step")
    ok, msg = validate_disbursement_method(details.disbursement_method)
    if not ok:
        raise ValidationError(msg)
    return replace(state, details=details)


def advance(state: WizardState, policy: TopUpPolicy = DEFAULT_POLICY) -> Transition:
    """前进一步；确认页没有前进，只能提交"""
    if state.cancelled:
        return _reject(state, "Wizard was cancelled")

    if state.step == WizardStep.ELIGIBILITY:
        if not state.verdict.is_eligible:
            return _reject(state, state.verdict.reason)
        return _accept(replace(state, step=WizardStep.STRATEGY))

    if state.step == WizardStep.STRATEGY:
        ok, msg = validate_topup_amount(state.topup_amount, state.verdict.max_topup_amount, policy)
        if not ok:
            return _reject(state, msg)
        if state.is_stale:
            return _reject(state, "Strategies are still being recalculated")
        if state.selected_strategy is None:
            return _reject(state, "Select a strategy to continue")
        # 校验最终写入申请的期限，未指定时为策略默认期限
        ok, msg = validate_tenure(state.effective_tenure, policy)
        if not ok:
            return _reject(state, msg)
        return _accept(replace(state, step=WizardStep.DETAILS))

    if state.step == WizardStep.DETAILS:
        return _accept(replace(state, step=WizardStep.CONFIRMATION))

    return _reject(state, "Confirmation is the last step; submit the request instead")


def cancel(state: WizardState) -> WizardState:
    return replace(state, cancelled=True)


def go_back(state: WizardState) -> Transition:
    """后退一步；在资格页后退即取消"""
    if state.cancelled:
        return _reject(state, "Wizard was cancelled")
    if state.step == WizardStep.ELIGIBILITY:
        return _accept(cancel(state))
    previous = WIZARD_SEQUENCE[state.step_index - 1]
    return _accept(replace(state, step=previous))
