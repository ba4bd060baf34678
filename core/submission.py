"""提交追加贷款申请：费用、申请记录、审批环节、会话级防重复提交"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, List, Optional

from config.constants import (
    RequestStatus, StepStatus, StrategyKind, WizardStep, WorkflowStepName,
)
from config.policy import TopUpPolicy, DEFAULT_POLICY
from core import workflow
from core.exceptions import (
    SubmissionError, SubmissionInFlight, ValidationError,
)
from core.strategies import StrategyCache, strategy_details
from core.workflow import Transition, WizardState
from data_manager.data_validator import validate_tenure
from data_manager.schema import (
    ApprovalStep, Loan, NetTopUpAllocation, SubmissionDetails, TopUpRequest,
)
from utils.id_generator import (
    generate_request_id, generate_request_number, generate_step_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fees:
    processing_fee: float
    insurance_fee: float
    net_disbursement: float


def calc_fees(amount: float, policy: TopUpPolicy = DEFAULT_POLICY) -> Fees:
    """手续费 1%，保险费 0.5%，到手 98.5%"""
    return Fees(
        processing_fee=round(amount * policy.processing_fee_rate, 2),
        insurance_fee=round(amount * policy.insurance_fee_rate, 2),
        net_disbursement=round(amount * policy.net_disbursement_rate, 2),
    )


def build_request_record(
    state: WizardState,
    actor_id: str,
    request_id: str,
    request_number: str,
    now: datetime,
    policy: TopUpPolicy = DEFAULT_POLICY,
) -> TopUpRequest:
    strategy = state.selected_strategy
    if strategy is None:
        raise ValidationError("A strategy must be selected before submission")

    tenure = state.effective_tenure
    ok, msg = validate_tenure(tenure, policy)
    if not ok:
        raise ValidationError(msg)

    loan = state.loan
    details = state.details
    fees = calc_fees(state.topup_amount, policy)

    # DTI 超限时自动记为已批准的例外，审批人即提交人
    requires_override = strategy.calculations.dti_ratio > policy.dti_override_threshold
    if requires_override:
        logger.warning(
            "DTI override auto-approved for loan %s: %s%% by %s",
            loan.loan_id, strategy.calculations.dti_ratio, actor_id,
        )

    return TopUpRequest(
        id=request_id,
        request_number=request_number,
        client_id=loan.client_id,
        existing_loan_id=loan.loan_id,
        requested_amount=state.topup_amount,
        requested_tenure=tenure,
        selected_strategy=strategy.kind.value,
        strategy_details=strategy_details(strategy),
        disbursement_method=details.disbursement_method,
        disbursement_details=dict(details.disbursement_details),
        processing_fee=fees.processing_fee,
        insurance_fee=fees.insurance_fee,
        net_disbursement=fees.net_disbursement,
        requirements_checklist=asdict(details.requirements_checklist),
        requires_dti_override=requires_override,
        dti_override_reason=details.dti_override_reason if requires_override else None,
        dti_override_approved_by=actor_id if requires_override else None,
        staff_notes=details.staff_notes,
        created_by=actor_id,
        status=RequestStatus.PENDING_CREDIT_REVIEW.value,
        created_at=now,
        updated_at=now,
    )


def build_workflow_steps(request_id: str) -> List[ApprovalStep]:
    """固定四个审批环节，均为待处理、未分配"""
    return [
        ApprovalStep(
            step_id=generate_step_id(),
            topup_request_id=request_id,
            step_name=step.value,
            step_order=step.order,
            status=StepStatus.PENDING.value,
        )
        for step in WorkflowStepName
    ]


@dataclass(frozen=True)
class SubmissionResult:
    request: dict
    steps: List[dict]


class TopUpWizardSession:
    """驱动一次向导流程，持有当前状态与存储

    store 需提供 insert_request(record) -> record 与
    insert_workflow_steps(steps)。同一流程最多写入一条申请和四个环节；
    部分失败后重试只补写缺失的部分。
    """

    def __init__(
        self,
        loan: Loan,
        store,
        policy: TopUpPolicy = DEFAULT_POLICY,
        run_id: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.policy = policy
        self.clock = clock
        self.cache = StrategyCache(policy)
        self.state = workflow.start_wizard(loan, policy, run_id, generate=self._generate)
        self._in_flight = False
        self._request_id: Optional[str] = None
        self._request_number: Optional[str] = None
        self._request: Optional[dict] = None
        self._steps: Optional[List[dict]] = None

    def _generate(self, loan, amount, tenure, allocation, policy):
        return self.cache.get(loan, amount, tenure, allocation)

    def _apply(self, transition: Transition) -> Transition:
        if transition.accepted:
            self.state = transition.state
        return transition

    @property
    def is_submitting(self) -> bool:
        return self._in_flight

    @property
    def is_submitted(self) -> bool:
        return self._steps is not None

    @property
    def result(self) -> Optional[SubmissionResult]:
        if not self.is_submitted:
            return None
        return SubmissionResult(request=self._request, steps=list(self._steps))

    def _ensure_editable(self):
        if self._in_flight or self._request is not None:
            raise ValidationError("Request has already been submitted")

    def edit(
        self,
        topup_amount=workflow.UNSET,
        requested_tenure=workflow.UNSET,
        allocation=workflow.UNSET,
    ) -> WizardState:
        self._ensure_editable()
        self.state = workflow.update_inputs(
            self.state, topup_amount, requested_tenure, allocation,
            self.policy, generate=self._generate,
        )
        return self.state

    def set_allocation(self, applied_to_loan: float) -> WizardState:
        return self.edit(allocation=NetTopUpAllocation.split(self.state.topup_amount, applied_to_loan))

    def select(self, kind: StrategyKind) -> Transition:
        self._ensure_editable()
        return self._apply(workflow.select_strategy(self.state, kind))

    def set_details(self, details: SubmissionDetails) -> WizardState:
        self._ensure_editable()
        self.state = workflow.update_details(self.state, details)
        return self.state

    def next(self) -> Transition:
        return self._apply(workflow.advance(self.state, self.policy))

    def back(self) -> Transition:
        self._ensure_editable()
        return self._apply(workflow.go_back(self.state))

    def cancel(self) -> WizardState:
        self._ensure_editable()
        self.state = workflow.cancel(self.state)
        return self.state

    def submit(self, actor_id: str) -> SubmissionResult:
        """写入申请与审批环节；同一流程重复调用返回首次结果"""
        if self._in_flight:
            raise SubmissionInFlight("A submission is already in progress")
        if self.is_submitted:
            return self.result
        if not actor_id:
            raise ValidationError("An authenticated actor is required to submit")
        if self.state.cancelled:
            raise ValidationError("Wizard was cancelled")
        if self.state.step != WizardStep.CONFIRMATION:
            raise ValidationError("Complete the wizard before submitting")
        if self.state.selected_strategy is None:
            raise ValidationError("A strategy must be selected before submission")

        self._in_flight = True
        try:
            if self._request is None:
                self._write_request(actor_id)
            else:
                logger.warning("Retrying approval steps for %s", self._request["request_number"])
            self._write_steps()
        finally:
            self._in_flight = False

        logger.info(
            "Submitted top-up request %s for loan %s (%s)",
            self._request["request_number"], self.state.loan.loan_id,
            self._request["selected_strategy"],
        )
        return self.result

    def _write_request(self, actor_id: str):
        now = self.clock()
        if self._request_number is None:
            self._request_id = generate_request_id()
            self._request_number = generate_request_number(now)

        record = build_request_record(
            self.state, actor_id, self._request_id, self._request_number, now, self.policy,
        )
        try:
            self._request = self.store.insert_request(record.to_record())
        except Exception as exc:
            logger.exception("Failed to save top-up request %s", self._request_number)
            raise SubmissionError(
                f"Failed to save top-up request {self._request_number}: {exc}",
                request_number=self._request_number,
                stage="request",
            ) from exc

    def _write_steps(self):
        if self._steps is not None:
            return
        request_id = self._request["id"]
        steps = [step.to_record() for step in build_workflow_steps(request_id)]
        try:
            self.store.insert_workflow_steps(steps)
        except Exception as exc:
            logger.exception(
                "Failed to create approval steps for %s; retry will only write the steps",
                self._request["request_number"],
            )
            raise SubmissionError(
                f"Request {self._request['request_number']} saved but approval steps failed: {exc}",
                request_number=self._request["request_number"],
                stage="workflow_steps",
            ) from exc
        self._steps = steps
