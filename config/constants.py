from enum import Enum


class StrategyKind(str, Enum):
    CONSOLIDATION = "consolidation"  # 全额再融资
    SETTLEMENT_PLUS_NEW = "settlement_plus_new"  # 结清 + 新贷
    NET_TOPUP = "net_topup"  # 净额追加
    STACKING = "stacking"  # 叠加第二笔贷款

    @property
    def label(self) -> str:
        return {
            "consolidation": "Consolidation (Full Refinancing)",
            "settlement_plus_new": "Settlement + New Loan (Clean Slate)",
            "net_topup": "Net Top-Up (Flexible Allocation)",
            "stacking": "Stacking (Separate Loans)",
        }[self.value]

    @property
    def description(self) -> str:
        return {
            "consolidation": "Close old loan + Create new larger loan",
            "settlement_plus_new": "Pay off old loan completely, start fresh",
            "net_topup": "Custom split between loan reduction and cash",
            "stacking": "Keep existing loan active + Add new loan",
        }[self.value]


class WizardStep(str, Enum):
    ELIGIBILITY = "eligibility"
    STRATEGY = "strategy"
    DETAILS = "details"
    CONFIRMATION = "confirmation"

    @property
    def label(self) -> str:
        return {
            "eligibility": "Eligibility Check",
            "strategy": "Select Top-Up Strategy",
            "details": "Review & Confirm",
            "confirmation": "Submission Confirmation",
        }[self.value]


WIZARD_SEQUENCE = [
    WizardStep.ELIGIBILITY,
    WizardStep.STRATEGY,
    WizardStep.DETAILS,
    WizardStep.CONFIRMATION,
]


class RequestStatus(str, Enum):
    PENDING_CREDIT_REVIEW = "pending_credit_review"
    PENDING_SUPERVISOR = "pending_supervisor"
    PENDING_COMMITTEE = "pending_committee"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"

    @property
    def label(self) -> str:
        return {
            "pending_credit_review": "Pending Credit Review",
            "pending_supervisor": "Pending Supervisor",
            "pending_committee": "Pending Committee",
            "approved": "Approved",
            "rejected": "Rejected",
            "disbursed": "Disbursed",
        }[self.value]

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.REJECTED, RequestStatus.DISBURSED)


PENDING_STATUSES = (
    RequestStatus.PENDING_CREDIT_REVIEW,
    RequestStatus.PENDING_SUPERVISOR,
    RequestStatus.PENDING_COMMITTEE,
)

# 正向审批流水线
STATUS_PIPELINE = [
    RequestStatus.PENDING_CREDIT_REVIEW,
    RequestStatus.PENDING_SUPERVISOR,
    RequestStatus.PENDING_COMMITTEE,
    RequestStatus.APPROVED,
    RequestStatus.DISBURSED,
]


class WorkflowStepName(str, Enum):
    CREDIT_OFFICER_REVIEW = "credit_officer_review"
    SUPERVISOR_APPROVAL = "supervisor_approval"
    COMMITTEE_APPROVAL = "committee_approval"
    DISBURSEMENT = "disbursement"

    @property
    def label(self) -> str:
        return {
            "credit_officer_review": "Credit Officer Review",
            "supervisor_approval": "Supervisor Approval",
            "committee_approval": "Committee Approval",
            "disbursement": "Disbursement",
        }[self.value]

    @property
    def order(self) -> int:
        return list(WorkflowStepName).index(self) + 1


# 进入某状态时标记为已通过的审批环节；驳回不标记
STATUS_STEP_MAP = {
    RequestStatus.PENDING_CREDIT_REVIEW: WorkflowStepName.CREDIT_OFFICER_REVIEW,
    RequestStatus.PENDING_SUPERVISOR: WorkflowStepName.SUPERVISOR_APPROVAL,
    RequestStatus.PENDING_COMMITTEE: WorkflowStepName.COMMITTEE_APPROVAL,
    RequestStatus.APPROVED: WorkflowStepName.COMMITTEE_APPROVAL,
    RequestStatus.DISBURSED: WorkflowStepName.DISBURSEMENT,
}


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class DisbursementMethod(str, Enum):
    MPESA = "mpesa"
    BANK = "bank"
    CASH = "cash"

    @property
    def label(self) -> str:
        return {
            "mpesa": "M-Pesa",
            "bank": "Bank Transfer",
            "cash": "Cash",
        }[self.value]


# Sheet 名称
SHEET_TOPUP_REQUESTS = "topup_requests"
SHEET_WORKFLOW_STEPS = "topup_approval_workflow"
SHEET_CONFIG = "system_config"

# 列定义
TOPUP_REQUEST_COLUMNS = [
    "id", "request_number", "client_id", "existing_loan_id",
    "requested_amount", "requested_tenure", "selected_strategy",
    "strategy_details", "disbursement_method", "disbursement_details",
    "processing_fee", "insurance_fee", "net_disbursement",
    "requirements_checklist", "requires_dti_override",
    "dti_override_reason", "dti_override_approved_by", "staff_notes",
    "created_by", "status", "approved_by", "approved_at", "disbursed_at",
    "rejected_at", "created_at", "updated_at",
]

WORKFLOW_STEP_COLUMNS = [
    "step_id", "topup_request_id", "step_name", "step_order", "status",
    "assigned_to", "reviewed_by", "reviewed_at", "comments",
]

CONFIG_COLUMNS = ["key", "value", "description", "updated_at"]

# 以 JSON 文本存储的嵌套字段
JSON_COLUMNS = ["strategy_details", "disbursement_details", "requirements_checklist"]

REPAYMENT_SCHEDULE_COLUMNS = [
    "period", "due_date", "monthly_payment", "principal", "interest",
    "remaining_principal", "cumulative_principal", "cumulative_interest",
]
