from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

from core.exceptions import ValidationError


@dataclass(frozen=True)
class Loan:
    loan_id: str
    client_id: str
    outstanding_balance: float
    interest_rate: float  # 名义年利率 (%)
    remaining_months: int
    monthly_payment: float  # 合同月供
    monthly_income: float
    payment_history_percentage: float
    days_past_due: int = 0
    client_phone: str = ""
    status: str = "active"

    def __post_init__(self):
        for name in ("outstanding_balance", "interest_rate", "remaining_months"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must not be negative")

    @property
    def current_dti(self) -> int:
        if self.monthly_income == 0:
            return 0
        return round(self.monthly_payment / self.monthly_income * 100)

    @classmethod
    def from_record(cls, record: dict) -> "Loan":
        """从字典构造，缺失可选字段取默认值"""
        return cls(
            loan_id=str(record["loan_id"]),
            client_id=str(record["client_id"]),
            outstanding_balance=float(record["outstanding_balance"]),
            interest_rate=float(record["interest_rate"]),
            remaining_months=int(record["remaining_months"]),
            monthly_payment=float(record["monthly_payment"]),
            monthly_income=float(record["monthly_income"]),
            payment_history_percentage=float(record["payment_history_percentage"]),
            days_past_due=int(record.get("days_past_due", 0)),
            client_phone=str(record.get("client_phone", "")),
            status=str(record.get("status", "active")),
        )


@dataclass(frozen=True)
class NetTopUpAllocation:
    applied_to_loan: float
    cash_to_client: float

    @property
    def total(self) -> float:
        return self.applied_to_loan + self.cash_to_client

    @classmethod
    def split(cls, total: float, applied_to_loan: float) -> "NetTopUpAllocation":
        """按冲减本金额拆分，现金部分取差额"""
        applied = round(applied_to_loan, 2)
        return cls(applied_to_loan=applied, cash_to_client=round(total - applied, 2))


@dataclass(frozen=True)
class RequirementsChecklist:
    client_informed: bool = False
    consent_obtained: bool = False
    collateral_verified: bool = False
    guarantor_notified: bool = False

    @property
    def is_complete(self) -> bool:
        return all(asdict(self).values())


@dataclass(frozen=True)
class SubmissionDetails:
    disbursement_method: str = "mpesa"
    disbursement_details: dict = field(default_factory=dict)
    requirements_checklist: RequirementsChecklist = field(default_factory=RequirementsChecklist)
    staff_notes: Optional[str] = None
    dti_override_reason: str = "High DTI approved by supervisor"


@dataclass
class TopUpRequest:
    id: str
    request_number: str
    client_id: str
    existing_loan_id: str
    requested_amount: float
    requested_tenure: int
    selected_strategy: str
    strategy_details: dict
    disbursement_method: str
    disbursement_details: dict
    processing_fee: float
    insurance_fee: float
    net_disbursement: float
    requirements_checklist: dict
    created_by: str
    status: str
    requires_dti_override: bool = False
    dti_override_reason: Optional[str] = None
    dti_override_approved_by: Optional[str] = None
    staff_notes: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_record(self) -> dict:
        return asdict(self)


@dataclass
class ApprovalStep:
    step_id: str
    topup_request_id: str
    step_name: str
    step_order: int
    status: str = "pending"
    assigned_to: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    comments: Optional[str] = None

    def to_record(self) -> dict:
        return asdict(self)
