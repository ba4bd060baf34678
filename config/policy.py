"""业务参数：阈值、费率、默认分配"""
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional

from config import settings


@dataclass(frozen=True)
class TopUpPolicy:
    min_payment_history_pct: float = settings.MIN_PAYMENT_HISTORY_PCT
    max_days_past_due: int = settings.MAX_DAYS_PAST_DUE
    max_eligible_dti: float = settings.MAX_ELIGIBLE_DTI
    exposure_income_share: float = settings.EXPOSURE_INCOME_SHARE
    max_topup_income_months: int = settings.MAX_TOPUP_INCOME_MONTHS
    settlement_min_ratio: float = settings.SETTLEMENT_MIN_RATIO
    consolidation_min_ratio: float = settings.CONSOLIDATION_MIN_RATIO
    settlement_preferred_ratio: float = settings.SETTLEMENT_PREFERRED_RATIO
    stacking_max_dti: float = settings.STACKING_MAX_DTI
    dti_override_threshold: float = settings.DTI_OVERRIDE_THRESHOLD
    interest_rebate_share: float = settings.INTEREST_REBATE_SHARE
    prepayment_penalty: float = settings.PREPAYMENT_PENALTY
    default_applied_share: float = settings.DEFAULT_APPLIED_SHARE
    default_new_loan_tenure: int = settings.DEFAULT_NEW_LOAN_TENURE
    processing_fee_rate: float = settings.PROCESSING_FEE_RATE
    insurance_fee_rate: float = settings.INSURANCE_FEE_RATE
    min_topup_amount: float = settings.MIN_TOPUP_AMOUNT
    min_tenure_months: int = settings.MIN_TENURE_MONTHS
    max_tenure_months: int = settings.MAX_TENURE_MONTHS
    default_wizard_amount: float = settings.DEFAULT_WIZARD_AMOUNT

    @property
    def net_disbursement_rate(self) -> float:
        return 1 - self.processing_fee_rate - self.insurance_fee_rate

    def with_overrides(self, overrides: Dict[str, str]) -> "TopUpPolicy":
        """按字段类型转换字符串覆盖值，未知键忽略"""
        changes = {}
        for f in fields(self):
            if f.name not in overrides:
                continue
            raw = overrides[f.name]
            changes[f.name] = int(float(raw)) if f.type in (int, "int") else float(raw)
        return replace(self, **changes)


DEFAULT_POLICY = TopUpPolicy()


def load_policy(filepath: Optional[Path] = None) -> TopUpPolicy:
    """从 Excel 系统配置表读取覆盖值"""
    from data_manager.excel_handler import get_all_config
    from config.settings import EXCEL_FILE

    config_df = get_all_config(filepath or EXCEL_FILE)
    if config_df.empty:
        return DEFAULT_POLICY
    overrides = {
        str(row["key"]): str(row["value"])
        for _, row in config_df.iterrows()
    }
    return DEFAULT_POLICY.with_overrides(overrides)
