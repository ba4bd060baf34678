from pathlib import Path

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 数据文件路径
DATA_DIR = PROJECT_ROOT / "data"
EXCEL_FILE = DATA_DIR / "topup_data.xlsx"
MAX_BACKUPS = 5

# 资格审核阈值
MIN_PAYMENT_HISTORY_PCT = 80.0
MAX_DAYS_PAST_DUE = 0
MAX_ELIGIBLE_DTI = 80.0
EXPOSURE_INCOME_SHARE = 0.5  # 年收入的 50%
MAX_TOPUP_INCOME_MONTHS = 6

# 策略阈值 (相对于剩余本金的比例)
SETTLEMENT_MIN_RATIO = 0.8
CONSOLIDATION_MIN_RATIO = 0.5
SETTLEMENT_PREFERRED_RATIO = 1.0
STACKING_MAX_DTI = 40.0
DTI_OVERRIDE_THRESHOLD = 40.0

# 提前结清
INTEREST_REBATE_SHARE = 0.5
PREPAYMENT_PENALTY = 0.0

# 净额追加默认分配
DEFAULT_APPLIED_SHARE = 0.3

# 默认期限 (月)
DEFAULT_NEW_LOAN_TENURE = 12
# (金额上限, 期限)，超过最后一档取 FALLBACK
TENURE_TIERS = [(1000, 6), (3000, 9), (5000, 12)]
FALLBACK_TIER_TENURE = 18

# 费用 (占申请金额比例)
PROCESSING_FEE_RATE = 0.01
INSURANCE_FEE_RATE = 0.005

# 申请边界
MIN_TOPUP_AMOUNT = 500.0
MIN_TENURE_MONTHS = 3
MAX_TENURE_MONTHS = 36
DEFAULT_WIZARD_AMOUNT = 10000.0
