"""追加贷款申请统计"""
from typing import Dict, Iterable, Union

import pandas as pd

from config.constants import PENDING_STATUSES, RequestStatus

PENDING_VALUES = [s.value for s in PENDING_STATUSES]


def _as_frame(requests: Union[pd.DataFrame, Iterable[dict]]) -> pd.DataFrame:
    if isinstance(requests, pd.DataFrame):
        return requests
    return pd.DataFrame(list(requests))


def summarize_requests(requests: Union[pd.DataFrame, Iterable[dict]]) -> Dict[str, int]:
    """按状态汇总申请数量"""
    df = _as_frame(requests)
    if df.empty or "status" not in df.columns:
        return {"total": len(df), "pending": 0, "approved": 0, "disbursed": 0, "rejected": 0}

    status = df["status"]
    return {
        "total": len(df),
        "pending": int(status.isin(PENDING_VALUES).sum()),
        "approved": int((status == RequestStatus.APPROVED.value).sum()),
        "disbursed": int((status == RequestStatus.DISBURSED.value).sum()),
        "rejected": int((status == RequestStatus.REJECTED.value).sum()),
    }


def has_pending_request(requests: Union[pd.DataFrame, Iterable[dict]], client_id: str) -> bool:
    """客户是否已有审批中的申请"""
    df = _as_frame(requests)
    if df.empty:
        return False
    mask = (df["client_id"].astype(str) == str(client_id)) & df["status"].isin(PENDING_VALUES)
    return bool(mask.any())
