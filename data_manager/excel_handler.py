import json
import logging
import math
import shutil
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from openpyxl import load_workbook

from config.constants import (
    SHEET_TOPUP_REQUESTS, SHEET_WORKFLOW_STEPS, SHEET_CONFIG,
    TOPUP_REQUEST_COLUMNS, WORKFLOW_STEP_COLUMNS, CONFIG_COLUMNS, JSON_COLUMNS,
)
from config.settings import (
    EXCEL_FILE, MAX_BACKUPS, PROCESSING_FEE_RATE, INSURANCE_FEE_RATE,
    STACKING_MAX_DTI, DTI_OVERRIDE_THRESHOLD,
)
from core.exceptions import RequestNotFound

logger = logging.getLogger(__name__)


def _default_config_rows() -> List[dict]:
    now = datetime.now().isoformat()
    return [
        {"key": "processing_fee_rate", "value": str(PROCESSING_FEE_RATE), "description": "Processing fee share of requested amount", "updated_at": now},
        {"key": "insurance_fee_rate", "value": str(INSURANCE_FEE_RATE), "description": "Insurance fee share of requested amount", "updated_at": now},
        {"key": "stacking_max_dti", "value": str(STACKING_MAX_DTI), "description": "Maximum combined DTI for stacking (%)", "updated_at": now},
        {"key": "dti_override_threshold", "value": str(DTI_OVERRIDE_THRESHOLD), "description": "DTI above which an override is recorded (%)", "updated_at": now},
    ]


def init_excel(filepath: Path = EXCEL_FILE):
    """初始化 Excel 文件，创建所有 Sheet 和表头"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    if filepath.exists():
        return

    with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
        pd.DataFrame(columns=TOPUP_REQUEST_COLUMNS).to_excel(
            writer, sheet_name=SHEET_TOPUP_REQUESTS, index=False)
        pd.DataFrame(columns=WORKFLOW_STEP_COLUMNS).to_excel(
            writer, sheet_name=SHEET_WORKFLOW_STEPS, index=False)
        config_df = pd.DataFrame(_default_config_rows(), columns=CONFIG_COLUMNS)
        config_df.to_excel(writer, sheet_name=SHEET_CONFIG, index=False)
    logger.info("Created workbook %s", filepath)


def backup_excel(filepath: Path = EXCEL_FILE):
    """写入前自动备份"""
    filepath = Path(filepath)
    if filepath.exists():
        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = filepath.with_suffix(f".xlsx.bak_{ts}")
        shutil.copy2(filepath, backup_path)
        # 只保留最近几个备份
        backups = sorted(filepath.parent.glob(f"{filepath.stem}.xlsx.bak_*"))
        for old in backups[:-MAX_BACKUPS]:
            old.unlink()


def read_sheet(sheet_name: str, filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    """读取指定 Sheet"""
    init_excel(filepath)
    try:
        df = pd.read_excel(filepath, sheet_name=sheet_name, engine="openpyxl")
    except ValueError:
        df = pd.DataFrame()
    return df


def write_sheet(df: pd.DataFrame, sheet_name: str, filepath: Path = EXCEL_FILE):
    """写入指定 Sheet（覆盖该 Sheet，保留其他 Sheet）"""
    init_excel(filepath)
    backup_excel(filepath)

    wb = load_workbook(filepath)
    if sheet_name in wb.sheetnames:
        del wb[sheet_name]
    wb.save(filepath)

    with pd.ExcelWriter(filepath, engine="openpyxl", mode="a", if_sheet_exists="replace") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)


# ---- 单元格编码 ----

def _encode_value(key: str, value):
    if key in JSON_COLUMNS and value is not None:
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _encode_record(record: dict) -> dict:
    return {k: _encode_value(k, v) for k, v in record.items()}


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _decode_row(row: dict) -> dict:
    decoded = {}
    for key, value in row.items():
        if _is_missing(value):
            decoded[key] = None
        elif key in JSON_COLUMNS and isinstance(value, str):
            decoded[key] = json.loads(value)
        elif hasattr(value, "item"):
            # numpy 标量转回 Python 原生类型
            decoded[key] = value.item()
        else:
            decoded[key] = value
    return decoded


# ---- 追加贷款申请 ----

def get_topup_requests(
    filepath: Path = EXCEL_FILE,
    status: Optional[str] = None,
    client_id: Optional[str] = None,
) -> pd.DataFrame:
    df = read_sheet(SHEET_TOPUP_REQUESTS, filepath)
    if df.empty:
        return df
    if status:
        df = df[df["status"] == status]
    if client_id:
        df = df[df["client_id"].astype(str) == str(client_id)]
    return df.reset_index(drop=True)


def save_topup_request(record: dict, filepath: Path = EXCEL_FILE):
    df = read_sheet(SHEET_TOPUP_REQUESTS, filepath)
    new_row = pd.DataFrame([_encode_record(record)], columns=TOPUP_REQUEST_COLUMNS)
    df = new_row if df.empty else pd.concat([df, new_row], ignore_index=True)
    write_sheet(df, SHEET_TOPUP_REQUESTS, filepath)


def update_topup_request(request_id: str, updates: Dict, filepath: Path = EXCEL_FILE) -> bool:
    df = read_sheet(SHEET_TOPUP_REQUESTS, filepath).astype(object)
    mask = df["id"].astype(str) == str(request_id)
    if not mask.any():
        return False
    for col, value in _encode_record(updates).items():
        if col in df.columns:
            df.loc[mask, col] = value
    write_sheet(df, SHEET_TOPUP_REQUESTS, filepath)
    return True


# ---- 审批环节 ----

def get_workflow_steps(request_id: str, filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    df = read_sheet(SHEET_WORKFLOW_STEPS, filepath)
    if df.empty:
        return df
    df = df[df["topup_request_id"].astype(str) == str(request_id)]
    return df.sort_values("step_order").reset_index(drop=True)


def save_workflow_steps(records: List[dict], filepath: Path = EXCEL_FILE):
    df = read_sheet(SHEET_WORKFLOW_STEPS, filepath)
    new_rows = pd.DataFrame([_encode_record(r) for r in records], columns=WORKFLOW_STEP_COLUMNS)
    df = new_rows if df.empty else pd.concat([df, new_rows], ignore_index=True)
    write_sheet(df, SHEET_WORKFLOW_STEPS, filepath)


def update_workflow_step(
    request_id: str,
    step_name: str,
    updates: Dict,
    filepath: Path = EXCEL_FILE,
) -> bool:
    df = read_sheet(SHEET_WORKFLOW_STEPS, filepath).astype(object)
    mask = (df["topup_request_id"].astype(str) == str(request_id)) & (df["step_name"] == step_name)
    if not mask.any():
        return False
    for col, value in _encode_record(updates).items():
        if col in df.columns:
            df.loc[mask, col] = value
    write_sheet(df, SHEET_WORKFLOW_STEPS, filepath)
    return True


# ---- 系统配置 ----

def get_config(key: str, filepath: Path = EXCEL_FILE) -> Optional[str]:
    df = read_sheet(SHEET_CONFIG, filepath)
    match = df[df["key"] == key]
    if match.empty:
        return None
    return str(match.iloc[0]["value"])


def get_all_config(filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    """获取所有系统配置"""
    return read_sheet(SHEET_CONFIG, filepath)


def set_config(key: str, value: str, description: str = "", filepath: Path = EXCEL_FILE):
    df = read_sheet(SHEET_CONFIG, filepath).astype(object)
    now = datetime.now().isoformat()
    if key in df["key"].values:
        df.loc[df["key"] == key, "value"] = value
        df.loc[df["key"] == key, "updated_at"] = now
        if description:
            df.loc[df["key"] == key, "description"] = description
    else:
        new_row = pd.DataFrame([{
            "key": key, "value": value,
            "description": description, "updated_at": now,
        }])
        df = pd.concat([df, new_row], ignore_index=True)
    write_sheet(df, SHEET_CONFIG, filepath)


class ExcelRequestStore:
    """以 Excel 工作簿保存申请与审批环节"""

    def __init__(self, filepath: Path = EXCEL_FILE):
        self.filepath = Path(filepath)
        init_excel(self.filepath)

    def insert_request(self, record: dict) -> dict:
        save_topup_request(record, self.filepath)
        return dict(record)

    def insert_workflow_steps(self, steps: List[dict]):
        save_workflow_steps(steps, self.filepath)

    def update_request(self, request_id: str, updates: Dict):
        if not update_topup_request(request_id, updates, self.filepath):
            raise RequestNotFound(f"Top-up request {request_id} not found")

    def update_workflow_step(self, request_id: str, step_name: str, updates: Dict):
        if not update_workflow_step(request_id, step_name, updates, self.filepath):
            raise RequestNotFound(f"Workflow step {step_name} of request {request_id} not found")

    def get_request(self, request_id: str) -> Optional[dict]:
        df = read_sheet(SHEET_TOPUP_REQUESTS, self.filepath)
        if df.empty:
            return None
        match = df[df["id"].astype(str) == str(request_id)]
        if match.empty:
            return None
        return _decode_row(match.iloc[0].to_dict())

    def list_requests(self, status: Optional[str] = None, client_id: Optional[str] = None) -> List[dict]:
        df = get_topup_requests(self.filepath, status, client_id)
        return [_decode_row(row) for row in df.to_dict("records")]

    def list_workflow_steps(self, request_id: str) -> List[dict]:
        df = get_workflow_steps(request_id, self.filepath)
        return [_decode_row(row) for row in df.to_dict("records")]
