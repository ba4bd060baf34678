import uuid
from datetime import datetime
from typing import Optional


def generate_request_number(now: Optional[datetime] = None) -> str:
    """TR-YYYY-######"""
    now = now or datetime.now()
    return f"TR-{now.strftime('%Y')}-{uuid.uuid4().int % 1_000_000:06d}"


def generate_request_id() -> str:
    return uuid.uuid4().hex


def generate_step_id() -> str:
    return f"WS-{uuid.uuid4().hex[:12]}"
