"""审批流水线状态变更"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from config.constants import (
    RequestStatus, StepStatus, STATUS_PIPELINE, STATUS_STEP_MAP, WorkflowStepName,
)
from core.exceptions import InvalidStatusTransition, RequestNotFound, ValidationError
from data_manager.data_validator import validate_request_status

logger = logging.getLogger(__name__)


def next_statuses(current: str) -> List[RequestStatus]:
    """当前状态允许变更到的状态：流水线下一站，或驳回"""
    status = RequestStatus(current)
    if status.is_terminal:
        return []
    idx = STATUS_PIPELINE.index(status)
    return [STATUS_PIPELINE[idx + 1], RequestStatus.REJECTED]


def plan_status_transition(
    request: dict,
    new_status: str,
    actor_id: str,
    comments: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Dict, Optional[WorkflowStepName], Dict]:
    """返回 (申请更新字段, 对应环节, 环节更新字段)；无对应环节时为 None"""
    ok, msg = validate_request_status(new_status)
    if not ok:
        raise ValidationError(msg)
    if not actor_id:
        raise ValidationError("An authenticated actor is required to change status")

    current = RequestStatus(request["status"])
    target = RequestStatus(new_status)
    if target not in next_statuses(current):
        raise InvalidStatusTransition(current.value, target.value)

    now = now or datetime.now()
    updates = {"status": target.value, "updated_at": now}
    if target == RequestStatus.APPROVED:
        updates["approved_by"] = actor_id
        updates["approved_at"] = now
    elif target == RequestStatus.DISBURSED:
        updates["disbursed_at"] = now
    elif target == RequestStatus.REJECTED:
        updates["rejected_at"] = now

    step = STATUS_STEP_MAP.get(target)
    step_updates = {
        "status": StepStatus.APPROVED.value,
        "reviewed_by": actor_id,
        "reviewed_at": now,
        "comments": comments,
    }
    return updates, step, step_updates


def transition_request_status(
    store,
    request_id: str,
    new_status: str,
    actor_id: str,
    comments: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """变更申请状态并标记目标状态对应的审批环节"""
    request = store.get_request(request_id)
    if request is None:
        raise RequestNotFound(f"Top-up request {request_id} not found")

    updates, step, step_updates = plan_status_transition(
        request, new_status, actor_id, comments, now,
    )
    store.update_request(request_id, updates)
    if step is not None:
        store.update_workflow_step(request_id, step.value, step_updates)

    logger.info(
        "Request %s moved %s -> %s by %s",
        request.get("request_number", request_id), request["status"], new_status, actor_id,
    )
    return {**request, **updates}
