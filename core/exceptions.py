"""追加贷款流程异常"""


class TopUpError(Exception):
    """所有追加贷款异常的基类"""


class ValidationError(TopUpError, ValueError):
    """输入不合法（金额、期限、分配、枚举值）"""


class InvariantViolation(TopUpError, AssertionError):
    pass


class SubmissionError(TopUpError):
    """提交时持久化失败，原始异常见 __cause__"""

    def __init__(self, message: str, request_number: str = "", stage: str = ""):
        super().__init__(message)
        self.request_number = request_number
        self.stage = stage


class SubmissionInFlight(TopUpError):
    pass


class InvalidStatusTransition(TopUpError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move request from '{current}' to '{target}'")
        self.current = current
        self.target = target


class RequestNotFound(TopUpError, LookupError):
    pass
