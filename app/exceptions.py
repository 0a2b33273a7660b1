"""审阅引擎的异常体系。

服务层直接抛出这些异常；它们继承 ``HTTPException``，FastAPI 会按
``status_code`` 渲染，无需额外的异常处理器。
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ReviewAPIException(HTTPException):
    """所有领域错误的基类。"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, str]] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.extra = extra or {}


class NotFoundError(ReviewAPIException):
    """提交、评价、审阅人或学生不存在。"""

    def __init__(self, resource: str, identifier: Any = None, detail: Optional[str] = None):
        if detail is None:
            detail = (
                f"{resource} with ID {identifier} not found"
                if identifier is not None
                else f"{resource} not found"
            )
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND",
            extra={"resource": resource, "id": identifier},
        )


class InvalidStateError(ReviewAPIException):
    """提交状态不允许当前操作。"""

    def __init__(self, current_status: str, action: str, allowed: Optional[list] = None):
        allowed = allowed or []
        detail = f"Cannot {action} submission with status: {current_status}."
        if allowed:
            detail += f" Allowed statuses: {', '.join(repr(s) for s in allowed)}."
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="INVALID_STATE",
            extra={"current_status": current_status, "action": action},
        )


class ForbiddenError(ReviewAPIException):
    """调用方缺少所需能力。"""

    def __init__(self, detail: str = "Not authorized to perform this action"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN",
        )


class ReviewValidationError(ReviewAPIException):
    """业务校验失败：缺少驳回意见、评分越界、评分标准结构错误等。"""

    def __init__(self, message: str, **extra: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
            error_code="VALIDATION_ERROR",
            extra=extra,
        )


class AuthenticationError(ReviewAPIException):
    """Token 缺失或无效。"""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="AUTHENTICATION_FAILED",
            headers={"WWW-Authenticate": "Bearer"},
        )


class LedgerImmutabilityError(PermissionError):
    """技能钱包条目被试图绕过晋级算法修改或删除。"""
