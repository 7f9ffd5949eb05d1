"""去重异常体系

ErrorKind 是封闭的错误分类；每个异常携带 kind 与 recoverable 标记，
调用方（gateway / pipeline）据此映射 HTTP 状态或降级为错误计数。
"""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum

import aiosqlite


class ErrorKind(StrEnum):
    """错误分类"""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DEPENDENCY_FAILURE = "dependency_failure"


class DeduplicationError(Exception):
    """去重包基础异常"""

    kind: ErrorKind = ErrorKind.DEPENDENCY_FAILURE

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试或降级恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class InvalidRequestError(DeduplicationError):
    """请求参数非法（合并任务数不足、分页参数越界等），在任何写入前拒绝"""

    kind = ErrorKind.VALIDATION


class NotFoundError(DeduplicationError):
    """任务 / 候选 / MergedTask 不存在或不属于当前用户"""

    kind = ErrorKind.NOT_FOUND


class ConflictError(DeduplicationError):
    """任务已被合并，或并发合并抢先完成"""

    kind = ErrorKind.CONFLICT


class DependencyFailureError(DeduplicationError):
    """持久化调用失败

    批量操作中向调用方重新抛出；后台扫描中降级为单项错误计数。
    """

    kind = ErrorKind.DEPENDENCY_FAILURE

    def __init__(self, operation: str, original_error: Exception) -> None:
        """
        Args:
            operation: 失败的操作名
            original_error: 原始异常
        """
        super().__init__(
            f"存储操作失败: {operation} -- {type(original_error).__name__}",
            recoverable=True,
        )
        self.operation = operation
        self.original_error = original_error


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """将 aiosqlite.Error 转换为 DependencyFailureError"""
    try:
        yield
    except aiosqlite.Error as e:
        raise DependencyFailureError(operation, e) from e
