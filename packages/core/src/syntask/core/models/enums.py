"""枚举定义 -- 任务来源、任务状态、优先级、候选状态机

包含 CandidateStatus 状态机、VALID_CANDIDATE_TRANSITIONS 合法流转映射
和 RESOLVED_CANDIDATE_STATES 终态集合。
"""

from enum import StrEnum


class TaskSourceType(StrEnum):
    """外部任务来源"""

    MICROSOFT = "microsoft"
    CONNECTWISE = "connectwise"
    PROCESSPLAN = "processplan"


class TaskStatus(StrEnum):
    """归一化后的任务状态"""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    """任务优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# 优先级排序：值越大越高
PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
}


class Confidence(StrEnum):
    """重复判定置信度分档"""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CandidateStatus(StrEnum):
    """重复候选状态机"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_MERGED = "auto_merged"


class MergedBy(StrEnum):
    """合并发起方"""

    AUTO = "auto"
    MANUAL = "manual"


class ReviewAction(StrEnum):
    """人工审核动作"""

    APPROVE = "approve"
    REJECT = "reject"


# 候选合法状态流转：只有 pending 可以被处理，处理后不可变
VALID_CANDIDATE_TRANSITIONS: dict[CandidateStatus, set[CandidateStatus]] = {
    CandidateStatus.PENDING: {
        CandidateStatus.APPROVED,
        CandidateStatus.REJECTED,
        CandidateStatus.AUTO_MERGED,
    },
    CandidateStatus.APPROVED: set(),
    CandidateStatus.REJECTED: set(),
    CandidateStatus.AUTO_MERGED: set(),
}

RESOLVED_CANDIDATE_STATES: set[CandidateStatus] = {
    CandidateStatus.APPROVED,
    CandidateStatus.REJECTED,
    CandidateStatus.AUTO_MERGED,
}


def validate_candidate_transition(
    from_status: CandidateStatus, to_status: CandidateStatus
) -> bool:
    """验证候选状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_CANDIDATE_TRANSITIONS.get(from_status, set())
    return to_status in allowed
