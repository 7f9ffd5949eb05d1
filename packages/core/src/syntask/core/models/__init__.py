"""Syntask Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .duplicate import DuplicateCandidate, DuplicateScore, canonical_pair
from .enums import (
    PRIORITY_RANK,
    RESOLVED_CANDIDATE_STATES,
    VALID_CANDIDATE_TRANSITIONS,
    CandidateStatus,
    Confidence,
    MergedBy,
    ReviewAction,
    TaskPriority,
    TaskSourceType,
    TaskStatus,
    validate_candidate_transition,
)
from .merged import MergedTask, TaskSource
from .task import Task

__all__ = [
    # 枚举
    "TaskSourceType",
    "TaskStatus",
    "TaskPriority",
    "PRIORITY_RANK",
    "Confidence",
    "CandidateStatus",
    "MergedBy",
    "ReviewAction",
    # 候选状态机
    "VALID_CANDIDATE_TRANSITIONS",
    "RESOLVED_CANDIDATE_STATES",
    "validate_candidate_transition",
    # Task
    "Task",
    # Duplicate
    "DuplicateScore",
    "DuplicateCandidate",
    "canonical_pair",
    # Merged
    "MergedTask",
    "TaskSource",
]
