"""Syntask Dedup -- 重复检测与合并引擎

packages/dedup 的公开接口导出。
"""

# 配置
from .config import DuplicateDetectionConfig, load_detection_config

# 核心组件
from .detection import DeduplicationService, validate_pagination

# 异常
from .exceptions import (
    ConflictError,
    DeduplicationError,
    DependencyFailureError,
    ErrorKind,
    InvalidRequestError,
    NotFoundError,
)
from .merge import (
    TaskMergeService,
    resolve_merged_due_date,
    resolve_merged_priority,
    resolve_merged_status,
    select_primary_task,
)

# 数据模型
from .models import (
    BackgroundDetectionStats,
    CandidatePage,
    DeduplicationStats,
    DetectionResult,
    DuplicateReviewRequest,
    DuplicateReviewResult,
    MergeTaskRequest,
    MergeTaskResult,
    NewTaskDetectionResult,
    OptimizedDetectionResult,
    ScoredPair,
    UnmergeTaskRequest,
    UnmergeTaskResult,
)
from .pipeline import DuplicateDetectionPipeline
from .scorer import DuplicateScorer, calculate_duplicate_score

__all__ = [
    "DuplicateDetectionConfig",
    "load_detection_config",
    "DuplicateScorer",
    "calculate_duplicate_score",
    "DeduplicationService",
    "validate_pagination",
    "TaskMergeService",
    "resolve_merged_status",
    "resolve_merged_priority",
    "resolve_merged_due_date",
    "select_primary_task",
    "DuplicateDetectionPipeline",
    "MergeTaskRequest",
    "MergeTaskResult",
    "UnmergeTaskRequest",
    "UnmergeTaskResult",
    "DuplicateReviewRequest",
    "DuplicateReviewResult",
    "DetectionResult",
    "NewTaskDetectionResult",
    "BackgroundDetectionStats",
    "ScoredPair",
    "OptimizedDetectionResult",
    "CandidatePage",
    "DeduplicationStats",
    "ErrorKind",
    "DeduplicationError",
    "InvalidRequestError",
    "NotFoundError",
    "ConflictError",
    "DependencyFailureError",
]
