"""去重服务的请求 / 结果模型"""

from pydantic import BaseModel, Field

from syntask.core.models import (
    DuplicateCandidate,
    DuplicateScore,
    MergedBy,
    MergedTask,
    ReviewAction,
)


# ============================================================
# 合并 / 取消合并
# ============================================================


class MergeTaskRequest(BaseModel):
    """合并请求"""

    task_ids: list[str] = Field(description="待合并任务 ID（至少 2 个）")
    user_id: str = Field(description="发起合并的用户")
    merged_by: MergedBy = Field(default=MergedBy.MANUAL, description="合并发起方")
    primary_task_id: str | None = Field(
        default=None,
        description="主任务 ID，其标题与描述成为合并后的标题与描述",
    )


class MergeTaskResult(BaseModel):
    merged_task: MergedTask
    original_tasks: list[str] = Field(description="被合并的原始任务 ID")


class UnmergeTaskRequest(BaseModel):
    merged_task_id: str
    user_id: str


class UnmergeTaskResult(BaseModel):
    restored_tasks: list[str] = Field(description="恢复为未合并状态的任务 ID")


# ============================================================
# 人工审核
# ============================================================


class DuplicateReviewRequest(BaseModel):
    candidate_id: str
    user_id: str
    action: ReviewAction


class DuplicateReviewResult(BaseModel):
    candidate: DuplicateCandidate
    merged_task: MergedTask | None = Field(
        default=None, description="action=approve 时产生的 MergedTask"
    )


# ============================================================
# 检测结果
# ============================================================


class DetectionResult(BaseModel):
    """批量检测结果"""

    duplicates: list[DuplicateCandidate] = Field(
        default_factory=list, description="本次新建的全部候选"
    )
    auto_merged: list[str] = Field(
        default_factory=list, description="自动合并产生的 MergedTask ID"
    )
    suggestions: list[DuplicateCandidate] = Field(
        default_factory=list, description="待人工审核的候选"
    )
    pairs_compared: int = Field(default=0, description="实际评分的任务对数")
    errors: int = Field(default=0, description="单个任务对处理失败次数")
    cancelled: bool = Field(default=False, description="是否被取消 / 超时中断")


class NewTaskDetectionResult(BaseModel):
    """新任务实时检测结果"""

    is_duplicate: bool = False
    merged_task_id: str | None = None
    duplicate_candidate_id: str | None = None
    auto_merged: bool = False


class BackgroundDetectionStats(BaseModel):
    """后台扫描计数"""

    processed: int = Field(default=0, description="已评分的任务对数")
    duplicates_found: int = 0
    auto_merged: int = 0
    errors: int = 0
    cancelled: bool = False


class ScoredPair(BaseModel):
    """未持久化的评分结果"""

    task1_id: str
    task2_id: str
    score: DuplicateScore


class OptimizedDetectionResult(BaseModel):
    candidates: list[ScoredPair] = Field(default_factory=list)
    processing_time_ms: float = Field(default=0.0, description="处理耗时（毫秒）")


# ============================================================
# 查询
# ============================================================


class CandidatePage(BaseModel):
    """候选分页结果"""

    candidates: list[DuplicateCandidate]
    total: int
    page: int
    limit: int
    has_more: bool


class DeduplicationStats(BaseModel):
    total_tasks: int = 0
    merged_tasks: int = 0
    pending_candidates: int = 0
    approved_candidates: int = 0
    rejected_candidates: int = 0
    auto_merged_candidates: int = 0
    total_candidates: int = 0


__all__ = [
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
]
