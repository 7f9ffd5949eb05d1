"""DuplicateScore / DuplicateCandidate Domain Model

DuplicateScore 是两条任务与一份配置的纯函数结果，不独立持久化。
DuplicateCandidate 以无序任务对为键：(a, b) 与 (b, a) 视为同一候选，
每个无序对最多存在一条候选。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import CandidateStatus, Confidence


def canonical_pair(task_id_a: str, task_id_b: str) -> tuple[str, str]:
    """返回无序任务对的规范顺序 (low, high)"""
    if task_id_a <= task_id_b:
        return task_id_a, task_id_b
    return task_id_b, task_id_a


class DuplicateScore(BaseModel):
    """多因子相似度评分"""

    title_similarity: float = Field(ge=0.0, description="标题相似度 [0,1]")
    description_similarity: float = Field(ge=0.0, description="描述相似度 [0,1]")
    temporal_proximity: float = Field(ge=0.0, description="时间接近度 [0,1]")
    assignee_match: float = Field(ge=0.0, description="负责人匹配度 [0,1]")
    priority_match: float = Field(ge=0.0, description="优先级匹配度 [0,1]")
    overall_score: float = Field(ge=0.0, description="加权总分")
    confidence: Confidence = Field(description="置信度分档")

    @classmethod
    def zero(cls) -> "DuplicateScore":
        """不可比较任务对的零分"""
        return cls(
            title_similarity=0.0,
            description_similarity=0.0,
            temporal_proximity=0.0,
            assignee_match=0.0,
            priority_match=0.0,
            overall_score=0.0,
            confidence=Confidence.LOW,
        )


class DuplicateCandidate(BaseModel):
    """重复候选记录

    生命周期：pending -> approved / rejected / auto_merged，处理后不可变。
    """

    candidate_id: str = Field(description="唯一标识，ULID 格式")
    task1_id: str = Field(description="任务 1 ID")
    task2_id: str = Field(description="任务 2 ID")
    score: DuplicateScore = Field(description="评分快照")
    status: CandidateStatus = Field(
        default=CandidateStatus.PENDING, description="候选状态"
    )
    reviewed_by: str | None = Field(default=None, description="审核人")
    reviewed_at: datetime | None = Field(default=None, description="审核时间")
    created_at: datetime = Field(description="创建时间")

    @property
    def pair_key(self) -> tuple[str, str]:
        """无序任务对键"""
        return canonical_pair(self.task1_id, self.task2_id)

    def involves(self, task_id: str) -> bool:
        return task_id in (self.task1_id, self.task2_id)
