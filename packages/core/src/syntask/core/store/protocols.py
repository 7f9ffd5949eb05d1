"""Store Protocol 接口定义

定义 TaskStore、CandidateStore、MergeStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import datetime
from typing import Protocol

from ..models.duplicate import DuplicateCandidate
from ..models.enums import CandidateStatus
from ..models.merged import MergedTask, TaskSource
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口（由外部聚合层写入）"""

    async def list_non_merged_tasks_for_user(self, user_id: str) -> list[Task]:
        """查询用户未合并的任务"""
        ...

    async def find_tasks_by_ids(self, task_ids: list[str], user_id: str) -> list[Task]:
        """按 ID 查询用户拥有的任务"""
        ...

    async def mark_tasks_merged(self, task_ids: list[str], merged_task_id: str) -> int:
        """条件标记任务已合并，返回实际更新行数"""
        ...

    async def mark_tasks_unmerged(self, task_ids: list[str], merged_task_id: str) -> int:
        """恢复任务为未合并状态，返回实际更新行数"""
        ...


class CandidateStore(Protocol):
    """重复候选存储接口"""

    async def find_existing_candidate(
        self, task_id_a: str, task_id_b: str
    ) -> DuplicateCandidate | None:
        """按无序任务对查询候选"""
        ...

    async def create_candidate(
        self, candidate: DuplicateCandidate
    ) -> tuple[DuplicateCandidate, bool]:
        """幂等创建候选，返回 (candidate, created)"""
        ...

    async def update_candidate_status(
        self,
        candidate_id: str,
        status: CandidateStatus,
        reviewed_by: str | None = None,
        reviewed_at: datetime | None = None,
    ) -> bool:
        """更新 pending 候选的状态"""
        ...

    async def find_candidate(self, candidate_id: str) -> DuplicateCandidate | None:
        """根据 candidate_id 查询候选"""
        ...

    async def list_candidates(
        self,
        user_id: str,
        status: CandidateStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[DuplicateCandidate], int]:
        """分页查询候选，返回 (候选列表, 总数)"""
        ...


class MergeStore(Protocol):
    """合并任务存储接口"""

    async def create_merged_task(self, merged_task: MergedTask) -> None:
        """写入 MergedTask"""
        ...

    async def create_task_sources(
        self, merged_task_id: str, sources: list[TaskSource]
    ) -> None:
        """写入溯源记录"""
        ...

    async def find_merged_task(self, merged_task_id: str, user_id: str) -> MergedTask | None:
        """查询用户拥有的 MergedTask"""
        ...

    async def delete_merged_task_and_sources(self, merged_task_id: str) -> None:
        """删除 MergedTask 及其溯源记录"""
        ...
