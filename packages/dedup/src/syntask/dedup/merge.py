"""TaskMergeService -- 任务合并 / 取消合并

合并流程：
1. 校验任务数 >= 2（去重后）
2. 全部任务存在且属于该用户
3. 没有任务已被合并
4. 按规则计算合并字段，单事务写入 MergedTask + 标记源任务 + 溯源记录

取消合并在单事务内恢复源任务并删除 MergedTask 与溯源记录。
"""

from collections.abc import Sequence
from datetime import UTC, datetime

import structlog
from syntask.core.config import AUTO_MERGE_CONFIDENCE
from syntask.core.models import (
    PRIORITY_RANK,
    CandidateStatus,
    MergedBy,
    MergedTask,
    Task,
    TaskPriority,
    TaskSource,
    TaskStatus,
)
from syntask.core.store import StoreGroup
from syntask.core.store.transaction import (
    CandidateAlreadyResolvedError,
    CandidateResolution,
    TaskMergeConflictError,
    merge_tasks_atomically,
    unmerge_tasks_atomically,
)
from ulid import ULID

from .exceptions import ConflictError, InvalidRequestError, NotFoundError, storage_errors
from .models import MergeTaskRequest, MergeTaskResult, UnmergeTaskRequest, UnmergeTaskResult

log = structlog.get_logger()

MIN_TASKS_TO_MERGE = 2


# ============================================================
# 合并字段解析规则（纯函数，与输入顺序无关）
# ============================================================


def resolve_merged_status(tasks: Sequence[Task]) -> TaskStatus:
    """completed 优先于 in_progress，其余为 pending"""
    statuses = {t.status for t in tasks}
    if TaskStatus.COMPLETED in statuses:
        return TaskStatus.COMPLETED
    if TaskStatus.IN_PROGRESS in statuses:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.PENDING


def resolve_merged_priority(tasks: Sequence[Task]) -> TaskPriority | None:
    """取已设置优先级中的最高者，全部未设置时为 None"""
    priorities = [t.priority for t in tasks if t.priority is not None]
    if not priorities:
        return None
    return max(priorities, key=lambda p: PRIORITY_RANK[p])


def resolve_merged_due_date(tasks: Sequence[Task]) -> datetime | None:
    """取最早的截止时间，全部未设置时为 None"""
    due_dates = [t.due_date for t in tasks if t.due_date is not None]
    if not due_dates:
        return None
    return min(due_dates, key=_sort_key)


def _sort_key(value: datetime) -> datetime:
    # 无时区的时间按 UTC 比较
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def select_primary_task(tasks: Sequence[Task], primary_task_id: str | None = None) -> Task:
    """选择主任务

    primary_task_id 指定且在集合中时选择该任务，否则选择输入顺序中的第一个任务。
    """
    if primary_task_id is not None:
        for task in tasks:
            if task.task_id == primary_task_id:
                return task
    return tasks[0]


def _snapshot_source(task: Task) -> TaskSource:
    return TaskSource(
        task_id=task.task_id,
        source=task.source,
        original_title=task.title,
        original_description=task.description,
        original_status=task.status,
        integration_id=task.integration_id,
        last_sync_at=task.updated_at,
        source_data=task.source_data,
    )


def build_merged_task(
    tasks: Sequence[Task],
    user_id: str,
    merged_by: MergedBy,
    primary_task_id: str | None = None,
) -> MergedTask:
    """按合并规则构建 MergedTask（不落盘）"""
    primary = select_primary_task(tasks, primary_task_id)
    now = datetime.now(UTC)
    return MergedTask(
        merged_task_id=str(ULID()),
        user_id=user_id,
        title=primary.title,
        description=primary.description,
        status=resolve_merged_status(tasks),
        priority=resolve_merged_priority(tasks),
        due_date=resolve_merged_due_date(tasks),
        merged_by=merged_by,
        confidence=AUTO_MERGE_CONFIDENCE if merged_by == MergedBy.AUTO else None,
        sources=[_snapshot_source(t) for t in tasks],
        created_at=now,
        updated_at=now,
    )


# ============================================================
# 服务
# ============================================================


class TaskMergeService:
    """任务合并业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def merge_tasks(
        self,
        request: MergeTaskRequest,
        *,
        candidate_id: str | None = None,
        candidate_status: CandidateStatus | None = None,
        reviewed_by: str | None = None,
    ) -> MergeTaskResult:
        """合并多个任务

        给出 candidate_id 时，候选在同一事务内由 pending 迁移到 candidate_status，
        候选已被处理则整个合并回滚。

        Raises:
            InvalidRequestError: 去重后任务数不足 2
            NotFoundError: 任一任务不存在或不属于该用户
            ConflictError: 任一任务已被合并（包括被并发合并抢先），或候选已被处理
            DependencyFailureError: 存储调用失败
        """
        # 重复 ID 只计一次，保持输入顺序
        task_ids = list(dict.fromkeys(request.task_ids))
        if len(task_ids) < MIN_TASKS_TO_MERGE:
            raise InvalidRequestError("合并至少需要 2 个任务")

        with storage_errors("find_tasks_by_ids"):
            tasks = await self._stores.task_store.find_tasks_by_ids(task_ids, request.user_id)
        if len(tasks) != len(task_ids):
            raise NotFoundError("一个或多个任务不存在或不属于该用户")

        already_merged = [t.task_id for t in tasks if t.merged_task_id or t.is_merged]
        if already_merged:
            raise ConflictError(f"任务已被合并: {', '.join(already_merged)}")

        merged_task = build_merged_task(
            tasks, request.user_id, request.merged_by, request.primary_task_id
        )

        resolution = None
        if candidate_id is not None and candidate_status is not None:
            resolution = CandidateResolution(
                candidate_store=self._stores.candidate_store,
                candidate_id=candidate_id,
                status=candidate_status,
                reviewed_by=reviewed_by,
                reviewed_at=datetime.now(UTC),
            )

        try:
            with storage_errors("merge_tasks"):
                await merge_tasks_atomically(
                    self._stores.conn,
                    self._stores.write_lock,
                    self._stores.task_store,
                    self._stores.merge_store,
                    merged_task,
                    resolution,
                )
        except TaskMergeConflictError as e:
            log.warning(
                "merge_lost_race",
                task_ids=task_ids,
                expected=e.expected,
                updated=e.updated,
            )
            raise ConflictError("任务已被并发合并") from e
        except CandidateAlreadyResolvedError as e:
            log.warning("merge_candidate_already_resolved", candidate_id=e.candidate_id)
            raise ConflictError("候选已被并发处理") from e

        log.info(
            "tasks_merged",
            merged_task_id=merged_task.merged_task_id,
            task_ids=task_ids,
            merged_by=request.merged_by.value,
            user_id=request.user_id,
            candidate_id=candidate_id,
        )
        return MergeTaskResult(merged_task=merged_task, original_tasks=task_ids)

    async def unmerge_tasks(self, request: UnmergeTaskRequest) -> UnmergeTaskResult:
        """取消合并，恢复全部源任务

        Raises:
            NotFoundError: MergedTask 不存在或不属于该用户
            DependencyFailureError: 存储调用失败
        """
        with storage_errors("find_merged_task"):
            merged_task = await self._stores.merge_store.find_merged_task(
                request.merged_task_id, request.user_id
            )
        if merged_task is None:
            raise NotFoundError("合并任务不存在")

        with storage_errors("unmerge_tasks"):
            restored = await unmerge_tasks_atomically(
                self._stores.conn,
                self._stores.write_lock,
                self._stores.task_store,
                self._stores.merge_store,
                merged_task,
            )

        log.info(
            "tasks_unmerged",
            merged_task_id=merged_task.merged_task_id,
            restored=restored,
            user_id=request.user_id,
        )
        return UnmergeTaskResult(restored_tasks=merged_task.source_ids)

    async def get_merged_task_by_id(self, merged_task_id: str, user_id: str) -> MergedTask | None:
        with storage_errors("find_merged_task"):
            return await self._stores.merge_store.find_merged_task(merged_task_id, user_id)

    async def get_merged_tasks_by_user_id(self, user_id: str) -> list[MergedTask]:
        """查询用户全部 MergedTask，按创建时间倒序"""
        with storage_errors("list_merged_tasks"):
            return await self._stores.merge_store.list_merged_tasks(user_id)
