"""TaskIngestService -- 已归一化任务入库 + 实时重复检测

入库流程：
1. (source, external_id) 已存在时拒绝
2. 单事务写入任务
3. 与用户其他未合并任务做实时检测（只记录最佳匹配）
4. 自动合并后重新读取任务，返回合并后的状态
"""

from datetime import UTC, datetime

import aiosqlite
import structlog
from syntask.core.models import Task
from syntask.core.store import StoreGroup, write_transaction
from syntask.dedup import (
    ConflictError,
    DependencyFailureError,
    DuplicateDetectionPipeline,
    NewTaskDetectionResult,
)
from syntask.dedup.exceptions import storage_errors

log = structlog.get_logger()


class TaskIngestService:
    """任务入库业务服务"""

    def __init__(self, store_group: StoreGroup, pipeline: DuplicateDetectionPipeline) -> None:
        self._stores = store_group
        self._pipeline = pipeline

    async def ingest_task(self, task: Task) -> tuple[Task, NewTaskDetectionResult]:
        """写入任务并执行实时重复检测

        Raises:
            ConflictError: 同一 (source, external_id) 的任务已存在
            DependencyFailureError: 存储调用失败
        """
        with storage_errors("find_task_by_external_id"):
            existing = await self._stores.task_store.find_task_by_external_id(
                task.source.value, task.external_id
            )
        if existing is not None:
            raise ConflictError(f"任务已存在: {task.source.value}/{task.external_id}")

        try:
            async with write_transaction(self._stores.conn, self._stores.write_lock):
                await self._stores.task_store.create_task(task)
        except aiosqlite.IntegrityError as e:
            # 并发写入同一外部任务时由唯一索引拒绝
            raise ConflictError(f"任务已存在: {task.source.value}/{task.external_id}") from e
        except aiosqlite.Error as e:
            raise DependencyFailureError("create_task", e) from e

        log.info(
            "task_ingested",
            task_id=task.task_id,
            source=task.source.value,
            user_id=task.user_id,
        )

        with storage_errors("list_non_merged_tasks_for_user"):
            existing_tasks = await self._stores.task_store.list_non_merged_tasks_for_user(
                task.user_id
            )
        detection = await self._pipeline.process_new_task_for_duplicates(task, existing_tasks)
        if detection.auto_merged:
            with storage_errors("get_task"):
                task = await self._stores.task_store.get_task(task.task_id) or task
        return task, detection

    async def list_tasks(self, user_id: str) -> list[Task]:
        with storage_errors("list_tasks_for_user"):
            return await self._stores.task_store.list_tasks_for_user(user_id)


def stamp_times(
    created_at: datetime | None, updated_at: datetime | None
) -> tuple[datetime, datetime]:
    """补全缺省的创建 / 更新时间"""
    now = datetime.now(UTC)
    created = created_at or now
    return created, updated_at or created
