"""合并 / 取消合并原子事务封装

同一连接上的写事务通过 write_lock 串行化，并以 BEGIN IMMEDIATE
提前获取 SQLite 写锁；前置条件（任务尚未合并）与状态变更在同一事务内
以 compare-and-set 完成，避免并发调用方重复合并同一任务。
由候选触发的合并同时在该事务内把候选从 pending 迁移到终态，
合并与候选状态要么一起提交，要么一起回滚。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import NamedTuple

import aiosqlite

from ..models.enums import CandidateStatus
from ..models.merged import MergedTask
from .protocols import CandidateStore, MergeStore, TaskStore


class TaskMergeConflictError(Exception):
    """合并时部分任务已被并发合并"""

    def __init__(self, task_ids: list[str], expected: int, updated: int) -> None:
        super().__init__(
            f"merge conflict: expected {expected} tasks to be unmerged, "
            f"only {updated} updated ({', '.join(task_ids)})"
        )
        self.task_ids = task_ids
        self.expected = expected
        self.updated = updated


class CandidateAlreadyResolvedError(Exception):
    """候选已不是 pending（被并发审核或处理）"""

    def __init__(self, candidate_id: str) -> None:
        super().__init__(f"candidate already resolved: {candidate_id}")
        self.candidate_id = candidate_id


class CandidateResolution(NamedTuple):
    """随合并一起提交的候选状态迁移"""

    candidate_store: CandidateStore
    candidate_id: str
    status: CandidateStatus
    reviewed_by: str | None
    reviewed_at: datetime


@asynccontextmanager
async def write_transaction(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
) -> AsyncIterator[None]:
    """写事务上下文：成功提交，任何异常（含取消）回滚后重新抛出"""
    async with lock:
        if not conn.in_transaction:
            await conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()


async def merge_tasks_atomically(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
    task_store: TaskStore,
    merge_store: MergeStore,
    merged_task: MergedTask,
    resolution: CandidateResolution | None = None,
) -> None:
    """在同一事务内写入 MergedTask、标记源任务、写入溯源记录，并按需处理候选

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        lock: 连接级写锁
        task_store: TaskStore 实例
        merge_store: MergeStore 实例
        merged_task: 待写入的 MergedTask（sources 决定被标记的源任务）
        resolution: 需要同时迁移状态的候选，None 表示人工直接合并

    Raises:
        TaskMergeConflictError: 任一源任务已被合并，事务回滚
        CandidateAlreadyResolvedError: 候选已不是 pending，事务回滚
    """
    task_ids = merged_task.source_ids
    async with write_transaction(conn, lock):
        await merge_store.create_merged_task(merged_task)
        updated = await task_store.mark_tasks_merged(task_ids, merged_task.merged_task_id)
        if updated != len(task_ids):
            raise TaskMergeConflictError(task_ids, len(task_ids), updated)
        await merge_store.create_task_sources(merged_task.merged_task_id, merged_task.sources)
        if resolution is not None:
            resolved = await resolution.candidate_store.update_candidate_status(
                resolution.candidate_id,
                resolution.status,
                reviewed_by=resolution.reviewed_by,
                reviewed_at=resolution.reviewed_at,
            )
            if not resolved:
                raise CandidateAlreadyResolvedError(resolution.candidate_id)


async def unmerge_tasks_atomically(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
    task_store: TaskStore,
    merge_store: MergeStore,
    merged_task: MergedTask,
) -> int:
    """在同一事务内恢复源任务并删除 MergedTask 及溯源记录

    Returns:
        恢复的源任务数
    """
    async with write_transaction(conn, lock):
        restored = await task_store.mark_tasks_unmerged(
            merged_task.source_ids, merged_task.merged_task_id
        )
        await merge_store.delete_merged_task_and_sources(merged_task.merged_task_id)
    return restored
