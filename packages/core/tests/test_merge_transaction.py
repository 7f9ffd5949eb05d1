"""合并 / 取消合并原子事务测试

测试内容：
1. 合并成功：MergedTask + 溯源记录 + 源任务标记一起提交
2. 冲突回滚：不留下 MergedTask 残留
3. 取消合并：源任务恢复，MergedTask 与溯源记录删除
4. write_transaction 异常回滚
5. 并发合并同一任务只有一方成功
6. 候选状态随合并一起提交，候选已处理时整体回滚
"""

import asyncio
from datetime import UTC, datetime

import pytest
from syntask.core.models import (
    CandidateStatus,
    Confidence,
    DuplicateCandidate,
    DuplicateScore,
    MergedBy,
    MergedTask,
    Task,
    TaskSource,
    TaskStatus,
)
from syntask.core.store import (
    CandidateAlreadyResolvedError,
    CandidateResolution,
    StoreGroup,
    TaskMergeConflictError,
    merge_tasks_atomically,
    unmerge_tasks_atomically,
    write_transaction,
)
from ulid import ULID

NOW = datetime(2024, 5, 1, tzinfo=UTC)


def _merged_from(tasks: list[Task]) -> MergedTask:
    return MergedTask(
        merged_task_id=str(ULID()),
        user_id=tasks[0].user_id,
        title=tasks[0].title,
        status=TaskStatus.PENDING,
        merged_by=MergedBy.MANUAL,
        sources=[
            TaskSource(
                task_id=t.task_id,
                source=t.source,
                original_title=t.title,
                original_status=t.status,
            )
            for t in tasks
        ],
        created_at=NOW,
        updated_at=NOW,
    )


async def _insert(stores: StoreGroup, tasks: list[Task]) -> None:
    async with write_transaction(stores.conn, stores.write_lock):
        for t in tasks:
            await stores.task_store.create_task(t)


async def _merge(stores: StoreGroup, merged: MergedTask) -> None:
    await merge_tasks_atomically(
        stores.conn, stores.write_lock, stores.task_store, stores.merge_store, merged
    )


class TestMergeAtomic:
    """原子合并"""

    async def test_merge_commits_all_parts(self, core_stores, make_task):
        tasks = [make_task(), make_task()]
        await _insert(core_stores, tasks)
        merged = _merged_from(tasks)

        await _merge(core_stores, merged)

        loaded = await core_stores.merge_store.find_merged_task(merged.merged_task_id, "user-1")
        assert loaded is not None
        assert loaded.source_ids == [t.task_id for t in tasks]
        for t in tasks:
            stored = await core_stores.task_store.get_task(t.task_id)
            assert stored.is_merged
            assert stored.merged_task_id == merged.merged_task_id

    async def test_conflict_rolls_back(self, core_stores, make_task):
        """任一源任务已合并时整体回滚"""
        a, b, c = make_task(), make_task(), make_task()
        await _insert(core_stores, [a, b, c])
        first = _merged_from([a, b])
        await _merge(core_stores, first)

        second = _merged_from([b, c])
        with pytest.raises(TaskMergeConflictError):
            await _merge(core_stores, second)

        assert (
            await core_stores.merge_store.find_merged_task(second.merged_task_id, "user-1") is None
        )
        assert await core_stores.merge_store.count_task_sources(second.merged_task_id) == 0
        stored_c = await core_stores.task_store.get_task(c.task_id)
        assert not stored_c.is_merged
        assert stored_c.merged_task_id is None
        assert await core_stores.merge_store.count_merged_tasks("user-1") == 1
        assert not core_stores.conn.in_transaction


class TestMergeWithCandidate:
    """合并与候选状态同一事务提交"""

    async def _pending_candidate(self, stores: StoreGroup, a: Task, b: Task) -> DuplicateCandidate:
        candidate = DuplicateCandidate(
            candidate_id=str(ULID()),
            task1_id=a.task_id,
            task2_id=b.task_id,
            score=DuplicateScore(
                title_similarity=1.0,
                description_similarity=1.0,
                temporal_proximity=1.0,
                assignee_match=0.5,
                priority_match=0.5,
                overall_score=0.9,
                confidence=Confidence.HIGH,
            ),
            created_at=NOW,
        )
        async with write_transaction(stores.conn, stores.write_lock):
            await stores.candidate_store.create_candidate(candidate)
        return candidate

    def _resolution(self, stores: StoreGroup, candidate_id: str) -> CandidateResolution:
        return CandidateResolution(
            candidate_store=stores.candidate_store,
            candidate_id=candidate_id,
            status=CandidateStatus.APPROVED,
            reviewed_by="user-1",
            reviewed_at=NOW,
        )

    async def test_candidate_resolved_with_merge(self, core_stores, make_task):
        a, b = make_task(), make_task()
        await _insert(core_stores, [a, b])
        candidate = await self._pending_candidate(core_stores, a, b)
        merged = _merged_from([a, b])

        await merge_tasks_atomically(
            core_stores.conn,
            core_stores.write_lock,
            core_stores.task_store,
            core_stores.merge_store,
            merged,
            self._resolution(core_stores, candidate.candidate_id),
        )

        stored = await core_stores.candidate_store.find_candidate(candidate.candidate_id)
        assert stored.status == CandidateStatus.APPROVED
        assert stored.reviewed_by == "user-1"
        assert await core_stores.merge_store.count_merged_tasks("user-1") == 1

    async def test_resolved_candidate_rolls_back_merge(self, core_stores, make_task):
        """候选已被处理时合并整体回滚"""
        a, b = make_task(), make_task()
        await _insert(core_stores, [a, b])
        candidate = await self._pending_candidate(core_stores, a, b)
        async with write_transaction(core_stores.conn, core_stores.write_lock):
            await core_stores.candidate_store.update_candidate_status(
                candidate.candidate_id, CandidateStatus.REJECTED
            )
        merged = _merged_from([a, b])

        with pytest.raises(CandidateAlreadyResolvedError):
            await merge_tasks_atomically(
                core_stores.conn,
                core_stores.write_lock,
                core_stores.task_store,
                core_stores.merge_store,
                merged,
                self._resolution(core_stores, candidate.candidate_id),
            )

        assert await core_stores.merge_store.count_merged_tasks("user-1") == 0
        assert await core_stores.merge_store.count_task_sources(merged.merged_task_id) == 0
        for t in (a, b):
            stored = await core_stores.task_store.get_task(t.task_id)
            assert not stored.is_merged
            assert stored.merged_task_id is None
        stored = await core_stores.candidate_store.find_candidate(candidate.candidate_id)
        assert stored.status == CandidateStatus.REJECTED
        assert not core_stores.conn.in_transaction


class TestUnmergeAtomic:
    """原子取消合并"""

    async def test_unmerge_restores_without_residue(self, core_stores, make_task):
        tasks = [make_task(), make_task(), make_task()]
        await _insert(core_stores, tasks)
        merged = _merged_from(tasks)
        await _merge(core_stores, merged)

        restored = await unmerge_tasks_atomically(
            core_stores.conn,
            core_stores.write_lock,
            core_stores.task_store,
            core_stores.merge_store,
            merged,
        )

        assert restored == 3
        assert (
            await core_stores.merge_store.find_merged_task(merged.merged_task_id, "user-1") is None
        )
        assert await core_stores.merge_store.count_task_sources(merged.merged_task_id) == 0
        remaining = await core_stores.task_store.list_non_merged_tasks_for_user("user-1")
        assert {t.task_id for t in remaining} == {t.task_id for t in tasks}


class TestWriteTransaction:
    """写事务上下文"""

    async def test_exception_rolls_back(self, core_stores, make_task):
        task = make_task()
        with pytest.raises(RuntimeError):
            async with write_transaction(core_stores.conn, core_stores.write_lock):
                await core_stores.task_store.create_task(task)
                raise RuntimeError("boom")

        assert await core_stores.task_store.get_task(task.task_id) is None
        assert not core_stores.write_lock.locked()

    async def test_concurrent_merges_single_winner(self, core_stores, make_task):
        """并发合并重叠任务集：恰好一方成功"""
        a, b, c = make_task(), make_task(), make_task()
        await _insert(core_stores, [a, b, c])
        left = _merged_from([a, b])
        right = _merged_from([b, c])

        results = await asyncio.gather(
            _merge(core_stores, left),
            _merge(core_stores, right),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, TaskMergeConflictError)]
        assert len(failures) == 1
        assert await core_stores.merge_store.count_merged_tasks("user-1") == 1
        stored_b = await core_stores.task_store.get_task(b.task_id)
        assert stored_b.merged_task_id in {left.merged_task_id, right.merged_task_id}
