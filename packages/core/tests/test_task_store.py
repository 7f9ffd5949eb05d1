"""TaskStore 单元测试

测试内容：
1. 写入 / 查询往返
2. (source, external_id) 唯一约束
3. 未合并任务查询顺序
4. 按 ID 查询的用户隔离与顺序
5. 合并标记 compare-and-set
"""

from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest
from syntask.core.models import TaskPriority, TaskSourceType, TaskStatus
from syntask.core.store.task_store import SqliteTaskStore


class TestTaskStoreBasics:
    """基础读写"""

    async def test_create_and_get_roundtrip(self, core_db, make_task):
        """全部字段写入后可原样读出"""
        store = SqliteTaskStore(core_db)
        task = make_task(
            source=TaskSourceType.CONNECTWISE,
            description="desc",
            status=TaskStatus.IN_PROGRESS,
            priority=TaskPriority.HIGH,
            due_date=datetime(2024, 1, 10, tzinfo=UTC),
            source_data={"board": "ops"},
            connectwise_owner="alice",
            connectwise_assigned_to="bob",
        )
        await store.create_task(task)
        await core_db.commit()

        loaded = await store.get_task(task.task_id)
        assert loaded is not None
        assert loaded.model_dump() == task.model_dump()

    async def test_get_missing_returns_none(self, core_db):
        store = SqliteTaskStore(core_db)
        assert await store.get_task("missing") is None

    async def test_find_by_external_id(self, core_db, make_task):
        store = SqliteTaskStore(core_db)
        task = make_task(external_id="EXT-9")
        await store.create_task(task)
        await core_db.commit()

        found = await store.find_task_by_external_id("microsoft", "EXT-9")
        assert found is not None
        assert found.task_id == task.task_id
        assert await store.find_task_by_external_id("connectwise", "EXT-9") is None

    async def test_source_external_id_unique(self, core_db, make_task):
        """同一 (source, external_id) 不能写入两次"""
        store = SqliteTaskStore(core_db)
        await store.create_task(make_task(external_id="dup"))
        with pytest.raises(aiosqlite.IntegrityError):
            await store.create_task(make_task(external_id="dup"))

    async def test_same_external_id_different_source_allowed(self, core_db, make_task):
        store = SqliteTaskStore(core_db)
        await store.create_task(make_task(external_id="x", source=TaskSourceType.MICROSOFT))
        await store.create_task(make_task(external_id="x", source=TaskSourceType.PROCESSPLAN))
        await core_db.commit()
        assert await store.count_tasks_for_user("user-1") == 2


class TestTaskQueries:
    """查询"""

    async def test_non_merged_ordered_by_created_at(self, core_db, make_task):
        """未合并任务按 created_at 正序，已合并任务被排除"""
        store = SqliteTaskStore(core_db)
        base = datetime(2024, 1, 1, tzinfo=UTC)
        late = make_task(created_at=base + timedelta(hours=2))
        early = make_task(created_at=base)
        merged = make_task(created_at=base + timedelta(hours=1), is_merged=True, merged_task_id="m")
        other_user = make_task(user_id="user-2")
        for t in (late, early, merged, other_user):
            await store.create_task(t)
        await core_db.commit()

        tasks = await store.list_non_merged_tasks_for_user("user-1")
        assert [t.task_id for t in tasks] == [early.task_id, late.task_id]

    async def test_find_by_ids_keeps_input_order(self, core_db, make_task):
        store = SqliteTaskStore(core_db)
        a, b, c = make_task(), make_task(), make_task()
        for t in (a, b, c):
            await store.create_task(t)
        await core_db.commit()

        found = await store.find_tasks_by_ids([c.task_id, a.task_id, b.task_id], "user-1")
        assert [t.task_id for t in found] == [c.task_id, a.task_id, b.task_id]

    async def test_find_by_ids_filters_other_users(self, core_db, make_task):
        """不属于该用户的任务不返回"""
        store = SqliteTaskStore(core_db)
        mine = make_task()
        theirs = make_task(user_id="user-2")
        await store.create_task(mine)
        await store.create_task(theirs)
        await core_db.commit()

        found = await store.find_tasks_by_ids([mine.task_id, theirs.task_id], "user-1")
        assert [t.task_id for t in found] == [mine.task_id]

    async def test_find_by_empty_ids(self, core_db):
        store = SqliteTaskStore(core_db)
        assert await store.find_tasks_by_ids([], "user-1") == []


class TestMergeMarking:
    """合并标记"""

    async def test_mark_merged_is_compare_and_set(self, core_db, make_task):
        """已合并任务不会被再次标记"""
        store = SqliteTaskStore(core_db)
        a, b = make_task(), make_task()
        await store.create_task(a)
        await store.create_task(b)

        assert await store.mark_tasks_merged([a.task_id], "m1") == 1
        assert await store.mark_tasks_merged([a.task_id, b.task_id], "m2") == 1
        await core_db.commit()

        loaded_a = await store.get_task(a.task_id)
        loaded_b = await store.get_task(b.task_id)
        assert loaded_a.merged_task_id == "m1"
        assert loaded_b.merged_task_id == "m2"
        assert loaded_a.is_merged and loaded_b.is_merged

    async def test_mark_unmerged_only_for_owner_merge(self, core_db, make_task):
        """只恢复属于指定 MergedTask 的任务"""
        store = SqliteTaskStore(core_db)
        a, b = make_task(), make_task()
        await store.create_task(a)
        await store.create_task(b)
        await store.mark_tasks_merged([a.task_id], "m1")
        await store.mark_tasks_merged([b.task_id], "m2")

        restored = await store.mark_tasks_unmerged([a.task_id, b.task_id], "m1")
        await core_db.commit()

        assert restored == 1
        loaded_a = await store.get_task(a.task_id)
        loaded_b = await store.get_task(b.task_id)
        assert not loaded_a.is_merged and loaded_a.merged_task_id is None
        assert loaded_b.merged_task_id == "m2"
