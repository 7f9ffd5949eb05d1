"""TaskStore SQLite 实现

tasks 表由外部聚合层写入。去重核心只允许修改合并关联字段，
且修改必须是条件写入（compare-and-set），由调用方管理事务。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.task import Task

_TASK_COLUMNS = """
    task_id, user_id, integration_id, source, external_id, title, description,
    status, priority, due_date, source_data, connectwise_owner,
    connectwise_assigned_to, processplan_assigned_to, is_merged, merged_task_id,
    created_at, updated_at
"""


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录（注意：不自动提交事务）"""
        await self._conn.execute(
            f"""
            INSERT INTO tasks ({_TASK_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.user_id,
                task.integration_id,
                task.source.value,
                task.external_id,
                task.title,
                task.description,
                task.status.value,
                task.priority.value if task.priority else None,
                task.due_date.isoformat() if task.due_date else None,
                json.dumps(task.source_data, ensure_ascii=False),
                task.connectwise_owner,
                task.connectwise_assigned_to,
                task.processplan_assigned_to,
                1 if task.is_merged else 0,
                task.merged_task_id,
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
            ),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def find_task_by_external_id(self, source: str, external_id: str) -> Task | None:
        """根据 (source, external_id) 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE source = ? AND external_id = ?",
            (source, external_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        """查询用户全部任务，按 created_at 正序"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_TASK_COLUMNS} FROM tasks
            WHERE user_id = ?
            ORDER BY created_at ASC, task_id ASC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_non_merged_tasks_for_user(self, user_id: str) -> list[Task]:
        """查询用户未合并的任务，按 created_at 正序（决定成对比较顺序）"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_TASK_COLUMNS} FROM tasks
            WHERE user_id = ? AND is_merged = 0
            ORDER BY created_at ASC, task_id ASC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def find_tasks_by_ids(self, task_ids: list[str], user_id: str) -> list[Task]:
        """按 ID 查询用户拥有的任务，结果保持 task_ids 的输入顺序

        不属于该用户或不存在的 ID 不会出现在结果中。
        """
        if not task_ids:
            return []
        cursor = await self._conn.execute(
            f"""
            SELECT {_TASK_COLUMNS} FROM tasks
            WHERE user_id = ? AND task_id IN ({_placeholders(len(task_ids))})
            """,
            (user_id, *task_ids),
        )
        rows = await cursor.fetchall()
        by_id = {task.task_id: task for task in (self._row_to_task(r) for r in rows)}
        return [by_id[task_id] for task_id in task_ids if task_id in by_id]

    async def mark_tasks_merged(self, task_ids: list[str], merged_task_id: str) -> int:
        """标记任务已合并（compare-and-set：仅更新尚未合并的任务）

        Returns:
            实际更新的行数，调用方据此判断是否被并发合并抢先
        """
        if not task_ids:
            return 0
        cursor = await self._conn.execute(
            f"""
            UPDATE tasks
            SET is_merged = 1, merged_task_id = ?
            WHERE task_id IN ({_placeholders(len(task_ids))})
              AND merged_task_id IS NULL AND is_merged = 0
            """,
            (merged_task_id, *task_ids),
        )
        return cursor.rowcount

    async def mark_tasks_unmerged(self, task_ids: list[str], merged_task_id: str) -> int:
        """恢复任务为未合并状态（仅恢复属于该 MergedTask 的任务）"""
        if not task_ids:
            return 0
        cursor = await self._conn.execute(
            f"""
            UPDATE tasks
            SET is_merged = 0, merged_task_id = NULL
            WHERE task_id IN ({_placeholders(len(task_ids))})
              AND merged_task_id = ?
            """,
            (*task_ids, merged_task_id),
        )
        return cursor.rowcount

    async def count_tasks_for_user(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM tasks WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row[0],
            user_id=row[1],
            integration_id=row[2],
            source=row[3],
            external_id=row[4],
            title=row[5],
            description=row[6],
            status=row[7],
            priority=row[8],
            due_date=datetime.fromisoformat(row[9]) if row[9] else None,
            source_data=json.loads(row[10]) if row[10] else {},
            connectwise_owner=row[11],
            connectwise_assigned_to=row[12],
            processplan_assigned_to=row[13],
            is_merged=bool(row[14]),
            merged_task_id=row[15],
            created_at=datetime.fromisoformat(row[16]),
            updated_at=datetime.fromisoformat(row[17]),
        )
