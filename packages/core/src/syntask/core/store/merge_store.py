"""MergeStore SQLite 实现

merged_tasks 与 merged_task_sources 同生同灭：
创建合并时一起写入，取消合并时一起删除。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.merged import MergedTask, TaskSource

_MERGED_COLUMNS = """
    merged_task_id, user_id, title, description, status, priority, due_date,
    merged_by, confidence, created_at, updated_at
"""

_SOURCE_COLUMNS = """
    merged_task_id, task_id, source, original_title, original_description,
    original_status, integration_id, last_sync_at, source_data
"""


class SqliteMergeStore:
    """MergeStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_merged_task(self, merged_task: MergedTask) -> None:
        """写入 MergedTask 行（注意：不自动提交事务）"""
        await self._conn.execute(
            f"""
            INSERT INTO merged_tasks ({_MERGED_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                merged_task.merged_task_id,
                merged_task.user_id,
                merged_task.title,
                merged_task.description,
                merged_task.status.value,
                merged_task.priority.value if merged_task.priority else None,
                merged_task.due_date.isoformat() if merged_task.due_date else None,
                merged_task.merged_by.value,
                merged_task.confidence,
                merged_task.created_at.isoformat(),
                merged_task.updated_at.isoformat(),
            ),
        )

    async def create_task_sources(
        self, merged_task_id: str, sources: list[TaskSource]
    ) -> None:
        """批量写入溯源记录，position 保留合并时的输入顺序"""
        await self._conn.executemany(
            f"""
            INSERT INTO merged_task_sources ({_SOURCE_COLUMNS}, position)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    merged_task_id,
                    s.task_id,
                    s.source.value,
                    s.original_title,
                    s.original_description,
                    s.original_status.value,
                    s.integration_id,
                    s.last_sync_at.isoformat() if s.last_sync_at else None,
                    json.dumps(s.source_data, ensure_ascii=False),
                    position,
                )
                for position, s in enumerate(sources)
            ],
        )

    async def find_merged_task(self, merged_task_id: str, user_id: str) -> MergedTask | None:
        """查询用户拥有的 MergedTask（含溯源记录）"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_MERGED_COLUMNS} FROM merged_tasks
            WHERE merged_task_id = ? AND user_id = ?
            """,
            (merged_task_id, user_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        sources = await self._get_sources(merged_task_id)
        return self._row_to_merged_task(row, sources)

    async def list_merged_tasks(self, user_id: str) -> list[MergedTask]:
        """查询用户全部 MergedTask，按 created_at 倒序"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_MERGED_COLUMNS} FROM merged_tasks
            WHERE user_id = ?
            ORDER BY created_at DESC, merged_task_id DESC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        result = []
        for row in rows:
            sources = await self._get_sources(row[0])
            result.append(self._row_to_merged_task(row, sources))
        return result

    async def delete_merged_task_and_sources(self, merged_task_id: str) -> None:
        """删除 MergedTask 及其全部溯源记录（注意：不自动提交事务）"""
        await self._conn.execute(
            "DELETE FROM merged_task_sources WHERE merged_task_id = ?",
            (merged_task_id,),
        )
        await self._conn.execute(
            "DELETE FROM merged_tasks WHERE merged_task_id = ?",
            (merged_task_id,),
        )

    async def count_merged_tasks(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM merged_tasks WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def count_task_sources(self, merged_task_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM merged_task_sources WHERE merged_task_id = ?",
            (merged_task_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def _get_sources(self, merged_task_id: str) -> list[TaskSource]:
        cursor = await self._conn.execute(
            f"""
            SELECT {_SOURCE_COLUMNS} FROM merged_task_sources
            WHERE merged_task_id = ?
            ORDER BY position ASC
            """,
            (merged_task_id,),
        )
        rows = await cursor.fetchall()
        return [
            TaskSource(
                task_id=r[1],
                source=r[2],
                original_title=r[3],
                original_description=r[4],
                original_status=r[5],
                integration_id=r[6],
                last_sync_at=datetime.fromisoformat(r[7]) if r[7] else None,
                source_data=json.loads(r[8]) if r[8] else {},
            )
            for r in rows
        ]

    @staticmethod
    def _row_to_merged_task(row: aiosqlite.Row, sources: list[TaskSource]) -> MergedTask:
        """将数据库行转换为 MergedTask 模型"""
        return MergedTask(
            merged_task_id=row[0],
            user_id=row[1],
            title=row[2],
            description=row[3],
            status=row[4],
            priority=row[5],
            due_date=datetime.fromisoformat(row[6]) if row[6] else None,
            merged_by=row[7],
            confidence=row[8],
            sources=sources,
            created_at=datetime.fromisoformat(row[9]),
            updated_at=datetime.fromisoformat(row[10]),
        )
