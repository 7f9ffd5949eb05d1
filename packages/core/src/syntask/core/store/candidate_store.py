"""CandidateStore SQLite 实现

候选以规范化无序任务对 (pair_low, pair_high) 为唯一键，
创建是条件写入：并发的重复创建只会保留一条记录。
"""

from datetime import datetime

import aiosqlite

from ..models.duplicate import DuplicateCandidate, DuplicateScore, canonical_pair
from ..models.enums import CandidateStatus

_CANDIDATE_COLUMNS = """
    c.candidate_id, c.task1_id, c.task2_id, c.title_similarity,
    c.description_similarity, c.temporal_proximity, c.assignee_match,
    c.priority_match, c.overall_score, c.confidence, c.status,
    c.reviewed_by, c.reviewed_at, c.created_at
"""

# 候选归属：用户拥有任一任务即可见
_OWNED_BY_USER = """
    EXISTS (
        SELECT 1 FROM tasks t
        WHERE t.task_id IN (c.task1_id, c.task2_id) AND t.user_id = ?
    )
"""


class SqliteCandidateStore:
    """CandidateStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_candidate(
        self, candidate: DuplicateCandidate
    ) -> tuple[DuplicateCandidate, bool]:
        """幂等创建候选（注意：不自动提交事务）

        Returns:
            (candidate, created) -- created=False 表示该无序对已存在候选，
            返回的是已存在的记录
        """
        pair_low, pair_high = candidate.pair_key
        score = candidate.score
        cursor = await self._conn.execute(
            """
            INSERT INTO duplicate_candidates (
                candidate_id, task1_id, task2_id, pair_low, pair_high,
                title_similarity, description_similarity, temporal_proximity,
                assignee_match, priority_match, overall_score, confidence,
                status, reviewed_by, reviewed_at, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (pair_low, pair_high) DO NOTHING
            """,
            (
                candidate.candidate_id,
                candidate.task1_id,
                candidate.task2_id,
                pair_low,
                pair_high,
                score.title_similarity,
                score.description_similarity,
                score.temporal_proximity,
                score.assignee_match,
                score.priority_match,
                score.overall_score,
                score.confidence.value,
                candidate.status.value,
                candidate.reviewed_by,
                candidate.reviewed_at.isoformat() if candidate.reviewed_at else None,
                candidate.created_at.isoformat(),
            ),
        )
        if cursor.rowcount == 1:
            return candidate, True

        existing = await self.find_existing_candidate(candidate.task1_id, candidate.task2_id)
        if existing is None:
            # 冲突行在同一语句内被删除的极端情况
            raise aiosqlite.IntegrityError(
                f"candidate pair conflict without existing row: {pair_low}, {pair_high}"
            )
        return existing, False

    async def find_existing_candidate(
        self, task_id_a: str, task_id_b: str
    ) -> DuplicateCandidate | None:
        """按无序任务对查询候选（(a, b) 与 (b, a) 等价）"""
        pair_low, pair_high = canonical_pair(task_id_a, task_id_b)
        cursor = await self._conn.execute(
            f"""
            SELECT {_CANDIDATE_COLUMNS} FROM duplicate_candidates c
            WHERE c.pair_low = ? AND c.pair_high = ?
            """,
            (pair_low, pair_high),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_candidate(row)

    async def find_candidate(self, candidate_id: str) -> DuplicateCandidate | None:
        cursor = await self._conn.execute(
            f"SELECT {_CANDIDATE_COLUMNS} FROM duplicate_candidates c WHERE c.candidate_id = ?",
            (candidate_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_candidate(row)

    async def update_candidate_status(
        self,
        candidate_id: str,
        status: CandidateStatus,
        reviewed_by: str | None = None,
        reviewed_at: datetime | None = None,
    ) -> bool:
        """更新候选状态（仅 pending 候选可被更新，注意：不自动提交事务）

        Returns:
            True 如果有记录被更新
        """
        cursor = await self._conn.execute(
            """
            UPDATE duplicate_candidates
            SET status = ?, reviewed_by = ?, reviewed_at = ?
            WHERE candidate_id = ? AND status = ?
            """,
            (
                status.value,
                reviewed_by,
                reviewed_at.isoformat() if reviewed_at else None,
                candidate_id,
                CandidateStatus.PENDING.value,
            ),
        )
        return cursor.rowcount == 1

    async def list_candidates(
        self,
        user_id: str,
        status: CandidateStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[DuplicateCandidate], int]:
        """分页查询用户可见的候选，按 overall_score 倒序

        Returns:
            (当前页候选, 总数)
        """
        where = _OWNED_BY_USER
        params: list = [user_id]
        if status is not None:
            where += " AND c.status = ?"
            params.append(status.value)

        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM duplicate_candidates c WHERE {where}",
            tuple(params),
        )
        row = await cursor.fetchone()
        total = row[0] if row else 0

        offset = (page - 1) * limit
        cursor = await self._conn.execute(
            f"""
            SELECT {_CANDIDATE_COLUMNS} FROM duplicate_candidates c
            WHERE {where}
            ORDER BY c.overall_score DESC, c.created_at ASC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, offset),
        )
        rows = await cursor.fetchall()
        return [self._row_to_candidate(r) for r in rows], total

    async def count_candidates_by_status(self, user_id: str) -> dict[CandidateStatus, int]:
        """按状态统计用户可见的候选数"""
        cursor = await self._conn.execute(
            f"""
            SELECT c.status, COUNT(*) FROM duplicate_candidates c
            WHERE {_OWNED_BY_USER}
            GROUP BY c.status
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        counts = {status: 0 for status in CandidateStatus}
        for row in rows:
            counts[CandidateStatus(row[0])] = row[1]
        return counts

    @staticmethod
    def _row_to_candidate(row: aiosqlite.Row) -> DuplicateCandidate:
        """将数据库行转换为 DuplicateCandidate 模型"""
        return DuplicateCandidate(
            candidate_id=row[0],
            task1_id=row[1],
            task2_id=row[2],
            score=DuplicateScore(
                title_similarity=row[3],
                description_similarity=row[4],
                temporal_proximity=row[5],
                assignee_match=row[6],
                priority_match=row[7],
                overall_score=row[8],
                confidence=row[9],
            ),
            status=row[10],
            reviewed_by=row[11],
            reviewed_at=datetime.fromisoformat(row[12]) if row[12] else None,
            created_at=datetime.fromisoformat(row[13]),
        )
