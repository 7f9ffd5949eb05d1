"""SQLite 数据库初始化

PRAGMA 配置 + 四张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id                  TEXT PRIMARY KEY,
    user_id                  TEXT NOT NULL,
    integration_id           TEXT NOT NULL DEFAULT '',
    source                   TEXT NOT NULL,
    external_id              TEXT NOT NULL,
    title                    TEXT NOT NULL DEFAULT '',
    description              TEXT,
    status                   TEXT NOT NULL DEFAULT 'pending',
    priority                 TEXT,
    due_date                 TEXT,
    source_data              TEXT NOT NULL DEFAULT '{}',
    connectwise_owner        TEXT,
    connectwise_assigned_to  TEXT,
    processplan_assigned_to  TEXT,
    is_merged                INTEGER NOT NULL DEFAULT 0,
    merged_task_id           TEXT,
    created_at               TEXT NOT NULL,
    updated_at               TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    # (source, external_id) 唯一标识一条任务
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_source_external ON tasks(source, external_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_merged ON tasks(user_id, is_merged);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_merged_task_id ON tasks(merged_task_id);",
]

# duplicate_candidates 表 DDL
_CANDIDATES_DDL = """
CREATE TABLE IF NOT EXISTS duplicate_candidates (
    candidate_id            TEXT PRIMARY KEY,
    task1_id                TEXT NOT NULL,
    task2_id                TEXT NOT NULL,
    pair_low                TEXT NOT NULL,
    pair_high               TEXT NOT NULL,
    title_similarity        REAL NOT NULL DEFAULT 0,
    description_similarity  REAL NOT NULL DEFAULT 0,
    temporal_proximity      REAL NOT NULL DEFAULT 0,
    assignee_match          REAL NOT NULL DEFAULT 0,
    priority_match          REAL NOT NULL DEFAULT 0,
    overall_score           REAL NOT NULL DEFAULT 0,
    confidence              TEXT NOT NULL DEFAULT 'low',
    status                  TEXT NOT NULL DEFAULT 'pending',
    reviewed_by             TEXT,
    reviewed_at             TEXT,
    created_at              TEXT NOT NULL,

    FOREIGN KEY (task1_id) REFERENCES tasks(task_id),
    FOREIGN KEY (task2_id) REFERENCES tasks(task_id)
);
"""

_CANDIDATES_INDEXES = [
    # 无序任务对唯一约束（候选创建的条件写入依赖此约束）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_candidates_pair "
        "ON duplicate_candidates(pair_low, pair_high);"
    ),
    "CREATE INDEX IF NOT EXISTS idx_candidates_status ON duplicate_candidates(status);",
    (
        "CREATE INDEX IF NOT EXISTS idx_candidates_score "
        "ON duplicate_candidates(overall_score DESC);"
    ),
]

# merged_tasks 表 DDL
_MERGED_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS merged_tasks (
    merged_task_id  TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    title           TEXT NOT NULL DEFAULT '',
    description     TEXT,
    status          TEXT NOT NULL DEFAULT 'pending',
    priority        TEXT,
    due_date        TEXT,
    merged_by       TEXT NOT NULL,
    confidence      REAL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_MERGED_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_merged_tasks_user ON merged_tasks(user_id, created_at DESC);",
]

# merged_task_sources 表 DDL
_MERGED_TASK_SOURCES_DDL = """
CREATE TABLE IF NOT EXISTS merged_task_sources (
    merged_task_id        TEXT NOT NULL,
    task_id               TEXT NOT NULL,
    source                TEXT NOT NULL,
    original_title        TEXT NOT NULL DEFAULT '',
    original_description  TEXT,
    original_status       TEXT NOT NULL,
    integration_id        TEXT NOT NULL DEFAULT '',
    last_sync_at          TEXT,
    source_data           TEXT NOT NULL DEFAULT '{}',
    position              INTEGER NOT NULL DEFAULT 0,

    PRIMARY KEY (merged_task_id, task_id),
    FOREIGN KEY (merged_task_id) REFERENCES merged_tasks(merged_task_id),
    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_MERGED_TASK_SOURCES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_merged_sources_task ON merged_task_sources(task_id);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_CANDIDATES_DDL)
    await conn.execute(_MERGED_TASKS_DDL)
    await conn.execute(_MERGED_TASK_SOURCES_DDL)

    # 创建索引
    for idx_sql in (
        _TASKS_INDEXES
        + _CANDIDATES_INDEXES
        + _MERGED_TASKS_INDEXES
        + _MERGED_TASK_SOURCES_INDEXES
    ):
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
