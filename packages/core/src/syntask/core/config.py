"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、自动合并置信度、分页限制等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("SYNTASK_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "SYNTASK_DB_PATH",
        str(_get_base_dir() / "sqlite" / "syntask.db"),
    )


# 自动合并产生的 MergedTask 固定置信度
AUTO_MERGE_CONFIDENCE: float = 0.75

# 候选列表默认分页大小
DEFAULT_PAGE_SIZE: int = int(os.environ.get("SYNTASK_DEFAULT_PAGE_SIZE", "10"))

# 候选列表分页上限
MAX_PAGE_SIZE: int = 100
