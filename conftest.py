"""全局 pytest 配置 -- 任务工厂 fixture"""

import itertools
from collections.abc import Callable
from datetime import UTC, datetime

import pytest
from syntask.core.models import Task, TaskSourceType
from ulid import ULID

# 测试任务默认创建时间
BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """任务工厂：每次调用生成新的 task_id 与 external_id，字段可覆盖"""
    counter = itertools.count(1)

    def _make(**overrides) -> Task:
        n = next(counter)
        data = {
            "task_id": str(ULID()),
            "user_id": "user-1",
            "source": TaskSourceType.MICROSOFT,
            "external_id": f"ext-{n}",
            "title": f"Task {n}",
            "created_at": BASE_TIME,
            "updated_at": BASE_TIME,
        }
        data.update(overrides)
        return Task(**data)

    return _make
