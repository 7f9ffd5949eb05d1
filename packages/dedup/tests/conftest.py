"""packages/dedup 测试配置 -- 去重服务 fixture"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from syntask.core.models import Task
from syntask.core.store import StoreGroup, create_store_group, write_transaction
from syntask.dedup import (
    DeduplicationService,
    DuplicateDetectionConfig,
    DuplicateDetectionPipeline,
    TaskMergeService,
)


@pytest_asyncio.fixture
async def dedup_stores(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """去重测试用 StoreGroup"""
    store_group = await create_store_group(str(tmp_path / "dedup_test.db"))
    yield store_group
    await store_group.conn.close()


@pytest.fixture
def insert_tasks(dedup_stores: StoreGroup) -> Callable[..., Awaitable[list[Task]]]:
    """批量写入任务并返回原列表"""

    async def _insert(*tasks: Task) -> list[Task]:
        async with write_transaction(dedup_stores.conn, dedup_stores.write_lock):
            for task in tasks:
                await dedup_stores.task_store.create_task(task)
        return list(tasks)

    return _insert


@pytest.fixture
def merge_service(dedup_stores: StoreGroup) -> TaskMergeService:
    return TaskMergeService(dedup_stores)


@pytest.fixture
def dedup_service(
    dedup_stores: StoreGroup, merge_service: TaskMergeService
) -> DeduplicationService:
    return DeduplicationService(
        dedup_stores, merge_service=merge_service, config=DuplicateDetectionConfig()
    )


@pytest.fixture
def pipeline(dedup_service: DeduplicationService) -> DuplicateDetectionPipeline:
    return DuplicateDetectionPipeline(dedup_service)
