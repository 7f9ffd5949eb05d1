"""apps/gateway 测试配置 -- FastAPI app + httpx AsyncClient"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from syntask.core.store import create_store_group

USER_HEADERS = {"X-User-Id": "user-1"}


@pytest_asyncio.fixture
async def test_app(tmp_path: Path):
    """测试用 FastAPI app（手动初始化，绕过 lifespan）"""
    os.environ["SYNTASK_DB_PATH"] = str(tmp_path / "test.db")

    from syntask.gateway.main import create_app, init_services

    app = create_app()
    store_group = await create_store_group(str(tmp_path / "test.db"))
    init_services(app, store_group)

    yield app

    await store_group.conn.close()
    os.environ.pop("SYNTASK_DB_PATH", None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient，默认携带 X-User-Id"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        headers=USER_HEADERS,
    ) as ac:
        yield ac
