"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 去重服务初始化 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from syntask.core.config import get_db_path
from syntask.core.store import StoreGroup, create_store_group
from syntask.dedup import (
    DeduplicationService,
    DuplicateDetectionConfig,
    DuplicateDetectionPipeline,
    TaskMergeService,
    load_detection_config,
)

from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import deduplication, health, tasks

log = structlog.get_logger()


def init_services(
    app: FastAPI,
    store_group: StoreGroup,
    config: DuplicateDetectionConfig | None = None,
) -> None:
    """在 app.state 上装配 Store 与去重服务"""
    config = config or DuplicateDetectionConfig()
    merge_service = TaskMergeService(store_group)
    dedup_service = DeduplicationService(store_group, merge_service, config=config)

    app.state.store_group = store_group
    app.state.merge_service = merge_service
    app.state.dedup_service = dedup_service
    app.state.pipeline = DuplicateDetectionPipeline(dedup_service)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和去重服务，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)

    config = load_detection_config()
    init_services(app, store_group, config)
    log.info(
        "dedup_service_initialized",
        db_path=db_path,
        auto_merge_threshold=config.auto_merge_threshold,
        suggestion_threshold=config.suggestion_threshold,
    )

    yield

    # 关闭：清理数据库连接
    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Syntask Gateway",
        version="0.1.0",
        description="Syntask 跨平台任务去重与合并 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(deduplication.router, tags=["deduplication"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
