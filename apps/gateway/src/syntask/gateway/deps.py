"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与去重服务

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Header, Request
from syntask.core.store import StoreGroup
from syntask.dedup import DeduplicationService, DuplicateDetectionPipeline, TaskMergeService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_dedup_service(request: Request) -> DeduplicationService:
    return request.app.state.dedup_service


def get_merge_service(request: Request) -> TaskMergeService:
    return request.app.state.merge_service


def get_pipeline(request: Request) -> DuplicateDetectionPipeline:
    return request.app.state.pipeline


def get_user_id(x_user_id: str = Header(alias="X-User-Id", min_length=1)) -> str:
    """当前用户 ID（认证由上游负责，这里只读取请求头）"""
    return x_user_id
