"""TraceMiddleware -- 为合并任务与候选操作绑定 trace_id

trace_id 从路径中的 merged_task_id / candidate_id 生成：
  /api/deduplication/merged-tasks/{merged_task_id} -> trace-{merged_task_id}
  /api/deduplication/candidates/{candidate_id}     -> trace-{candidate_id}
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_TRACED_SEGMENTS = ("merged-tasks", "candidates")

# ULID 长度
_ID_LENGTH = 26


def extract_trace_id(path: str) -> str | None:
    """从请求路径提取 trace_id，不含资源 ID 的路径返回 None"""
    parts = path.split("/")
    for i, part in enumerate(parts):
        if part in _TRACED_SEGMENTS and i + 1 < len(parts):
            resource_id = parts[i + 1]
            if len(resource_id) == _ID_LENGTH:
                return f"trace-{resource_id}"
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """资源级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        trace_id = extract_trace_id(request.url.path)
        if trace_id:
            structlog.contextvars.bind_contextvars(trace_id=trace_id)

        return await call_next(request)
