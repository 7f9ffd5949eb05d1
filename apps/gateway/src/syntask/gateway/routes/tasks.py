"""任务入库与查询路由

POST /api/tasks: 接收已归一化的外部任务，入库后执行实时重复检测。
GET /api/tasks: 当前用户的任务列表。
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse
from syntask.core.models import Task, TaskPriority, TaskSourceType, TaskStatus
from syntask.dedup import DeduplicationError, NewTaskDetectionResult
from ulid import ULID

from ..deps import get_pipeline, get_store_group, get_user_id
from ..errors import error_response
from ..services.ingest_service import TaskIngestService, stamp_times

router = APIRouter()


class TaskIngestRequest(BaseModel):
    """任务入库请求体（已完成来源归一化）"""

    source: TaskSourceType = Field(description="外部来源")
    external_id: str = Field(min_length=1, description="外部系统中的任务 ID")
    title: str = Field(description="任务标题")
    integration_id: str = Field(default="", description="来源集成 ID")
    description: str | None = Field(default=None)
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    priority: TaskPriority | None = Field(default=None)
    due_date: datetime | None = Field(default=None)
    source_data: dict[str, Any] = Field(default_factory=dict)
    connectwise_owner: str | None = Field(default=None)
    connectwise_assigned_to: str | None = Field(default=None)
    processplan_assigned_to: str | None = Field(default=None)
    created_at: datetime | None = Field(default=None, description="缺省为当前时间")
    updated_at: datetime | None = Field(default=None, description="缺省为 created_at")


class TaskIngestResponse(BaseModel):
    task: Task
    duplicate_check: NewTaskDetectionResult


class TaskListResponse(BaseModel):
    tasks: list[Task]


@router.post("/api/tasks")
async def ingest_task(
    body: TaskIngestRequest,
    user_id: str = Depends(get_user_id),
    store_group=Depends(get_store_group),
    pipeline=Depends(get_pipeline),
):
    """任务入库

    - 新任务返回 201 + 实时检测结果
    - (source, external_id) 已存在返回 409
    """
    created_at, updated_at = stamp_times(body.created_at, body.updated_at)
    task = Task(
        task_id=str(ULID()),
        user_id=user_id,
        **body.model_dump(exclude={"created_at", "updated_at"}),
        created_at=created_at,
        updated_at=updated_at,
    )

    service = TaskIngestService(store_group, pipeline)
    try:
        task, detection = await service.ingest_task(task)
    except DeduplicationError as e:
        return error_response(e)

    return JSONResponse(
        status_code=201,
        content=TaskIngestResponse(task=task, duplicate_check=detection).model_dump(
            mode="json"
        ),
    )


@router.get("/api/tasks", response_model=TaskListResponse)
async def list_tasks(
    user_id: str = Depends(get_user_id),
    store_group=Depends(get_store_group),
    pipeline=Depends(get_pipeline),
):
    """查询当前用户全部任务，按 created_at 正序"""
    service = TaskIngestService(store_group, pipeline)
    try:
        tasks = await service.list_tasks(user_id)
    except DeduplicationError as e:
        return error_response(e)
    return TaskListResponse(tasks=tasks)
