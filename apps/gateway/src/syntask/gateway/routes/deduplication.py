"""去重路由 -- /api/deduplication

GET  /candidates                 候选分页查询（status / page / limit）
GET  /candidates/{candidate_id}  单个候选
POST /detect                     对当前用户执行批量检测（可按次覆盖配置）
POST /merge                      人工合并
POST /unmerge                    取消合并
POST /review                     审核候选（approve / reject）
GET  /merged-tasks               当前用户全部合并任务
GET  /merged-tasks/{id}          合并任务详情
GET  /stats                      去重统计
POST /sweep                      后台扫描计数

错误映射：400 参数非法 / 404 不存在 / 409 冲突 / 503 存储失败
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from syntask.core.config import DEFAULT_PAGE_SIZE
from syntask.core.models import CandidateStatus, MergedBy, MergedTask, ReviewAction
from syntask.dedup import (
    DeduplicationError,
    DuplicateReviewRequest,
    MergeTaskRequest,
    UnmergeTaskRequest,
)

from ..deps import get_dedup_service, get_merge_service, get_pipeline, get_user_id
from ..errors import error_response, not_found_response

router = APIRouter(prefix="/api/deduplication")


class DetectRequest(BaseModel):
    """按次覆盖的检测配置，未提供的字段使用服务默认值"""

    auto_merge_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    suggestion_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    title_weight: float | None = Field(default=None, ge=0.0)
    description_weight: float | None = Field(default=None, ge=0.0)
    temporal_weight: float | None = Field(default=None, ge=0.0)
    assignee_weight: float | None = Field(default=None, ge=0.0)
    priority_weight: float | None = Field(default=None, ge=0.0)
    max_days_for_temporal_proximity: float | None = Field(default=None, gt=0)


class MergeRequestBody(BaseModel):
    task_ids: list[str]
    primary_task_id: str | None = None


class UnmergeRequestBody(BaseModel):
    merged_task_id: str


class ReviewRequestBody(BaseModel):
    candidate_id: str
    action: ReviewAction


class SweepRequestBody(BaseModel):
    timeout_s: float | None = Field(default=None, gt=0, description="扫描超时秒数")


class MergedTaskListResponse(BaseModel):
    merged_tasks: list[MergedTask]


@router.get("/candidates")
async def list_candidates(
    status: CandidateStatus | None = Query(default=None, description="按候选状态筛选"),
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE),
    user_id: str = Depends(get_user_id),
    service=Depends(get_dedup_service),
):
    """分页查询候选，按 overall_score 倒序"""
    try:
        return await service.get_duplicate_candidates(user_id, status, page, limit)
    except DeduplicationError as e:
        return error_response(e)


@router.get("/candidates/{candidate_id}")
async def get_candidate(
    candidate_id: str,
    user_id: str = Depends(get_user_id),
    service=Depends(get_dedup_service),
):
    try:
        return await service.get_duplicate_candidate(candidate_id, user_id)
    except DeduplicationError as e:
        return error_response(e)


@router.post("/detect")
async def detect_duplicates(
    body: DetectRequest | None = None,
    user_id: str = Depends(get_user_id),
    service=Depends(get_dedup_service),
):
    """对当前用户执行批量检测，存储失败时返回 503"""
    overrides = body.model_dump(exclude_none=True) if body else None
    config = service.config.with_overrides(overrides)
    try:
        return await service.detect_duplicates_for_user(user_id, config)
    except DeduplicationError as e:
        return error_response(e)


@router.post("/merge")
async def merge_tasks(
    body: MergeRequestBody,
    user_id: str = Depends(get_user_id),
    merge_service=Depends(get_merge_service),
):
    try:
        return await merge_service.merge_tasks(
            MergeTaskRequest(
                task_ids=body.task_ids,
                user_id=user_id,
                merged_by=MergedBy.MANUAL,
                primary_task_id=body.primary_task_id,
            )
        )
    except DeduplicationError as e:
        return error_response(e)


@router.post("/unmerge")
async def unmerge_tasks(
    body: UnmergeRequestBody,
    user_id: str = Depends(get_user_id),
    merge_service=Depends(get_merge_service),
):
    try:
        return await merge_service.unmerge_tasks(
            UnmergeTaskRequest(merged_task_id=body.merged_task_id, user_id=user_id)
        )
    except DeduplicationError as e:
        return error_response(e)


@router.post("/review")
async def review_candidate(
    body: ReviewRequestBody,
    user_id: str = Depends(get_user_id),
    service=Depends(get_dedup_service),
):
    try:
        return await service.review_duplicate_candidate(
            DuplicateReviewRequest(
                candidate_id=body.candidate_id,
                user_id=user_id,
                action=body.action,
            )
        )
    except DeduplicationError as e:
        return error_response(e)


@router.get("/merged-tasks", response_model=MergedTaskListResponse)
async def list_merged_tasks(
    user_id: str = Depends(get_user_id),
    merge_service=Depends(get_merge_service),
):
    try:
        merged_tasks = await merge_service.get_merged_tasks_by_user_id(user_id)
    except DeduplicationError as e:
        return error_response(e)
    return MergedTaskListResponse(merged_tasks=merged_tasks)


@router.get("/merged-tasks/{merged_task_id}")
async def get_merged_task(
    merged_task_id: str,
    user_id: str = Depends(get_user_id),
    merge_service=Depends(get_merge_service),
):
    try:
        merged_task = await merge_service.get_merged_task_by_id(merged_task_id, user_id)
    except DeduplicationError as e:
        return error_response(e)

    if merged_task is None:
        return not_found_response(
            "MERGED_TASK_NOT_FOUND",
            f"Merged task with id {merged_task_id} does not exist",
        )
    return merged_task


@router.get("/stats")
async def get_stats(
    user_id: str = Depends(get_user_id),
    service=Depends(get_dedup_service),
):
    try:
        return await service.get_deduplication_stats(user_id)
    except DeduplicationError as e:
        return error_response(e)


@router.post("/sweep")
async def run_sweep(
    body: SweepRequestBody | None = None,
    user_id: str = Depends(get_user_id),
    pipeline=Depends(get_pipeline),
):
    """后台扫描：异常计入 errors，不返回错误状态码"""
    timeout_s = body.timeout_s if body else None
    return await pipeline.run_background_duplicate_detection(user_id, timeout_s=timeout_s)
