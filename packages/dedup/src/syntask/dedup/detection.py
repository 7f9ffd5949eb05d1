"""DeduplicationService -- 重复检测编排 / 候选审核 / 统计

批量检测对用户全部未合并任务两两评分：
- overall_score >= suggestion_threshold 时记录候选（每个无序对最多一条）
- confidence == high 且 overall_score >= auto_merge_threshold 时自动合并，
  合并失败时候选保持 pending，作为建议返回

检测循环在每个任务对边界检查 cancel_event 并让出事件循环，
取消后已提交的合并保持不变，未处理的任务对直接跳过。
"""

import asyncio
from datetime import UTC, datetime

import structlog
from syntask.core.config import MAX_PAGE_SIZE
from syntask.core.models import (
    CandidateStatus,
    Confidence,
    DuplicateCandidate,
    DuplicateScore,
    MergedBy,
    ReviewAction,
    Task,
    validate_candidate_transition,
)
from syntask.core.store import StoreGroup, write_transaction
from ulid import ULID

from .config import DuplicateDetectionConfig
from .exceptions import (
    ConflictError,
    DeduplicationError,
    InvalidRequestError,
    NotFoundError,
    storage_errors,
)
from .merge import TaskMergeService
from .models import (
    CandidatePage,
    DeduplicationStats,
    DetectionResult,
    DuplicateReviewRequest,
    DuplicateReviewResult,
    MergeTaskRequest,
)
from .scorer import DuplicateScorer

log = structlog.get_logger()


def should_auto_merge(score: DuplicateScore, config: DuplicateDetectionConfig) -> bool:
    """自动合并判定：置信度 high 且总分达到自动合并阈值"""
    return (
        score.confidence == Confidence.HIGH
        and score.overall_score >= config.auto_merge_threshold
    )


def validate_pagination(page: int, limit: int) -> None:
    """校验分页参数

    Raises:
        InvalidRequestError: page < 1 或 limit 不在 [1, MAX_PAGE_SIZE]
    """
    if page < 1:
        raise InvalidRequestError(f"page 必须 >= 1，收到 {page}")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidRequestError(f"limit 必须在 1..{MAX_PAGE_SIZE} 之间，收到 {limit}")


class DeduplicationService:
    """重复检测业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        merge_service: TaskMergeService | None = None,
        scorer: DuplicateScorer | None = None,
        config: DuplicateDetectionConfig | None = None,
    ) -> None:
        self._stores = store_group
        self._merge = merge_service or TaskMergeService(store_group)
        self._config = config or DuplicateDetectionConfig()
        self._scorer = scorer or DuplicateScorer(self._config)

    @property
    def config(self) -> DuplicateDetectionConfig:
        return self._config

    @property
    def scorer(self) -> DuplicateScorer:
        return self._scorer

    # ============================================================
    # 批量检测
    # ============================================================

    async def detect_duplicates_for_user(
        self,
        user_id: str,
        config: DuplicateDetectionConfig | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        tolerate_errors: bool = False,
    ) -> DetectionResult:
        """对用户全部未合并任务执行两两检测

        Args:
            user_id: 用户 ID
            config: 本次检测使用的配置，None 时使用服务默认配置
            cancel_event: 置位后在下一个任务对边界停止
            tolerate_errors: True 时单个任务对的失败只计数不中断（后台扫描使用）

        Raises:
            DependencyFailureError: 存储调用失败（tolerate_errors=False 时）
        """
        cfg = config or self._config
        result = DetectionResult()

        with storage_errors("list_non_merged_tasks_for_user"):
            tasks = await self._stores.task_store.list_non_merged_tasks_for_user(user_id)
        if len(tasks) < 2:
            return result

        log.info("duplicate_detection_started", user_id=user_id, task_count=len(tasks))

        for i in range(len(tasks)):
            for j in range(i + 1, len(tasks)):
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    log.warning(
                        "duplicate_detection_cancelled",
                        user_id=user_id,
                        pairs_compared=result.pairs_compared,
                    )
                    return result
                await asyncio.sleep(0)

                task1, task2 = tasks[i], tasks[j]
                try:
                    await self._process_pair(task1, task2, user_id, cfg, result)
                except Exception as e:
                    if not tolerate_errors:
                        log.error(
                            "duplicate_detection_failed",
                            user_id=user_id,
                            task_ids=[task1.task_id, task2.task_id],
                            error_type=type(e).__name__,
                        )
                        raise
                    result.errors += 1
                    log.warning(
                        "duplicate_pair_failed",
                        user_id=user_id,
                        task_ids=[task1.task_id, task2.task_id],
                        error_type=type(e).__name__,
                    )

        log.info(
            "duplicate_detection_completed",
            user_id=user_id,
            duplicates=len(result.duplicates),
            auto_merged=len(result.auto_merged),
            pairs_compared=result.pairs_compared,
            errors=result.errors,
        )
        return result

    async def _process_pair(
        self,
        task1: Task,
        task2: Task,
        user_id: str,
        config: DuplicateDetectionConfig,
        result: DetectionResult,
    ) -> None:
        """处理单个任务对：查重、评分、记录候选、按需自动合并"""
        with storage_errors("find_existing_candidate"):
            existing = await self._stores.candidate_store.find_existing_candidate(
                task1.task_id, task2.task_id
            )
        if existing is not None:
            return

        score = self._scorer.calculate_duplicate_score(task1, task2, config)
        result.pairs_compared += 1
        if score.overall_score < config.suggestion_threshold:
            return

        candidate, created = await self.create_duplicate_candidate(
            task1.task_id, task2.task_id, score
        )
        if not created:
            # 并发检测已记录该任务对
            return

        if should_auto_merge(score, config):
            merged_task_id = await self.auto_merge_candidate(candidate, user_id)
            if merged_task_id is not None:
                result.duplicates.append(
                    candidate.model_copy(update={"status": CandidateStatus.AUTO_MERGED})
                )
                result.auto_merged.append(merged_task_id)
                return

        result.duplicates.append(candidate)
        result.suggestions.append(candidate)

    # ============================================================
    # 候选读写（供 pipeline 复用）
    # ============================================================

    async def create_duplicate_candidate(
        self,
        task1_id: str,
        task2_id: str,
        score: DuplicateScore,
    ) -> tuple[DuplicateCandidate, bool]:
        """幂等创建候选

        Returns:
            (candidate, created) -- created=False 时返回该无序对已存在的候选
        """
        candidate = DuplicateCandidate(
            candidate_id=str(ULID()),
            task1_id=task1_id,
            task2_id=task2_id,
            score=score,
            status=CandidateStatus.PENDING,
            created_at=datetime.now(UTC),
        )
        with storage_errors("create_candidate"):
            async with write_transaction(self._stores.conn, self._stores.write_lock):
                stored, created = await self._stores.candidate_store.create_candidate(candidate)

        if created:
            log.info(
                "duplicate_candidate_created",
                candidate_id=stored.candidate_id,
                task_ids=[task1_id, task2_id],
                overall_score=round(score.overall_score, 4),
                confidence=score.confidence.value,
            )
        return stored, created

    async def update_candidate_status(
        self,
        candidate_id: str,
        status: CandidateStatus,
        reviewed_by: str | None = None,
    ) -> bool:
        """处理 pending 候选，记录审核人与审核时间

        Returns:
            False 表示候选已不是 pending（已被处理）

        Raises:
            InvalidRequestError: 目标状态不是 pending 的合法后继
        """
        if not validate_candidate_transition(CandidateStatus.PENDING, status):
            raise InvalidRequestError(f"非法的候选状态: {status.value}")

        with storage_errors("update_candidate_status"):
            async with write_transaction(self._stores.conn, self._stores.write_lock):
                updated = await self._stores.candidate_store.update_candidate_status(
                    candidate_id,
                    status,
                    reviewed_by=reviewed_by,
                    reviewed_at=datetime.now(UTC),
                )
        if not updated:
            log.warning(
                "candidate_already_resolved",
                candidate_id=candidate_id,
                target_status=status.value,
            )
        return updated

    async def auto_merge_candidate(
        self, candidate: DuplicateCandidate, user_id: str
    ) -> str | None:
        """自动合并候选的两个任务，候选在同一事务内标记为 auto_merged

        Returns:
            MergedTask ID；合并失败时返回 None，合并与候选状态均不落库，候选保持 pending
        """
        try:
            merge_result = await self._merge.merge_tasks(
                MergeTaskRequest(
                    task_ids=[candidate.task1_id, candidate.task2_id],
                    user_id=user_id,
                    merged_by=MergedBy.AUTO,
                ),
                candidate_id=candidate.candidate_id,
                candidate_status=CandidateStatus.AUTO_MERGED,
            )
        except DeduplicationError as e:
            log.warning(
                "auto_merge_failed",
                candidate_id=candidate.candidate_id,
                task_ids=[candidate.task1_id, candidate.task2_id],
                error_kind=e.kind.value,
                error=e.message,
            )
            return None

        return merge_result.merged_task.merged_task_id

    # ============================================================
    # 查询 / 审核 / 统计
    # ============================================================

    async def get_duplicate_candidates(
        self,
        user_id: str,
        status: CandidateStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> CandidatePage:
        """分页查询用户可见的候选，按 overall_score 倒序

        Raises:
            InvalidRequestError: 分页参数非法
        """
        validate_pagination(page, limit)
        with storage_errors("list_candidates"):
            candidates, total = await self._stores.candidate_store.list_candidates(
                user_id, status=status, page=page, limit=limit
            )
        offset = (page - 1) * limit
        return CandidatePage(
            candidates=candidates,
            total=total,
            page=page,
            limit=limit,
            has_more=offset + len(candidates) < total,
        )

    async def get_duplicate_candidate(self, candidate_id: str, user_id: str) -> DuplicateCandidate:
        """查询用户可见的单个候选

        Raises:
            NotFoundError: 候选不存在，或用户不拥有其中任何一个任务
        """
        with storage_errors("find_candidate"):
            candidate = await self._stores.candidate_store.find_candidate(candidate_id)
        if candidate is None:
            raise NotFoundError("重复候选不存在")

        # 不拥有任一任务时同样返回不存在，避免泄露候选存在性
        with storage_errors("find_tasks_by_ids"):
            owned = await self._stores.task_store.find_tasks_by_ids(
                [candidate.task1_id, candidate.task2_id], user_id
            )
        if not owned:
            raise NotFoundError("重复候选不存在")
        return candidate

    async def review_duplicate_candidate(
        self, request: DuplicateReviewRequest
    ) -> DuplicateReviewResult:
        """人工审核候选

        approve 以 manual 方式合并两个任务，并在同一事务内标记 approved；
        reject 只标记 rejected。

        Raises:
            NotFoundError: 候选不存在，或用户不拥有其中任何一个任务
            ConflictError: 候选已被处理，或任务已被合并
        """
        candidate = await self.get_duplicate_candidate(request.candidate_id, request.user_id)

        if candidate.status != CandidateStatus.PENDING:
            raise ConflictError(f"候选已处理: {candidate.status.value}")

        merged_task = None
        if request.action == ReviewAction.APPROVE:
            merge_result = await self._merge.merge_tasks(
                MergeTaskRequest(
                    task_ids=[candidate.task1_id, candidate.task2_id],
                    user_id=request.user_id,
                    merged_by=MergedBy.MANUAL,
                ),
                candidate_id=candidate.candidate_id,
                candidate_status=CandidateStatus.APPROVED,
                reviewed_by=request.user_id,
            )
            merged_task = merge_result.merged_task
        else:
            updated = await self.update_candidate_status(
                candidate.candidate_id, CandidateStatus.REJECTED, reviewed_by=request.user_id
            )
            if not updated:
                raise ConflictError("候选已被并发处理")

        with storage_errors("find_candidate"):
            refreshed = await self._stores.candidate_store.find_candidate(candidate.candidate_id)

        log.info(
            "duplicate_candidate_reviewed",
            candidate_id=candidate.candidate_id,
            action=request.action.value,
            user_id=request.user_id,
            merged_task_id=merged_task.merged_task_id if merged_task else None,
        )
        return DuplicateReviewResult(candidate=refreshed or candidate, merged_task=merged_task)

    async def get_deduplication_stats(self, user_id: str) -> DeduplicationStats:
        with storage_errors("deduplication_stats"):
            total_tasks = await self._stores.task_store.count_tasks_for_user(user_id)
            merged_tasks = await self._stores.merge_store.count_merged_tasks(user_id)
            by_status = await self._stores.candidate_store.count_candidates_by_status(user_id)

        return DeduplicationStats(
            total_tasks=total_tasks,
            merged_tasks=merged_tasks,
            pending_candidates=by_status[CandidateStatus.PENDING],
            approved_candidates=by_status[CandidateStatus.APPROVED],
            rejected_candidates=by_status[CandidateStatus.REJECTED],
            auto_merged_candidates=by_status[CandidateStatus.AUTO_MERGED],
            total_candidates=sum(by_status.values()),
        )
