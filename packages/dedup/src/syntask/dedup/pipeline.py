"""DuplicateDetectionPipeline -- 检测入口

- 实时：新任务入库后与用户已有任务比较，只记录最佳匹配
- 后台：对用户全部任务执行批量检测，异常只计数不抛出
- 优化：按来源分桶，只比较跨来源任务对，不落盘
"""

import asyncio
import time
from collections.abc import Sequence

import structlog
from syntask.core.models import CandidateStatus, DuplicateScore, Task

from .config import DuplicateDetectionConfig
from .detection import DeduplicationService, should_auto_merge
from .exceptions import DeduplicationError
from .models import (
    BackgroundDetectionStats,
    NewTaskDetectionResult,
    OptimizedDetectionResult,
    ScoredPair,
)

log = structlog.get_logger()


class DuplicateDetectionPipeline:
    """重复检测流水线 -- 只做委派与错误计数"""

    def __init__(self, dedup_service: DeduplicationService) -> None:
        self._dedup = dedup_service

    async def process_new_task_for_duplicates(
        self,
        new_task: Task,
        existing_user_tasks: Sequence[Task],
        config: DuplicateDetectionConfig | None = None,
    ) -> NewTaskDetectionResult:
        """实时检测单个新任务

        与批量检测不同，这里只为得分最高的一个匹配记录候选。
        存储失败时记录日志并返回未命中，不影响入库流程。
        """
        cfg = config or self._dedup.config
        candidates = [
            t for t in existing_user_tasks if not t.is_merged and t.task_id != new_task.task_id
        ]
        if not candidates:
            return NewTaskDetectionResult()

        best_task: Task | None = None
        best_score: DuplicateScore | None = None
        for task in candidates:
            score = self._dedup.scorer.calculate_duplicate_score(new_task, task, cfg)
            if score.overall_score < cfg.suggestion_threshold:
                continue
            if best_score is None or score.overall_score > best_score.overall_score:
                best_task, best_score = task, score

        if best_task is None or best_score is None:
            return NewTaskDetectionResult()

        try:
            candidate, created = await self._dedup.create_duplicate_candidate(
                new_task.task_id, best_task.task_id, best_score
            )
            if not created or candidate.status != CandidateStatus.PENDING:
                # 已有候选，沿用其处理结果
                return NewTaskDetectionResult(
                    is_duplicate=True,
                    duplicate_candidate_id=candidate.candidate_id,
                )

            merged_task_id = None
            if should_auto_merge(best_score, cfg):
                merged_task_id = await self._dedup.auto_merge_candidate(
                    candidate, new_task.user_id
                )
        except DeduplicationError as e:
            log.error(
                "new_task_detection_failed",
                task_id=new_task.task_id,
                error_kind=e.kind.value,
                error=e.message,
            )
            return NewTaskDetectionResult()

        log.info(
            "new_task_duplicate_found",
            task_id=new_task.task_id,
            matched_task_id=best_task.task_id,
            candidate_id=candidate.candidate_id,
            merged_task_id=merged_task_id,
        )
        return NewTaskDetectionResult(
            is_duplicate=True,
            merged_task_id=merged_task_id,
            duplicate_candidate_id=candidate.candidate_id,
            auto_merged=merged_task_id is not None,
        )

    async def run_background_duplicate_detection(
        self,
        user_id: str,
        config: DuplicateDetectionConfig | None = None,
        *,
        timeout_s: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BackgroundDetectionStats:
        """后台扫描

        Args:
            user_id: 用户 ID
            config: 本次扫描配置
            timeout_s: 超时秒数，到期后在下一个任务对边界停止
            cancel_event: 外部取消信号

        Returns:
            扫描计数；任何异常计为 1 次错误，不向调用方抛出
        """
        cancel_event = cancel_event or asyncio.Event()
        timer = None
        if timeout_s is not None:
            timer = asyncio.get_running_loop().call_later(timeout_s, cancel_event.set)

        try:
            result = await self._dedup.detect_duplicates_for_user(
                user_id,
                config,
                cancel_event=cancel_event,
                tolerate_errors=True,
            )
        except Exception as e:
            log.error(
                "background_detection_failed",
                user_id=user_id,
                error_type=type(e).__name__,
            )
            return BackgroundDetectionStats(errors=1)
        finally:
            if timer is not None:
                timer.cancel()

        stats = BackgroundDetectionStats(
            processed=result.pairs_compared,
            duplicates_found=len(result.duplicates),
            auto_merged=len(result.auto_merged),
            errors=result.errors,
            cancelled=result.cancelled,
        )
        log.info("background_detection_completed", user_id=user_id, **stats.model_dump())
        return stats

    async def optimized_duplicate_detection(
        self,
        tasks: Sequence[Task],
        config: DuplicateDetectionConfig | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> OptimizedDetectionResult:
        """按来源分桶的大规模检测，只比较不同来源的任务对，结果不落盘"""
        cfg = config or self._dedup.config
        started = time.perf_counter()

        buckets: dict[str, list[Task]] = {}
        for task in tasks:
            buckets.setdefault(task.source.value, []).append(task)
        sources = list(buckets)

        pairs: list[ScoredPair] = []
        for i in range(len(sources)):
            for j in range(i + 1, len(sources)):
                for task1 in buckets[sources[i]]:
                    for task2 in buckets[sources[j]]:
                        if cancel_event is not None and cancel_event.is_set():
                            return self._optimized_result(pairs, started, cancelled=True)
                        await asyncio.sleep(0)
                        score = self._dedup.scorer.calculate_duplicate_score(task1, task2, cfg)
                        if score.overall_score >= cfg.suggestion_threshold:
                            pairs.append(
                                ScoredPair(
                                    task1_id=task1.task_id,
                                    task2_id=task2.task_id,
                                    score=score,
                                )
                            )

        return self._optimized_result(pairs, started)

    @staticmethod
    def _optimized_result(
        pairs: list[ScoredPair], started: float, cancelled: bool = False
    ) -> OptimizedDetectionResult:
        elapsed_ms = (time.perf_counter() - started) * 1000
        log.info(
            "optimized_detection_completed",
            candidates=len(pairs),
            processing_time_ms=round(elapsed_ms, 2),
            cancelled=cancelled,
        )
        return OptimizedDetectionResult(candidates=pairs, processing_time_ms=elapsed_ms)
