"""DuplicateScorer -- 多因子重复评分

对两条任务计算五个分量（标题、描述、时间接近度、负责人、优先级）
的相似度，按配置权重加权得到 overall_score，再按阈值分档置信度。
纯计算，不访问存储，不抛异常。
"""

from collections.abc import Callable
from datetime import UTC, datetime

from syntask.core.models import Confidence, DuplicateScore, Task, TaskPriority, TaskSourceType

from .config import DuplicateDetectionConfig
from .similarity import (
    jaro_winkler_similarity,
    levenshtein_similarity,
    normalize_text,
    term_frequency_cosine,
)

# 描述长度低于该值时使用 Levenshtein，否则使用词频余弦
SHORT_DESCRIPTION_LENGTH = 100

# 时间接近度中创建时间与截止时间的权重
CREATED_PROXIMITY_WEIGHT = 0.7
DUE_PROXIMITY_WEIGHT = 0.3

_SECONDS_PER_DAY = 86400.0


# ============================================================
# 负责人字段提取
# ============================================================


def _connectwise_assignee(task: Task) -> str | None:
    return task.connectwise_assigned_to or task.connectwise_owner


def _processplan_assignee(task: Task) -> str | None:
    return task.processplan_assigned_to


def _no_assignee(task: Task) -> str | None:
    return None


# 按来源注册的负责人提取函数；Microsoft 任务没有负责人概念
ASSIGNEE_ACCESSORS: dict[TaskSourceType, Callable[[Task], str | None]] = {
    TaskSourceType.CONNECTWISE: _connectwise_assignee,
    TaskSourceType.PROCESSPLAN: _processplan_assignee,
    TaskSourceType.MICROSOFT: _no_assignee,
}


def extract_assignee(task: Task) -> str | None:
    """提取任务的负责人，未注册的来源返回 None"""
    accessor = ASSIGNEE_ACCESSORS.get(task.source, _no_assignee)
    return accessor(task) or None


# ============================================================
# 单项分量
# ============================================================


def title_similarity(title1: str, title2: str) -> float:
    """标题相似度：归一化后完全一致为 1，否则取 Levenshtein 与 Jaro-Winkler 的较大者"""
    if not title1 or not title2:
        return 0.0

    norm1 = normalize_text(title1)
    norm2 = normalize_text(title2)
    if norm1 == norm2:
        return 1.0

    return max(levenshtein_similarity(norm1, norm2), jaro_winkler_similarity(norm1, norm2))


def description_similarity(desc1: str | None, desc2: str | None) -> float:
    """描述相似度

    - 都为空: 1
    - 仅一方为空: 0
    - 都短于 100 字符: 归一化后的 Levenshtein 相似度
    - 其他: 词频余弦相似度
    """
    desc1 = desc1 or ""
    desc2 = desc2 or ""
    if not desc1 and not desc2:
        return 1.0
    if not desc1 or not desc2:
        return 0.0

    if len(desc1) < SHORT_DESCRIPTION_LENGTH and len(desc2) < SHORT_DESCRIPTION_LENGTH:
        return levenshtein_similarity(normalize_text(desc1), normalize_text(desc2))

    return term_frequency_cosine(desc1, desc2)


def _as_utc(value: datetime) -> datetime:
    # 无时区的时间按 UTC 处理
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _proximity(a: datetime, b: datetime, max_days: float) -> float:
    diff_days = abs((_as_utc(a) - _as_utc(b)).total_seconds()) / _SECONDS_PER_DAY
    return max(0.0, 1.0 - diff_days / max_days)


def temporal_proximity(task1: Task, task2: Task, max_days: float) -> float:
    """时间接近度：0.7 * 创建时间接近度 + 0.3 * 截止时间接近度

    任一方缺少截止时间时，截止时间接近度为 0。
    """
    created = _proximity(task1.created_at, task2.created_at, max_days)
    due = 0.0
    if task1.due_date is not None and task2.due_date is not None:
        due = _proximity(task1.due_date, task2.due_date, max_days)
    return CREATED_PROXIMITY_WEIGHT * created + DUE_PROXIMITY_WEIGHT * due


def assignee_match(task1: Task, task2: Task) -> float:
    assignee1 = extract_assignee(task1)
    assignee2 = extract_assignee(task2)
    if not assignee1 or not assignee2:
        return 0.0

    lower1 = assignee1.lower()
    lower2 = assignee2.lower()
    if lower1 == lower2:
        return 1.0
    return levenshtein_similarity(lower1, lower2)


def priority_match(priority1: TaskPriority | None, priority2: TaskPriority | None) -> float:
    if priority1 is None and priority2 is None:
        return 1.0
    if priority1 is None or priority2 is None:
        return 0.0
    return 1.0 if priority1 == priority2 else 0.0


def classify_confidence(overall_score: float, config: DuplicateDetectionConfig) -> Confidence:
    """按阈值分档：>= 自动合并阈值为 high，>= 建议阈值为 medium，否则 low"""
    if overall_score >= config.auto_merge_threshold:
        return Confidence.HIGH
    if overall_score >= config.suggestion_threshold:
        return Confidence.MEDIUM
    return Confidence.LOW


# ============================================================
# 评分器
# ============================================================


class DuplicateScorer:
    """重复评分器 -- 持有默认配置，单次调用可传入覆盖后的配置"""

    def __init__(self, config: DuplicateDetectionConfig | None = None) -> None:
        self._config = config or DuplicateDetectionConfig()

    @property
    def config(self) -> DuplicateDetectionConfig:
        return self._config

    def calculate_duplicate_score(
        self,
        task1: Task,
        task2: Task,
        config: DuplicateDetectionConfig | None = None,
    ) -> DuplicateScore:
        """计算两条任务的重复评分

        Args:
            task1: 任务 1
            task2: 任务 2
            config: 本次调用使用的配置，None 时使用评分器默认配置

        Returns:
            DuplicateScore；同一 (source, external_id) 的任务返回零分
        """
        cfg = config or self._config

        # 同一外部记录不构成重复对
        if task1.source == task2.source and task1.external_id == task2.external_id:
            return DuplicateScore.zero()

        title = title_similarity(task1.title, task2.title)
        description = description_similarity(task1.description, task2.description)
        temporal = temporal_proximity(task1, task2, cfg.max_days_for_temporal_proximity)
        assignee = assignee_match(task1, task2)
        priority = priority_match(task1.priority, task2.priority)

        overall = (
            title * cfg.title_weight
            + description * cfg.description_weight
            + temporal * cfg.temporal_weight
            + assignee * cfg.assignee_weight
            + priority * cfg.priority_weight
        )

        return DuplicateScore(
            title_similarity=title,
            description_similarity=description,
            temporal_proximity=temporal,
            assignee_match=assignee,
            priority_match=priority,
            overall_score=overall,
            confidence=classify_confidence(overall, cfg),
        )


_default_scorer = DuplicateScorer()


def calculate_duplicate_score(
    task1: Task,
    task2: Task,
    config: DuplicateDetectionConfig | None = None,
) -> DuplicateScore:
    """使用默认配置（或传入配置）计算重复评分"""
    return _default_scorer.calculate_duplicate_score(task1, task2, config)
