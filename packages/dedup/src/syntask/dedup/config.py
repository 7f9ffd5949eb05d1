"""DuplicateDetectionConfig -- 重复检测配置加载

从环境变量加载默认配置，调用方可按次覆盖任意字段。
权重预期和为 1.0，但不强制。
"""

import math
import os
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()


class DuplicateDetectionConfig(BaseModel):
    """重复检测配置

    环境变量:
        SYNTASK_AUTO_MERGE_THRESHOLD: 自动合并阈值（默认 0.75）
        SYNTASK_SUGGESTION_THRESHOLD: 建议阈值（默认 0.60）
        SYNTASK_TITLE_WEIGHT / SYNTASK_DESCRIPTION_WEIGHT / SYNTASK_TEMPORAL_WEIGHT /
        SYNTASK_ASSIGNEE_WEIGHT / SYNTASK_PRIORITY_WEIGHT: 各因子权重
        SYNTASK_MAX_DAYS_TEMPORAL: 时间接近度的最大天数窗口（默认 7）
    """

    auto_merge_threshold: float = Field(
        default=0.75, ge=0.0, le=1.0, description="自动合并阈值"
    )
    suggestion_threshold: float = Field(
        default=0.60, ge=0.0, le=1.0, description="记录候选的最低分"
    )
    title_weight: float = Field(default=0.40, ge=0.0, description="标题权重")
    description_weight: float = Field(default=0.25, ge=0.0, description="描述权重")
    temporal_weight: float = Field(default=0.15, ge=0.0, description="时间接近度权重")
    assignee_weight: float = Field(default=0.10, ge=0.0, description="负责人权重")
    priority_weight: float = Field(default=0.10, ge=0.0, description="优先级权重")
    max_days_for_temporal_proximity: float = Field(
        default=7, gt=0, description="时间接近度窗口（天）"
    )

    @property
    def total_weight(self) -> float:
        return (
            self.title_weight
            + self.description_weight
            + self.temporal_weight
            + self.assignee_weight
            + self.priority_weight
        )

    def with_overrides(self, overrides: dict[str, Any] | None) -> "DuplicateDetectionConfig":
        """返回应用了按次覆盖后的新配置（None 值被忽略）"""
        if not overrides:
            return self
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return DuplicateDetectionConfig(**data)


_ENV_FIELDS: dict[str, str] = {
    "SYNTASK_AUTO_MERGE_THRESHOLD": "auto_merge_threshold",
    "SYNTASK_SUGGESTION_THRESHOLD": "suggestion_threshold",
    "SYNTASK_TITLE_WEIGHT": "title_weight",
    "SYNTASK_DESCRIPTION_WEIGHT": "description_weight",
    "SYNTASK_TEMPORAL_WEIGHT": "temporal_weight",
    "SYNTASK_ASSIGNEE_WEIGHT": "assignee_weight",
    "SYNTASK_PRIORITY_WEIGHT": "priority_weight",
    "SYNTASK_MAX_DAYS_TEMPORAL": "max_days_for_temporal_proximity",
}


def load_detection_config() -> DuplicateDetectionConfig:
    """从环境变量加载重复检测配置

    非数值或超出字段取值范围的值逐项记录 warning 并回退默认值，不阻塞启动。

    Returns:
        DuplicateDetectionConfig 实例
    """
    kwargs: dict[str, float] = {}

    for env_var, field_name in _ENV_FIELDS.items():
        if not (val := os.environ.get(env_var)):
            continue
        try:
            # 单字段校验，其余字段取默认值
            checked = DuplicateDetectionConfig.model_validate({field_name: val})
        except ValidationError:
            log.warning(
                "invalid_detection_config",
                env_var=env_var,
                value=val,
                fallback=DuplicateDetectionConfig.model_fields[field_name].default,
            )
            continue
        kwargs[field_name] = getattr(checked, field_name)

    config = DuplicateDetectionConfig(**kwargs)
    if not math.isclose(config.total_weight, 1.0, abs_tol=1e-6):
        log.warning(
            "detection_weights_not_normalized",
            total_weight=round(config.total_weight, 6),
        )
    return config
