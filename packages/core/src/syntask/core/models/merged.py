"""MergedTask / TaskSource Domain Model

MergedTask 只能由合并引擎创建、只能由取消合并删除。
TaskSource 与 MergedTask 同步创建，取消合并时整体删除。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, computed_field

from .enums import MergedBy, TaskPriority, TaskSourceType, TaskStatus


class TaskSource(BaseModel):
    """来源溯源记录 -- 合并时原始任务的快照"""

    task_id: str = Field(description="原始任务 ID")
    source: TaskSourceType = Field(description="原始任务来源")
    original_title: str = Field(description="原始标题")
    original_description: str | None = Field(default=None, description="原始描述")
    original_status: TaskStatus = Field(description="原始状态")
    integration_id: str = Field(default="", description="来源集成 ID")
    last_sync_at: datetime | None = Field(default=None, description="最后同步时间")
    source_data: dict[str, Any] = Field(
        default_factory=dict,
        description="原始任务 source_data 快照",
    )


class MergedTask(BaseModel):
    """合并后的任务"""

    merged_task_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="所属用户")
    title: str = Field(description="主任务标题")
    description: str | None = Field(default=None, description="主任务描述")
    status: TaskStatus = Field(description="合并状态")
    priority: TaskPriority | None = Field(default=None, description="合并优先级")
    due_date: datetime | None = Field(default=None, description="最早截止时间")
    merged_by: MergedBy = Field(description="合并发起方")
    confidence: float | None = Field(
        default=None,
        description="自动合并置信度（人工合并为 None）",
    )
    sources: list[TaskSource] = Field(default_factory=list, description="溯源记录")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @computed_field
    @property
    def source_ids(self) -> list[str]:
        return [s.task_id for s in self.sources]

    @computed_field
    @property
    def all_sources(self) -> list[TaskSourceType]:
        """去重后的来源列表，保持出现顺序"""
        seen: list[TaskSourceType] = []
        for s in self.sources:
            if s.source not in seen:
                seen.append(s.source)
        return seen

    @computed_field
    @property
    def merged_at(self) -> datetime:
        return self.created_at

    @computed_field
    @property
    def source_data(self) -> dict[str, dict[str, Any]]:
        """按来源聚合的原始数据"""
        return {s.source.value: s.source_data for s in self.sources if s.source_data}
