"""Task Domain Model -- 已归一化的外部任务记录

(source, external_id) 唯一标识一条任务；去重核心只读取任务，
唯一允许的写入是合并关联字段 is_merged / merged_task_id。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import TaskPriority, TaskSourceType, TaskStatus


class Task(BaseModel):
    """Task 数据模型

    merged_task_id 是指向 MergedTask 的反向引用，不代表所有权。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="所属用户")
    integration_id: str = Field(default="", description="来源集成 ID")
    source: TaskSourceType = Field(description="外部来源")
    external_id: str = Field(description="外部系统中的任务 ID")
    title: str = Field(description="任务标题")
    description: str | None = Field(default=None, description="任务描述")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="任务状态")
    priority: TaskPriority | None = Field(default=None, description="优先级")
    due_date: datetime | None = Field(default=None, description="截止时间")
    source_data: dict[str, Any] = Field(
        default_factory=dict,
        description="来源特定的原始数据",
    )

    # 来源特定的负责人字段
    connectwise_owner: str | None = Field(default=None, description="ConnectWise 所有者")
    connectwise_assigned_to: str | None = Field(
        default=None, description="ConnectWise 指派人"
    )
    processplan_assigned_to: str | None = Field(
        default=None, description="ProcessPlan 指派人"
    )

    # 合并关联
    is_merged: bool = Field(default=False, description="是否已并入 MergedTask")
    merged_task_id: str | None = Field(default=None, description="所属 MergedTask ID")

    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
