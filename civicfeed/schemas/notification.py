"""Notification schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from civicfeed.schemas.common import UtcDatetime

NotificationType = Literal["report_submitted", "report_approved", "report_rejected", "system", "ai_insight"]


class NotificationCreate(BaseModel):
    user_id: str
    title: str
    message: str
    type: NotificationType
    data: dict[str, Any] = Field(default_factory=dict)


class NotificationOut(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType
    read: bool = False
    data: dict[str, Any] | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    items: list[NotificationOut]
    unread_count: int
